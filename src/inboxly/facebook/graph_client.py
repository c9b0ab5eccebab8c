"""Facebook Graph API client for reading Messenger history.

Read-only: conversation lookup by PSID, paginated message listing and the
attachment URL recovery lookups used by the classifier.

Security: the page access token travels as a query parameter and must never
be logged. Error messages built from transport exceptions are redacted
because requests embeds the full URL in them.
"""

from __future__ import annotations

from typing import Any, Literal

import requests

from inboxly.observability.logging import get_logger
from inboxly.observability.redaction import hash_identifier, redact_string, safe_log_context

from .config import GraphApiConfig

logger = get_logger(__name__)

GraphErrorKind = Literal["permission", "not_found", "generic"]

# Graph error codes with a dedicated HTTP mapping
PERMISSION_ERROR_CODE = 100
NOT_FOUND_ERROR_CODE = 803
OAUTH_ERROR_TYPE = "OAuthException"

MESSAGE_FIELDS = (
    "id,message,from,to,created_time,"
    "attachments{id,type,file_url,url,mime_type,name,image_data{url},"
    "payload{template_type,text,buttons{type,title,url,payload}}},"
    "sticker,shares"
)
ATTACHMENT_URL_FIELDS = "url,image_data{url}"
MESSAGE_ATTACHMENT_URL_FIELDS = "attachments{id,image_data{url},file_url,url}"


class GraphApiError(Exception):
    """Raised when a Graph API call fails (timeout, transport or non-2xx).

    Attributes:
        kind: permission | not_found | generic.
        status_code: HTTP status, None for transport failures.
        code: Graph error code when the response carried one.
        error_type: Graph error type (e.g. OAuthException).
    """

    def __init__(
        self,
        message: str,
        *,
        kind: GraphErrorKind = "generic",
        status_code: int | None = None,
        code: int | None = None,
        error_type: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.code = code
        self.error_type = error_type


def classify_graph_error(
    status_code: int | None,
    code: int | None,
    error_type: str | None,
) -> GraphErrorKind:
    """Map a Graph error to permission / not_found / generic."""
    if code == PERMISSION_ERROR_CODE or error_type == OAUTH_ERROR_TYPE:
        return "permission"
    if code == NOT_FOUND_ERROR_CODE or status_code == 404:
        return "not_found"
    return "generic"


def _error_from_response(resp: requests.Response) -> GraphApiError:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    error = error if isinstance(error, dict) else {}

    code = error.get("code")
    code = code if isinstance(code, int) else None
    error_type = error.get("type") if isinstance(error.get("type"), str) else None
    message = error.get("message") or f"Graph API request failed with status {resp.status_code}"

    return GraphApiError(
        redact_string(str(message)),
        kind=classify_graph_error(resp.status_code, code, error_type),
        status_code=resp.status_code,
        code=code,
        error_type=error_type,
    )


class GraphApiClient:
    """Thin synchronous Graph API client bound to one page access token."""

    def __init__(
        self,
        access_token: str,
        *,
        config: GraphApiConfig | None = None,
        session: requests.Session | None = None,
    ):
        self._access_token = access_token
        self.config = config or GraphApiConfig.from_env()
        self._owns_session = session is None
        self._session = session or requests.Session()

    def close(self) -> None:
        """Release the HTTP session if this client created it."""
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> GraphApiClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return f"{self.config.root_url}/{path.lstrip('/')}"

    def _get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        timeout: float,
    ) -> dict[str, Any]:
        """GET a Graph URL and return the decoded JSON body.

        params=None means the URL is a complete paging cursor that already
        carries the access token.
        """
        if params is not None:
            params = {**params, "access_token": self._access_token}

        try:
            resp = self._session.get(url, params=params, timeout=timeout)
        except requests.Timeout as e:
            raise GraphApiError(
                f"Graph API request timed out after {timeout:g}s",
            ) from e
        except requests.RequestException as e:
            raise GraphApiError(redact_string(str(e)) or "Graph API request failed") from e

        if not 200 <= resp.status_code < 300:
            raise _error_from_response(resp)

        try:
            body = resp.json()
        except ValueError as e:
            raise GraphApiError(
                "Graph API returned a non-JSON body", status_code=resp.status_code
            ) from e
        return body if isinstance(body, dict) else {}

    def find_conversation_id(self, page_id: str, psid: str) -> str | None:
        """Return the Graph conversation id between a page and a PSID.

        Returns:
            Conversation id, or None when the page has no conversation with
            this user.

        Raises:
            GraphApiError: On timeout, transport error or non-2xx response.
        """
        body = self._get(
            self._url(f"{page_id}/conversations"),
            params={"user_id": psid, "fields": "id"},
            timeout=self.config.list_timeout,
        )
        data = body.get("data")
        if not isinstance(data, list) or not data:
            return None
        first = data[0] if isinstance(data[0], dict) else {}
        return first.get("id") or None

    def fetch_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        """Fetch raw message payloads, following paging.next.

        Stops after config.max_pages requests even if more pages exist. Any
        failed page aborts the whole fetch.

        Raises:
            GraphApiError: On timeout, transport error or non-2xx response.
        """
        url: str | None = self._url(f"{conversation_id}/messages")
        params: dict[str, Any] | None = {
            "fields": MESSAGE_FIELDS,
            "limit": self.config.page_size,
        }
        messages: list[dict[str, Any]] = []
        page_count = 0

        while url and page_count < self.config.max_pages:
            body = self._get(url, params=params, timeout=self.config.list_timeout)
            page_count += 1

            data = body.get("data")
            if isinstance(data, list):
                with_attachments = sum(
                    1 for m in data if isinstance(m, dict) and (m.get("attachments") or {}).get("data")
                )
                logger.info(
                    "fetched facebook messages page",
                    extra={
                        "extra_fields": safe_log_context(
                            conversation_ref=hash_identifier(conversation_id),
                            page=page_count,
                            count=len(data),
                            with_attachments=with_attachments,
                        )
                    },
                )
                messages.extend(data)

            paging = body.get("paging") if isinstance(body.get("paging"), dict) else {}
            url = paging.get("next") or None
            params = None

        return messages

    def fetch_attachment_url(self, attachment_id: str) -> str | None:
        """Look up an attachment's URL by its id (recovery path)."""
        body = self._get(
            self._url(attachment_id),
            params={"fields": ATTACHMENT_URL_FIELDS},
            timeout=self.config.attachment_timeout,
        )
        image_data = body.get("image_data") if isinstance(body.get("image_data"), dict) else {}
        return image_data.get("url") or body.get("url") or None

    def fetch_message_attachment_url(self, message_id: str) -> str | None:
        """Look up the first attachment URL of a message by message id (recovery path)."""
        body = self._get(
            self._url(message_id),
            params={"fields": MESSAGE_ATTACHMENT_URL_FIELDS},
            timeout=self.config.attachment_timeout,
        )
        attachments = body.get("attachments") if isinstance(body.get("attachments"), dict) else {}
        data = attachments.get("data")
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None
        first = data[0]
        image_data = first.get("image_data") if isinstance(first.get("image_data"), dict) else {}
        return image_data.get("url") or first.get("file_url") or first.get("url") or None
