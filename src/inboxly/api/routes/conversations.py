"""Conversations (Inbox) endpoints.

- GET  /conversations: list a company's conversations
- GET  /conversations/{id}/messages: stored messages, oldest first
- POST /conversations/{id}/sync-facebook-messages: pull Messenger history

Error bodies follow the inbox UI contract: {"success": false, "message", ...}.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path
from fastapi.responses import JSONResponse

from inboxly.api.rbac import CompanyRoleContext, require_company_role
from inboxly.domain.message_sync import SyncError, sync_facebook_messages
from inboxly.facebook.content import split_content
from inboxly.facebook.graph_client import GraphApiError
from inboxly.observability.correlation import get_correlation_id
from inboxly.observability.logging import get_logger
from inboxly.observability.redaction import safe_log_context

router = APIRouter(prefix="/conversations", tags=["conversations"])

logger = get_logger(__name__)

PERMISSION_MESSAGE = "لا توجد صلاحيات كافية لجلب الرسائل من Facebook"
PERMISSION_INFO = "تأكد من أن الصفحة لديها صلاحيات pages_messaging"
REMOTE_NOT_FOUND_MESSAGE = "لم يتم العثور على المحادثة أو الرسائل"
REMOTE_FAILURE_MESSAGE = "فشل في جلب الرسائل من Facebook"
INTERNAL_FAILURE_MESSAGE = "حدث خطأ أثناء جلب الرسائل"


def _list_conversations(company_id: str) -> list[dict]:
    from inboxly.infra.db import txn
    from inboxly.infra.repositories.conversations_repository import list_conversations

    with txn() as cur:
        return list_conversations(cur, company_id=company_id)


def _list_messages(company_id: str, conversation_id: str) -> list[dict] | None:
    """Stored messages of a conversation, None if it is not the company's."""
    from inboxly.infra.db import txn
    from inboxly.infra.repositories.conversations_repository import conversation_exists
    from inboxly.infra.repositories.messages_repository import list_messages

    with txn() as cur:
        if not conversation_exists(cur, company_id=company_id, conversation_id=conversation_id):
            return None
        return list_messages(cur, conversation_id)


def _with_decoded_content(message: dict) -> dict:
    """Expose caption text and attachment URL next to the raw content."""
    text, _, url = split_content(message["content"])
    if url is None and message["type"] in ("IMAGE", "FILE") and text and text.startswith("http"):
        text, url = None, text
    return {**message, "text": text, "attachment_url": url}


def _graph_error_response(e: GraphApiError) -> JSONResponse:
    if e.kind == "permission":
        return JSONResponse(
            status_code=403,
            content={
                "success": False,
                "message": e.message or PERMISSION_MESSAGE,
                "error": e.message or "Facebook API permissions required",
                "info": PERMISSION_INFO,
            },
        )

    if e.kind == "not_found":
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "message": REMOTE_NOT_FOUND_MESSAGE,
                "error": e.message,
            },
        )

    message = e.message or REMOTE_FAILURE_MESSAGE
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": message,
            "error": message,
            "code": e.code or e.status_code or 500,
            "type": e.error_type or "UNKNOWN_ERROR",
        },
    )


@router.get("")
def list_conversations(
    ctx: CompanyRoleContext = Depends(require_company_role("viewer")),
) -> dict:
    """List conversations for a company. Requires viewer role or higher."""
    return {"conversations": _list_conversations(ctx.company_id)}


@router.get("/{conversation_id}/messages")
def list_messages(
    conversation_id: str = Path(..., description="Conversation UUID"),
    ctx: CompanyRoleContext = Depends(require_company_role("viewer")),
) -> dict:
    """Stored messages, oldest first. Requires viewer role or higher."""
    messages = _list_messages(ctx.company_id, conversation_id)
    if messages is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"messages": [_with_decoded_content(m) for m in messages]}


@router.post("/{conversation_id}/sync-facebook-messages")
def sync_conversation_messages(
    conversation_id: str = Path(..., description="Conversation UUID"),
    ctx: CompanyRoleContext = Depends(require_company_role("agent")),
) -> Any:
    """Pull Messenger history for a conversation. Requires agent role or higher.

    200 with counts even when nothing new was saved; 4xx for resolution
    failures; 403/404/500 for Graph API failures.
    """
    correlation_id = get_correlation_id()
    log_ctx = safe_log_context(
        correlationId=correlation_id,
        company_id=ctx.company_id,
        conversation_id=conversation_id,
    )

    try:
        result = sync_facebook_messages(
            company_id=ctx.company_id,
            conversation_id=conversation_id,
        )
    except SyncError as e:
        logger.info(
            "facebook sync not possible",
            extra={"extra_fields": {**log_ctx, **safe_log_context(reason=type(e).__name__)}},
        )
        content: dict[str, Any] = {"success": False, "message": e.message}
        if e.info:
            content["info"] = e.info
        return JSONResponse(status_code=e.status_code, content=content)
    except GraphApiError as e:
        logger.error(
            "facebook graph api error during sync",
            extra={
                "extra_fields": {
                    **log_ctx,
                    **safe_log_context(
                        kind=e.kind,
                        status_code=e.status_code,
                        code=e.code,
                        error_type=e.error_type,
                    ),
                }
            },
        )
        return _graph_error_response(e)
    except Exception:
        logger.exception("facebook sync failed", extra={"extra_fields": log_ctx})
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": INTERNAL_FAILURE_MESSAGE,
                "error": "internal error",
            },
        )

    return result.to_response()
