"""Facebook Messenger history sync for one conversation.

Pipeline (one call = one run, no state shared between runs):
1. resolve_sync_context: conversation, customer PSID, page id, page token.
2. fetch_remote_messages: Graph conversation lookup + capped paging.
3. filter_new_records: drop records whose Graph message id is already stored.
4. normalize_records: classify content, resolve direction, build rows.
5. FallbackPersister: bulk insert, row-by-row on failure.
6. SyncResult: counts reported to the caller.

Only resolution and fetch failures abort a run (SyncError / GraphApiError).
Bad records and failed inserts are counted in SyncResult.errors.
"""

from __future__ import annotations

import json
import uuid
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from inboxly.domain.persistence import FallbackPersister, MessageStore
from inboxly.facebook.classifier import AttachmentClassifier
from inboxly.facebook.content import TEXT_PLACEHOLDER
from inboxly.facebook.direction import resolve_direction
from inboxly.facebook.graph_client import GraphApiClient
from inboxly.facebook.models import (
    Classification,
    Direction,
    NormalizedMessage,
    RemoteMessageRecord,
    SyncContext,
)
from inboxly.facebook.parsing import InvalidRecordError, parse_message
from inboxly.infra.repositories.conversations_repository import get_conversation_for_sync
from inboxly.infra.repositories.facebook_pages_repository import (
    get_latest_connected_page_id,
    resolve_credential,
)
from inboxly.infra.repositories.messages_repository import (
    REMOTE_ID_KEY,
    PgMessageStore,
    list_synced_message_metadata,
)
from inboxly.infra.time import utc_now
from inboxly.observability.logging import get_logger
from inboxly.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

SYNC_PLATFORM = "facebook"
SYNC_SOURCE = "graph_api_sync"


# ── Exceptions ───────────────────────────────────────────


class SyncError(Exception):
    """Base for failures that abort a sync run before anything is written."""

    status_code = 500
    default_message = "حدث خطأ أثناء جلب الرسائل"

    def __init__(self, message: str | None = None, *, info: str | None = None):
        self.message = message or self.default_message
        self.info = info
        super().__init__(self.message)


class ConversationNotFoundError(SyncError):
    status_code = 404
    default_message = "المحادثة غير موجودة أو ليست محادثة Facebook"


class MissingCustomerIdentityError(SyncError):
    status_code = 400
    default_message = "العميل لا يملك معرف Facebook"


class NoChannelConfiguredError(SyncError):
    status_code = 404
    default_message = "لا توجد صفحة Facebook متصلة"


class CredentialUnavailableError(SyncError):
    status_code = 400
    default_message = "لا يمكن الوصول إلى صفحة Facebook"


class RemoteConversationNotFoundError(SyncError):
    status_code = 404
    default_message = "لم يتم العثور على محادثة في Facebook لهذا العميل"


class NoMessagesFoundError(SyncError):
    status_code = 404
    default_message = "لا توجد رسائل في هذه المحادثة"


# ── Result ───────────────────────────────────────────────


@dataclass
class SyncResult:
    """Counts for one run. success is implied: failures raise instead."""

    total_fetched: int = 0
    saved: int = 0
    skipped: int = 0
    errors: int = 0
    from_customer: int = 0
    from_page: int = 0
    ambiguous_direction: int = 0
    by_type: dict[str, int] = field(default_factory=dict)

    @property
    def summary_message(self) -> str:
        if self.saved > 0:
            text = f"تم جلب {self.saved} رسالة جديدة وتم تخطي {self.skipped} رسالة موجودة"
        else:
            text = (
                f"تم جلب {self.total_fetched} رسالة ولكنها موجودة مسبقاً "
                f"(تم تخطي {self.skipped} رسالة)"
            )
        if self.errors > 0:
            text += f" وفشل حفظ {self.errors} رسالة"
        return text

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "message": self.summary_message,
            "data": {
                "totalFetched": self.total_fetched,
                "saved": self.saved,
                "skipped": self.skipped,
                "errors": self.errors,
            },
        }


@dataclass
class NormalizedBatch:
    """Rows ready to persist plus per-record failures seen while building them."""

    messages: list[NormalizedMessage] = field(default_factory=list)
    errors: int = 0
    ambiguous_direction: int = 0


# ── Stage 1: resolve ─────────────────────────────────────


def resolve_sync_context(cur: PgCursor, *, company_id: str, conversation_id: str) -> SyncContext:
    """Resolve everything needed to query Graph API for a conversation.

    Raises:
        ConversationNotFoundError, MissingCustomerIdentityError,
        NoChannelConfiguredError, CredentialUnavailableError.
    """
    conversation = get_conversation_for_sync(
        cur, company_id=company_id, conversation_id=conversation_id
    )
    if conversation is None:
        raise ConversationNotFoundError()

    psid = conversation.customer_facebook_id
    if not psid:
        raise MissingCustomerIdentityError()

    page_id = conversation.page_id or get_latest_connected_page_id(cur, company_id)
    if not page_id:
        raise NoChannelConfiguredError()

    credential = resolve_credential(cur, page_id)
    if credential is None:
        raise CredentialUnavailableError()

    return SyncContext(
        company_id=company_id,
        conversation_id=conversation.id,
        psid=psid,
        page_id=page_id,
        access_token=credential.access_token,
        page_name=credential.page_name,
    )


# ── Stage 2: fetch ───────────────────────────────────────


def fetch_remote_messages(client: GraphApiClient, ctx: SyncContext) -> list[dict[str, Any]]:
    """Find the Graph conversation for the customer and fetch its messages.

    Raises:
        RemoteConversationNotFoundError: page has no conversation with the PSID.
        NoMessagesFoundError: conversation exists but returned no messages.
        GraphApiError: any failed Graph call.
    """
    remote_conversation_id = client.find_conversation_id(ctx.page_id, ctx.psid)
    if not remote_conversation_id:
        raise RemoteConversationNotFoundError(info="تأكد من أن المحادثة موجودة في صفحة Facebook")

    raw_messages = client.fetch_messages(remote_conversation_id)
    if not raw_messages:
        raise NoMessagesFoundError(info="المحادثة موجودة ولكن لا تحتوي على رسائل")
    return raw_messages


# ── Stage 3: dedupe ──────────────────────────────────────


def _remote_id_from_metadata(metadata: Any) -> str | None:
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except ValueError:
            return None
    if not isinstance(metadata, dict):
        return None
    value = metadata.get(REMOTE_ID_KEY)
    return str(value) if value else None


def filter_new_records(
    records: Iterable[RemoteMessageRecord],
    stored_metadata: Iterable[Any],
) -> tuple[list[RemoteMessageRecord], int]:
    """Drop records already stored (or repeated within the batch).

    Returns:
        (new records in input order, number skipped).
    """
    seen = {rid for rid in map(_remote_id_from_metadata, stored_metadata) if rid}
    fresh: list[RemoteMessageRecord] = []
    skipped = 0
    for record in records:
        if record.id in seen:
            skipped += 1
            continue
        seen.add(record.id)
        fresh.append(record)
    return fresh, skipped


# ── Stage 4: normalize ───────────────────────────────────


def build_metadata(record: RemoteMessageRecord, direction: Direction, synced_at: str) -> dict[str, Any]:
    att = record.attachment
    return {
        "platform": SYNC_PLATFORM,
        "source": SYNC_SOURCE,
        REMOTE_ID_KEY: record.id,
        "syncedAt": synced_at,
        "fromId": record.from_id,
        "toIds": list(record.to_ids or ()),
        "originalMessage": record.message or None,
        "hasAttachments": bool(record.raw_attachments or record.has_sticker),
        "hasButtons": bool(att and att.declared_type == "template" and att.buttons),
        "shares": record.shares,
        "attachmentDetails": record.raw_attachments,
        "directionReason": direction.reason,
    }


def normalize_records(
    records: Iterable[RemoteMessageRecord],
    ctx: SyncContext,
    classifier: AttachmentClassifier,
) -> NormalizedBatch:
    """Classify and orient each record. A record that fails to classify is
    stored with placeholder text and counted as an error."""
    batch = NormalizedBatch()
    now = utc_now()
    synced_at = now.isoformat()

    for record in records:
        try:
            classification = classifier.classify(record)
        except Exception as e:
            batch.errors += 1
            classification = Classification("TEXT", TEXT_PLACEHOLDER)
            logger.warning(
                "failed to classify facebook message, storing placeholder",
                extra={
                    "extra_fields": safe_log_context(
                        remote_ref=hash_identifier(record.id),
                        error_type=type(e).__name__,
                    )
                },
            )

        direction = resolve_direction(record.from_id, record.to_ids, ctx.psid, ctx.page_id)
        if direction.ambiguous:
            batch.ambiguous_direction += 1

        created_at = record.created_time or now
        batch.messages.append(
            NormalizedMessage(
                id=str(uuid.uuid4()),
                conversation_id=ctx.conversation_id,
                type=classification.type,
                content=classification.content,
                is_from_customer=direction.is_from_customer,
                is_read=False,
                metadata=build_metadata(record, direction, synced_at),
                created_at=created_at,
                updated_at=created_at,
            )
        )

    return batch


# ── Orchestration ────────────────────────────────────────


def _parse_records(raw_messages: list[dict[str, Any]]) -> tuple[list[RemoteMessageRecord], int]:
    records: list[RemoteMessageRecord] = []
    errors = 0
    for raw in raw_messages:
        try:
            records.append(parse_message(raw))
        except InvalidRecordError as e:
            errors += 1
            logger.warning(
                "skipping unparseable facebook message",
                extra={"extra_fields": safe_log_context(reason=str(e))},
            )
    return records, errors


def _load_stored_metadata(conversation_id: str) -> list[Any]:
    from inboxly.infra.db import txn

    with txn() as cur:
        return list_synced_message_metadata(cur, conversation_id)


def _resolve(company_id: str, conversation_id: str) -> SyncContext:
    from inboxly.infra.db import txn

    with txn() as cur:
        return resolve_sync_context(cur, company_id=company_id, conversation_id=conversation_id)


def sync_facebook_messages(
    *,
    company_id: str,
    conversation_id: str,
    client_factory: Callable[[str], GraphApiClient] = GraphApiClient,
    store: MessageStore | None = None,
) -> SyncResult:
    """Pull Messenger history for a conversation and store the new messages.

    Args:
        company_id: Tenant owning the conversation.
        conversation_id: Local conversation UUID.
        client_factory: Builds a Graph client from a page access token.
        store: Message store (PgMessageStore by default).

    Returns:
        SyncResult with fetched/saved/skipped/error counts.

    Raises:
        SyncError: Resolution or empty-fetch failure.
        GraphApiError: Graph API failure while listing.
    """
    ctx = _resolve(company_id, conversation_id)
    log_ctx = safe_log_context(
        company_id=company_id,
        conversation_id=ctx.conversation_id,
        page_ref=hash_identifier(ctx.page_id),
        customer_ref=hash_identifier(ctx.psid),
    )
    logger.info("facebook message sync started", extra={"extra_fields": log_ctx})

    # Recovery lookups run during normalize, so the client stays open until then
    with client_factory(ctx.access_token) as client:
        raw_messages = fetch_remote_messages(client, ctx)

        result = SyncResult(total_fetched=len(raw_messages))
        records, result.errors = _parse_records(raw_messages)

        fresh, result.skipped = filter_new_records(
            records, _load_stored_metadata(ctx.conversation_id)
        )

        classifier = AttachmentClassifier(client)
        batch = normalize_records(fresh, ctx, classifier)

    result.errors += batch.errors
    result.ambiguous_direction = batch.ambiguous_direction
    result.from_customer = sum(1 for m in batch.messages if m.is_from_customer)
    result.from_page = len(batch.messages) - result.from_customer
    result.by_type = dict(Counter(m.type for m in batch.messages))

    if result.ambiguous_direction:
        logger.warning(
            "facebook messages with undetermined direction attributed to page",
            extra={"extra_fields": {**log_ctx, **safe_log_context(count=result.ambiguous_direction)}},
        )

    persister = FallbackPersister.for_store(store or PgMessageStore())
    outcome = persister.persist(ctx.conversation_id, batch.messages)
    result.saved = outcome.saved
    result.errors += outcome.errors

    logger.info(
        "facebook message sync completed",
        extra={
            "extra_fields": {
                **log_ctx,
                **safe_log_context(
                    total_fetched=result.total_fetched,
                    saved=result.saved,
                    skipped=result.skipped,
                    errors=result.errors,
                    from_customer=result.from_customer,
                    from_page=result.from_page,
                    strategy=outcome.strategy,
                    image_url_recovery_attempts=classifier.recovery_attempts,
                    by_type=json.dumps(result.by_type, sort_keys=True),
                ),
            }
        },
    )
    return result
