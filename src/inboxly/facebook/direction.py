"""Message directionality: did the customer or the page send a record?

Graph API semantics:
- customer sends: from.id = PSID, to = [page_id]
- page sends:     from.id = page_id, to = [PSID]

When neither rule decides (unknown sender with an ambiguous or missing "to"),
the record is attributed to the page. That default is kept as-is and flagged
with ambiguous=True so callers can count and report it.

A record with no "from" at all is attributed to the page without looking at
"to"; this matches how the inbox has always stored such records.
"""

from collections.abc import Sequence

from .models import Direction


def resolve_direction(
    from_id: str | None,
    to_ids: Sequence[str] | None,
    psid: str,
    page_id: str,
) -> Direction:
    """Decide whether a record came from the customer. First match wins."""
    if not from_id:
        return Direction(False, "missing_from", ambiguous=True)

    if from_id == psid:
        return Direction(True, "from_customer")
    if from_id == page_id:
        return Direction(False, "from_page")

    if not to_ids:
        return Direction(False, "missing_to", ambiguous=True)

    sent_to_psid = psid in to_ids
    sent_to_page = page_id in to_ids

    if sent_to_psid and not sent_to_page:
        return Direction(False, "to_customer_only")
    if sent_to_page and not sent_to_psid:
        return Direction(True, "to_page_only")

    return Direction(False, "ambiguous_to", ambiguous=True)
