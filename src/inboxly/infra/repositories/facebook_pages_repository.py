"""Facebook pages repository - page selection and access token lookup.

Uses raw SQL with psycopg2 (no ORM).

Token lookup always reads the row: a page disconnected from the dashboard
must stop being usable immediately, so no in-process token cache is kept.
"""

from __future__ import annotations

from dataclasses import dataclass

from psycopg2.extensions import cursor as PgCursor

CONNECTED = "connected"
DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class PageCredential:
    """Access credential for one Facebook page."""

    access_token: str
    page_name: str | None
    company_id: str


def get_latest_connected_page_id(cur: PgCursor, company_id: str) -> str | None:
    """Return the page_id of the most recently connected active page."""
    cur.execute(
        """
        SELECT page_id FROM facebook_pages
        WHERE company_id = %s AND status = %s
        ORDER BY connected_at DESC NULLS LAST
        LIMIT 1
        """,
        (company_id, CONNECTED),
    )
    row = cur.fetchone()
    return row[0] if row else None


def resolve_credential(cur: PgCursor, page_id: str) -> PageCredential | None:
    """Look up a page's access token by Facebook page id.

    Returns:
        PageCredential, or None when the page is unknown, disconnected or
        has no token.
    """
    cur.execute(
        """
        SELECT page_access_token, page_name, company_id, status
        FROM facebook_pages
        WHERE page_id = %s
        """,
        (page_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None

    access_token, page_name, company_id, status = row
    if status == DISCONNECTED or not access_token:
        return None

    return PageCredential(
        access_token=access_token,
        page_name=page_name,
        company_id=str(company_id),
    )
