"""Current user and the companies they can act in."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from inboxly.api.auth import CurrentUser, get_current_user

router = APIRouter(tags=["me"])


def _list_user_company_roles(user_id: str) -> list[dict]:
    from inboxly.infra.db import txn

    with txn() as cur:
        cur.execute(
            """
            SELECT r.company_id, c.name, r.role
            FROM user_company_roles r
            JOIN companies c ON c.id = r.company_id
            WHERE r.user_id = %s
            ORDER BY r.company_id
            """,
            (user_id,),
        )
        return [
            {"company_id": row[0], "company_name": row[1], "role": row[2]}
            for row in cur.fetchall()
        ]


@router.get("/me")
def get_me(user: CurrentUser = Depends(get_current_user)) -> dict:
    """Authenticated user with the company roles used to scope inbox calls."""
    return {
        "id": user.id,
        "external_subject": user.external_subject,
        "email": user.email,
        "name": user.name,
        "companies": _list_user_company_roles(user.id),
    }
