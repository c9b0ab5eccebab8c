"""Company-scoped role checks.

Every inbox endpoint takes a company_id query parameter; the caller must hold
a role in that company at least as high as the endpoint requires.

Role hierarchy: viewer < agent < manager < owner
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, Query

from inboxly.api.auth import CurrentUser, get_current_user

ROLE_HIERARCHY = ["viewer", "agent", "manager", "owner"]


@dataclass
class CompanyRoleContext:
    """Context returned by require_company_role."""

    user: CurrentUser
    company_id: str
    role: str


def _role_level(role: str) -> int:
    try:
        return ROLE_HIERARCHY.index(role)
    except ValueError:
        return -1


def _get_user_role_for_company(user_id: str, company_id: str) -> str | None:
    """Lookup the user's role in a company, None if not a member."""
    from inboxly.infra.db import txn

    with txn() as cur:
        cur.execute(
            "SELECT role FROM user_company_roles WHERE user_id = %s AND company_id = %s",
            (user_id, company_id),
        )
        row = cur.fetchone()
        return row[0] if row else None


def require_company_role(min_role: str) -> Callable[..., CompanyRoleContext]:
    """Build a dependency requiring at least min_role in the requested company.

    Usage:
        @router.post("/{conversation_id}/sync-facebook-messages")
        def sync(ctx: CompanyRoleContext = Depends(require_company_role("agent"))):
            ...
    """
    min_level = _role_level(min_role)
    if min_level < 0:
        raise ValueError(f"Invalid role: {min_role}")

    def dependency(
        company_id: str = Query(..., description="Company ID"),
        user: CurrentUser = Depends(get_current_user),
    ) -> CompanyRoleContext:
        role = _get_user_role_for_company(user.id, company_id)
        if role is None:
            raise HTTPException(status_code=403, detail="No access to company")

        if _role_level(role) < min_level:
            raise HTTPException(status_code=403, detail="Insufficient role")

        return CompanyRoleContext(user=user, company_id=company_id, role=role)

    return dependency
