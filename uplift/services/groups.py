"""Group role checks shared by matchmaking and competitions."""

from __future__ import annotations

from sqlalchemy.orm import Session

from uplift.errors import PermissionDeniedError
from uplift.repository import get_member_role

# Role hierarchy: higher index = more permissions
ROLE_HIERARCHY: dict[str, int] = {
    "member": 0,
    "admin": 1,
    "owner": 2,
}


def is_group_manager(role: str | None) -> bool:
    """Owners and admins run a group's competitions."""
    return ROLE_HIERARCHY.get(role or "", -1) >= ROLE_HIERARCHY["admin"]


def require_group_manager(s: Session, group_id: int, user_id: int, action: str) -> str:
    """Return the actor's role, or raise if they are not owner/admin of the group."""
    role = get_member_role(s, group_id, user_id)
    if not is_group_manager(role):
        raise PermissionDeniedError(
            f"Only owner or admin can {action}",
            details={"group_id": group_id, "user_id": user_id, "role": role},
        )
    return role
