"""Request dependencies shared by the routers."""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status

from readingstats.core.exceptions import AccessDeniedError

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Caller:
    """Identity forwarded by the upstream gateway."""

    member_id: int
    role: str = "member"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


async def get_caller(
    x_member_id: int | None = Header(default=None),
    x_member_role: str = Header(default="member"),
) -> Caller:
    """Dependency that reads the caller from gateway headers."""
    if x_member_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Member-Id header",
        )
    return Caller(member_id=x_member_id, role=x_member_role.lower())


async def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    """Dependency that only lets admins through."""
    if not caller.is_admin:
        raise AccessDeniedError("Admin role required")
    return caller


def ensure_member_access(caller: Caller, member_id: int) -> None:
    """Members may only read their own data; admins may read anyone's."""
    if caller.member_id != member_id and not caller.is_admin:
        raise AccessDeniedError(
            "Access to another member's data denied",
            details={"member_id": member_id},
        )
