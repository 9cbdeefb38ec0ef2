"""
Roles and the authenticated principal.

Trust: token claims are only turned into a Principal after signature
verification in api.deps. Ownership of individual rows is checked in the
services, not here.
"""
from dataclasses import dataclass

from pharmabridge.core.exceptions import PermissionDenied


class Role:
    PHARMACY = "pharmacy"
    WHOLESALER = "wholesaler"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    ADMIN_ROLES = (ADMIN, SUPERADMIN)
    ALL = (PHARMACY, WHOLESALER, ADMIN, SUPERADMIN)


@dataclass(frozen=True)
class Principal:
    role: str
    account_id: str
    username: str
    is_main_admin: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role in Role.ADMIN_ROLES

    def claims(self) -> dict:
        return {
            "sub": self.account_id,
            "role": self.role,
            "username": self.username,
            "is_main_admin": self.is_main_admin,
        }

    @classmethod
    def from_claims(cls, claims: dict) -> "Principal":
        return cls(
            role=claims["role"],
            account_id=claims["sub"],
            username=claims.get("username", ""),
            is_main_admin=bool(claims.get("is_main_admin", False)),
        )


def ensure_role(principal: Principal, *roles: str, message: str = "Access denied") -> Principal:
    if principal.role not in roles:
        raise PermissionDenied(message, reason=f"{principal.role} {principal.account_id} needs {roles}")
    return principal


def ensure_main_admin(principal: Principal, message: str = "Only the main admin can do this") -> Principal:
    if not principal.is_main_admin:
        raise PermissionDenied(message, reason=f"{principal.role} {principal.account_id} is not main admin")
    return principal
