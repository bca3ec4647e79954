"""Role checks used by callers at the authorization boundary.

The calculation engine itself is role-agnostic; these helpers let the calling
layer (and the reopen path) reject actors before anything is mutated.
"""

from enum import Enum

from src.api.errors import InsufficientPrivilegeError


class UserRole(str, Enum):
    """Roles issued by the external auth system."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    ANALYST = "ANALYST"
    EDITOR = "EDITOR"


CALCULATION_ROLES = frozenset({UserRole.SUPER_ADMIN, UserRole.ADMIN})
REOPEN_ROLES = frozenset({UserRole.SUPER_ADMIN})


def ensure_can_calculate(role: UserRole) -> None:
    """Raise InsufficientPrivilegeError unless role may trigger a calculation."""
    if UserRole(role) not in CALCULATION_ROLES:
        raise InsufficientPrivilegeError("Only administrators can calculate period bills")


def ensure_can_update_bill_status(role: UserRole) -> None:
    """Raise InsufficientPrivilegeError unless role may change a bill's payment status."""
    if UserRole(role) not in CALCULATION_ROLES:
        raise InsufficientPrivilegeError("Only administrators can update bill status")


def ensure_can_reopen(role: UserRole) -> None:
    """Raise InsufficientPrivilegeError unless role may reopen a closed period."""
    if UserRole(role) not in REOPEN_ROLES:
        raise InsufficientPrivilegeError("Only Super Admin can reopen periods")


__all__ = ["UserRole", "ensure_can_calculate", "ensure_can_reopen", "ensure_can_update_bill_status"]
