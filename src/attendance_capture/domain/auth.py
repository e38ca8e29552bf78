"""Authenticated user models."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    """Roles recognised by the HRMS backend."""

    ADMIN = "admin"
    HR = "hr"
    EMPLOYEE = "employee"


class AuthUser(BaseModel):
    """User profile returned by the auth endpoints."""

    user_id: int
    role: UserRole
    employee_id: int | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        parts = [part for part in (self.first_name, self.last_name) if part]
        if parts:
            return " ".join(parts)
        return self.email or f"user {self.user_id}"


class LoginResponse(BaseModel):
    """Payload of a successful login."""

    access_token: str
    user: AuthUser


@dataclass(frozen=True)
class RolePermissions:
    """Capabilities derived from a user's role."""

    can_manage_employees: bool
    can_view_all_attendance: bool
    can_manage_shifts: bool
    can_process_payroll: bool
    can_approve_leaves: bool
    can_access_settings: bool

    @classmethod
    def for_user(cls, user: AuthUser | None) -> "RolePermissions":
        """Admin and HR manage people; only admin reaches settings."""
        role = user.role if user else None
        is_manager = role in {UserRole.ADMIN, UserRole.HR}
        return cls(
            can_manage_employees=is_manager,
            can_view_all_attendance=is_manager,
            can_manage_shifts=is_manager,
            can_process_payroll=is_manager,
            can_approve_leaves=is_manager,
            can_access_settings=role is UserRole.ADMIN,
        )
