"""Authorization context for callers acting on tutor calendars."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from .core.config import settings
from .core.enums import AppRole


@dataclass(frozen=True)
class AuthorizationContext:
    """
    The authenticated principal making a scheduling request.

    Identity verification happens upstream; this only carries the result.
    """

    user_id: str
    role: AppRole
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is AppRole.ADMIN

    @property
    def can_override_conflicts(self) -> bool:
        """Admins may proceed through overlaps with a warning."""
        return self.is_admin

    def can_act_for_tutor(self, tutor_id: str) -> bool:
        return self.is_admin or self.user_id == tutor_id


@dataclass(frozen=True)
class AdminPolicy:
    """
    Resolves a principal's role from verified token claims.

    An explicit ``role`` claim wins; otherwise an email listed in
    ``admin_emails`` is treated as admin.
    """

    admin_emails: frozenset[str] = frozenset()

    @classmethod
    def from_settings(cls) -> "AdminPolicy":
        return cls(admin_emails=frozenset(settings.admin_emails))

    @classmethod
    def with_emails(cls, emails: Iterable[str]) -> "AdminPolicy":
        return cls(admin_emails=frozenset(e.strip().lower() for e in emails if e.strip()))

    def is_admin_email(self, email: Optional[str]) -> bool:
        return bool(email) and email.strip().lower() in self.admin_emails

    def resolve_role(self, claims: Mapping[str, Any]) -> Optional[AppRole]:
        raw_role = str(claims.get("role") or "").strip().lower()
        if raw_role == AppRole.ADMIN.value or self.is_admin_email(claims.get("email")):
            return AppRole.ADMIN
        if raw_role == AppRole.TUTOR.value:
            return AppRole.TUTOR
        return None

    def build_context(self, claims: Mapping[str, Any]) -> Optional[AuthorizationContext]:
        """Context for a verified token, or None when the principal has no scheduling role."""
        user_id = claims.get("sub")
        role = self.resolve_role(claims)
        if not isinstance(user_id, str) or not user_id or role is None:
            return None
        email = claims.get("email")
        return AuthorizationContext(
            user_id=user_id, role=role, email=email if isinstance(email, str) else None
        )
