"""Access rights resolved once from a user profile."""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from sigpef.core import config


class Capability(str, Enum):
    VIEW = 'view'
    EDIT = 'edit'
    DELETE_APPOINTMENT = 'delete_appointment'
    ADMIN = 'admin'


ROLE_CAPABILITIES = {
    'viewer': frozenset({Capability.VIEW}),
    'editor': frozenset({Capability.VIEW, Capability.EDIT}),
    'admin': frozenset(Capability),
}


@dataclass(frozen=True)
class Capabilities:
    email: str
    role: str
    approved: bool
    granted: frozenset
    undo_window: timedelta

    def has(self, capability: Capability) -> bool:
        return capability in self.granted

    @property
    def can_edit(self) -> bool:
        return self.has(Capability.EDIT)

    @property
    def is_admin(self) -> bool:
        return self.has(Capability.ADMIN)


def resolve_capabilities(profile) -> Capabilities:
    role = (profile.role or 'viewer').strip().lower()
    approved = profile.approved is True
    granted = ROLE_CAPABILITIES.get(role, frozenset()) if approved else frozenset()

    undo_minutes = (
        config.UNDO_WINDOW_ADMIN_MINUTES if Capability.ADMIN in granted else config.UNDO_WINDOW_EDITOR_MINUTES
    )
    return Capabilities(
        email=profile.email,
        role=role,
        approved=approved,
        granted=granted,
        undo_window=timedelta(minutes=undo_minutes),
    )
