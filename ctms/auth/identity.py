"""Identity context passed into every service call."""

from dataclasses import dataclass

from ctms.models.enums import PRIVILEGED_ROLES, EventSource

SYSTEM_ROLE = "System"


@dataclass(frozen=True)
class Actor:
    """Acting user (or the scheduler) plus request provenance."""

    user_id: str | None
    role: str
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    @property
    def is_system(self) -> bool:
        return self.role == SYSTEM_ROLE

    @property
    def source(self) -> EventSource:
        if self.is_system:
            return EventSource.SYSTEM
        return EventSource.ADMIN if self.is_privileged else EventSource.USER


SYSTEM_ACTOR = Actor(user_id=None, role=SYSTEM_ROLE)
