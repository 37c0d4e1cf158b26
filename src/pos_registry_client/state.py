from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .models import CashierPermissions, PosUser
from .models_registry import RegistrySession


class Route(str, Enum):
    LOGIN = "login"
    POS = "pos"


class RegistryState(str, Enum):
    NO_SESSION = "no_session"
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class PosContext:
    """Everything one terminal knows about its operator and the shared drawer.

    Passed explicitly to each component; there is no module-level current session.
    """

    user: PosUser | None = None
    permissions: CashierPermissions | None = None
    registry_session: RegistrySession | None = None
    registry_state: RegistryState = RegistryState.NO_SESSION
    route: Route = Route.LOGIN
    checking_registry: bool = False
    awaiting_manager_open: bool = False
    is_syncing: bool = False
    offline_mode: bool = False
    totals_stale: bool = False
    last_refresh_at: float | None = None

    @property
    def has_open_session(self) -> bool:
        return (
            self.registry_state is RegistryState.OPEN
            and self.registry_session is not None
            and self.registry_session.is_open
        )

    def attach_session(self, session: RegistrySession) -> None:
        self.registry_session = session
        self.registry_state = RegistryState.OPEN if session.is_open else RegistryState.CLOSED
        self.awaiting_manager_open = False

    def detach_session(self) -> None:
        self.registry_session = None
        self.registry_state = RegistryState.NO_SESSION
        self.totals_stale = False

    def reset(self) -> None:
        self.user = None
        self.permissions = None
        self.detach_session()
        self.route = Route.LOGIN
        self.checking_registry = False
        self.awaiting_manager_open = False
        self.is_syncing = False
        self.offline_mode = False
        self.last_refresh_at = None
