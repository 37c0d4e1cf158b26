from .cash_validation import (
    CashValidationIssue,
    CashValidationResult,
    validate_cash_transaction_payload,
    validate_close_registry_payload,
    validate_open_registry_payload,
)
from .config import ClientConfig, ConfigError, load_config
from .connectivity import ConnectivityOracle, NetworkStatus
from .events import SESSION_EXPIRED, SignalBus
from .exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    NotFoundError,
    PendingRefundsError,
    RegistryAlreadyOpenError,
    ServerError,
    StoreError,
    TransportError,
    ValidationError,
)
from .http_client import HttpClient, TraceContext
from .idempotency import new_idempotency_key
from .local_store import LocalStore, SessionCache
from .models import (
    CashierPermissions,
    FailureKind,
    OperationType,
    PendingSyncCount,
    PendingSyncOperation,
    PosUser,
)
from .models_cash import CashTransaction, CashTransactionRequest
from .models_registry import RegistrySession, RegistryStatus, VarianceKind, classify_variance
from .notifications import NotificationCenter
from .offline_api import OfflineAwareApi, SubmissionResult
from .registry_controller import (
    CheckResult,
    CloseRejection,
    CloseResult,
    OpenResult,
    RegistrySessionController,
)
from .session_restore import RestoreResult, SessionRestorer
from .state import PosContext, RegistryState, Route
from .sync_manager import SyncManager, SyncProgress, SyncResult
from .terminal import PosTerminal
from .ui_errors import UserFacingError, to_user_facing_error

__version__ = "0.1.0"
