# Core statement engine
from .config import AugmentationConfig, StatementConfig, is_production
from .errors import (
    StatementError,
    ValidationError,
    AuthenticationRequired,
    NotFound,
    Forbidden,
    InternalError,
)
from .permissions import (
    PermissionView,
    compute_permissions,
    permissions_for,
    within_grace_window,
)
from .openrouter import (
    OpenRouterClient,
    ChatCompletionResult,
    OpenRouterError,
    OpenRouterAuthError,
    OpenRouterValidationError,
    OpenRouterRateLimitError,
    OpenRouterModelError,
    OpenRouterParseError,
    OpenRouterNetworkError,
)
from .statements import StatementService, SUMMARY_DELIMITER, utc_now

__all__ = [
    "AugmentationConfig",
    "StatementConfig",
    "is_production",
    "StatementError",
    "ValidationError",
    "AuthenticationRequired",
    "NotFound",
    "Forbidden",
    "InternalError",
    "PermissionView",
    "compute_permissions",
    "permissions_for",
    "within_grace_window",
    "OpenRouterClient",
    "ChatCompletionResult",
    "OpenRouterError",
    "OpenRouterAuthError",
    "OpenRouterValidationError",
    "OpenRouterRateLimitError",
    "OpenRouterModelError",
    "OpenRouterParseError",
    "OpenRouterNetworkError",
    "StatementService",
    "SUMMARY_DELIMITER",
    "utc_now",
]
