from typing import Optional, Dict, Any

class CostGuardException(Exception):
    """Base exception for all CostGuard errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

class AdapterError(CostGuardException):
    """
    Raised when an external cloud adapter fails.
    Sanitizes error messages to avoid leaking internal cloud details.
    """
    def __init__(self, message: str, code: str = "adapter_error", details: Optional[Dict[str, Any]] = None):
        sanitized_message = self._sanitize(message)
        super().__init__(sanitized_message, code=code, status_code=502, details=details)

    def _sanitize(self, msg: str) -> str:
        """Remove sensitive tokens, request IDs, and internal paths from error messages."""
        import re
        # Remove UUIDs (likely Request IDs)
        msg = re.sub(r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}', '[REDACTED_ID]', msg, flags=re.IGNORECASE)
        msg = re.sub(r'(?i)(access_key|secret_key|token|password|signature)=[^&\s]+', r'\1=[REDACTED]', msg)
        if "AccessDenied" in msg or "Unauthorized" in msg:
            return "Permission denied: Ensure the CostGuard IAM role has ce:GetCostAndUsage and budgets:ViewBudget."
        if "Throttling" in msg or "LimitExceeded" in msg:
            return "Cloud provider rate limit exceeded."
        return msg

class AuthError(CostGuardException):
    """Raised when authentication (401) or authorization (403) fails."""
    def __init__(
        self,
        message: str,
        code: str = "auth_error",
        status_code: int = 401,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, status_code=status_code, details=details)

class ConfigurationError(CostGuardException):
    """Raised when application configuration is invalid or missing."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=500, details=details)

class ResourceNotFoundError(CostGuardException):
    """Raised when a requested resource is not found."""
    def __init__(self, message: str, code: str = "not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=404, details=details)

class BudgetValidationError(CostGuardException):
    """Raised when budget or manual-run input is rejected before processing."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="validation_error", status_code=422, details=details)

class NotificationError(CostGuardException):
    """Raised by a notification transport when a single delivery fails."""
    def __init__(self, message: str, code: str = "notification_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=502, details=details)
