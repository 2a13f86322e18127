"""
Custom error classes for Zoho Stats Hub.
Structured error handling with error codes across all modules.

Hierarchy:
    HubError
    ├── ConfigurationError
    └── APIError
        ├── AuthExchangeError
        └── RemoteAPIError
"""


class HubError(Exception):
    """Base exception for all Zoho Stats Hub errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


class ConfigurationError(HubError):
    """Required Zoho credentials are not configured."""

    def __init__(self, missing: list):
        self.missing = list(missing)
        super().__init__(
            "Zoho CRM is not configured; missing: " + ", ".join(self.missing),
            code="ZOHO_CONFIG_MISSING",
            details={"missing": self.missing},
        )


# --- API Errors ---

class APIError(HubError):
    """Base class for external API errors."""

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, url: str = None, **kwargs):
        self.status_code = status_code
        self.url = url
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


class AuthExchangeError(APIError):
    """The OAuth token endpoint rejected the refresh-token exchange."""

    def __init__(self, message: str, status_code: int = None, url: str = None):
        super().__init__(
            message, code="ZOHO_AUTH_EXCHANGE_FAILED",
            status_code=status_code, url=url,
        )


class RemoteAPIError(APIError):
    """Non-success response from a Zoho CRM resource endpoint."""

    def __init__(self, status_code: int, body: str, endpoint: str = None,
                 message: str = None):
        self.body = body
        super().__init__(
            message or f"Zoho CRM {endpoint or ''} returned {status_code}: {body}",
            code="ZOHO_API_ERROR", status_code=status_code, url=endpoint,
            body=body,
        )
