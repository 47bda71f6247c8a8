"""Custom exceptions for channel providers."""

from typing import Any, Dict, Optional


class ProviderError(Exception):
    """Normalized delivery failure reported by a channel provider.

    Providers return this inside a failed ProviderResult rather than raising
    it. It carries the raw shape the error classifier reads: a message, an
    HTTP-like status code, and a transport or vendor error code.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        """Initialize provider error.

        Args:
            message: Human-readable error message
            status_code: HTTP status (or SMTP reply mapped to an HTTP status)
            code: Transport code such as "ECONNRESET", or a vendor code such as "21211"
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "status_code": self.status_code, "code": self.code}

    def __repr__(self) -> str:
        return f"ProviderError({self.message!r}, status_code={self.status_code!r}, code={self.code!r})"


class ProviderConfigurationError(Exception):
    """Invalid provider configuration.

    Raised at startup, e.g. live mode selected without SMTP or Twilio
    credentials.
    """
