"""Gateway error taxonomy. Every error renders as an ``{ok: false, ...}`` envelope."""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for errors the HTTP layer turns into JSON envelopes."""

    status_code: int = 500

    def __init__(self, error: str, **extra: Any):
        super().__init__(error)
        self.error = error
        self.extra = {k: v for k, v in extra.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.error, **self.extra}


class InvalidInput(GatewayError):
    """Missing or malformed request field. No provider call is made."""
    status_code = 400


class UpstreamError(GatewayError):
    """Provider answered with a non-success status; status and body are relayed."""
    status_code = 502

    def __init__(self, error: str, status: int, body: Any = None):
        super().__init__(error, status=status)
        # An empty or undecodable body is still relayed as-is
        self.extra["body"] = body


class UpstreamUnreachable(GatewayError):
    """Network failure or undecodable provider response."""
    status_code = 500

    def __init__(self, error: str, details: Optional[str] = None):
        super().__init__(error, details=details)


class Unconfigured(GatewayError):
    """No provider credentials present."""
    status_code = 500


class NotImplementedYet(GatewayError):
    """Capability declared on the HTTP surface but not wired to a provider."""
    status_code = 501
