"""Error taxonomy shared by the capture core, the tool runners and the web layer.

Every error carries a machine-stable ``category`` and an HTTP status so the
transport adapters can render it without knowing where it came from.
"""

from __future__ import annotations

from typing import Any


class LinkLensError(Exception):
    """Base class for errors that are reported to the consumer."""

    category = "error"
    status_code = 500

    def __init__(
        self,
        message: str,
        hint: str | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.category, "message": self.message}
        if self.hint:
            body["hint"] = self.hint
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidTarget(LinkLensError):
    category = "invalid_target"
    status_code = 400


class InvalidRequest(LinkLensError):
    category = "invalid_request"
    status_code = 400


class DisallowedOption(LinkLensError):
    category = "disallowed_option"
    status_code = 400


class SessionNotFound(LinkLensError):
    category = "not_found"
    status_code = 404

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Capture session '{session_id}' not found")
        self.session_id = session_id


class SessionActive(LinkLensError):
    category = "conflict"
    status_code = 409


class CapacityExceeded(LinkLensError):
    category = "capacity_exceeded"
    status_code = 429


class DependencyMissing(LinkLensError):
    """An external tool is not installed or not on PATH."""

    category = "dependency_missing"
    status_code = 503

    def __init__(self, tool: str, hint: str | None = None) -> None:
        super().__init__(
            f"{tool} is not installed or not on PATH",
            hint=hint or f"Install {tool} and make sure it is on PATH.",
        )
        self.tool = tool


class ToolFailed(LinkLensError):
    """An external tool ran but reported failure; ``details`` is its output."""

    category = "tool_failed"
    status_code = 500


class ServiceUnavailable(LinkLensError):
    category = "service_unavailable"
    status_code = 502
