"""Domain-specific errors for thermolink."""

from __future__ import annotations


class ThermolinkError(Exception):
    """Base error for thermolink."""

    reason = "error"
    recoverable = False


class ConfigValidationError(ThermolinkError):
    """Raised when a configuration file does not conform to schema or semantics."""

    reason = "config-invalid"


class ConfigLoadError(ThermolinkError):
    """Raised when reading configuration sources fails."""

    reason = "config-unreadable"


class ScanInProgressError(ThermolinkError):
    """Raised when a scan is requested while another scan window is pending."""

    reason = "scan-busy"


class SessionStateError(ThermolinkError):
    """Raised when a session operation is invalid for its current state."""

    reason = "session-state"


class PermissionDeniedError(ThermolinkError):
    """The capability gate refused a privileged radio operation."""

    reason = "permission-denied"

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Permission denied for Bluetooth {operation}")


class AdapterUnavailableError(ThermolinkError):
    """No usable Bluetooth adapter is present or powered."""

    reason = "adapter-unavailable"

    def __init__(self, detail: str = "") -> None:
        message = "Bluetooth adapter unavailable"
        super().__init__(f"{message}: {detail}" if detail else message)


class ScanFailedError(ThermolinkError):
    """The radio could not start a discovery scan."""

    reason = "scan-failed"

    def __init__(self, code: int | str) -> None:
        self.code = code
        super().__init__(f"Scan failed to start (code {code})")


class ScanTimedOutError(ThermolinkError):
    """The scan window closed without a matching advertisement."""

    reason = "scan-timed-out"

    def __init__(self, target_name: str, duration_s: float, *, cancelled: bool = False) -> None:
        self.target_name = target_name
        self.duration_s = duration_s
        self.cancelled = cancelled
        if cancelled:
            message = f"Scan for '{target_name}' stopped before a match"
        else:
            message = f"Device '{target_name}' not found within {duration_s:g}s"
        super().__init__(message)


class LinkError(ThermolinkError):
    """The GATT link failed or dropped while being established."""

    reason = "link-error"

    def __init__(self, code: int) -> None:
        self.code = code
        super().__init__(f"Link error (status {code})")


class TargetNotFoundError(ThermolinkError):
    """The peripheral does not expose the configured service/characteristic."""

    reason = "target-not-found"

    def __init__(self, service_uuid: str, characteristic_uuid: str) -> None:
        self.service_uuid = service_uuid
        self.characteristic_uuid = characteristic_uuid
        super().__init__(
            f"Target not found: service {service_uuid} / characteristic {characteristic_uuid}"
        )


class NotificationSetupError(ThermolinkError):
    """Notifications could not be enabled on the characteristic."""

    reason = "notification-setup-failed"

    def __init__(self, detail: str) -> None:
        super().__init__(f"Notification setup failed: {detail}")


class ValueDecodeError(ThermolinkError):
    """A characteristic value could not be decoded as text. The session continues."""

    reason = "value-decode-error"
    recoverable = True

    def __init__(self, raw: bytes, encoding: str) -> None:
        self.raw = raw
        self.encoding = encoding
        super().__init__(f"Could not decode value {raw.hex()} as {encoding}")
