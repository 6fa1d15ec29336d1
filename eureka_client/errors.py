"""
Eureka Client - Exception hierarchy.

Every error raised by this package derives from EurekaError. Operation
context (which app, instance or VIP was involved) is prefixed onto the
message with add_context() so the exception class never changes as it
travels up from the transport to the facade.
"""

from typing import Optional


class EurekaError(Exception):
    """Base class for all eureka-client errors."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def add_context(self, context: str) -> "EurekaError":
        """Prefix operation context onto the message and return self."""
        self.message = f"{context}: {self.message}" if self.message else context
        self.args = (self.message,) + self.args[1:]
        return self

    def __str__(self) -> str:
        return self.message


class ConfigurationError(EurekaError):
    """Bad or missing configuration (e.g. no registry URLs)."""


class InvalidURL(ConfigurationError, ValueError):
    """A registry base URL could not be normalized."""


class InvalidArgument(EurekaError, ValueError):
    """The caller passed an argument the operation cannot accept."""


class TransportError(EurekaError):
    """A registry server could not be reached (connect, DNS, timeout)."""

    def __init__(self, message: str = "", url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class ProtocolError(EurekaError):
    """The server answered with a status code the operation does not expect."""

    def __init__(self, message: str = "", status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class DecodeError(EurekaError):
    """A response body was not valid registry XML."""


class OperationCancelled(EurekaError):
    """The call context was cancelled or its deadline passed."""


class RegistrationFailed(EurekaError):
    """Registering the instance failed; the cause is chained."""


class HeartbeatFailed(EurekaError):
    """Renewing the lease failed for a reason other than a missing instance."""


class InstanceNotFound(EurekaError):
    """The registry does not know the instance; it should be re-registered."""

    def __init__(self, message: str = "", instance_id: Optional[str] = None):
        super().__init__(message)
        self.instance_id = instance_id
