"""
Order Hub — Error taxonomy

Correctness failures (InvalidTransition, NotFound) surface to the caller.
Transport and permission failures (ConnectivityError, PermissionDenied,
AudioUnavailable) are recovered locally wherever a fallback exists.
"""


class OrderHubError(Exception):
    """Base class for every domain error raised by the order hub."""

    kind = "order_hub_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InvalidTransition(OrderHubError):
    """Requested status is not reachable from the current one, or the order is terminal."""

    kind = "invalid_transition"

    def __init__(self, message: str, *, current: str | None = None, target: str | None = None):
        super().__init__(message)
        self.current = current
        self.target = target


class NotFound(OrderHubError):
    kind = "not_found"


class ConnectivityError(OrderHubError):
    """Realtime channel dropped or a store request failed on the network."""

    kind = "connectivity"


class PermissionDenied(OrderHubError):
    """OS-level notification permission not granted (or the API is missing)."""

    kind = "permission_denied"


class AudioUnavailable(OrderHubError):
    kind = "audio_unavailable"


class OrderStoreError(OrderHubError):
    """Any other non-success answer from the order store."""

    kind = "order_store_error"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
