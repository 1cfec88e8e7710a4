"""Exception types raised by the capture pipeline's collaborators.

Absence conditions (no input, no key, nothing above threshold) are never
exceptions; these cover configuration and transport faults only.
"""


class CaptureError(Exception):
    """Base class for capture pipeline errors."""


class KeyProviderError(CaptureError):
    """The encryption key source exists but could not be read."""


class ServerStartError(CaptureError):
    """The memory store server is not reachable and could not be started."""


class StoreClientError(CaptureError):
    """The memory store answered with a protocol-level error."""
