"""Error taxonomy for yomi.

None of these ever escape into the host editor: the client and controller
turn them into log records, transient notifications, or synthetic
``error`` responses.
"""


class YomiError(Exception):
    """Base class for all yomi errors."""


class ConfigurationError(YomiError):
    """The engine executable (or another required setting) cannot be resolved."""


class ProcessError(YomiError):
    """The engine process failed to spawn or exited unexpectedly."""


class ProtocolError(YomiError):
    """A frame or message could not be encoded or decoded."""


class RequestError(YomiError):
    """A request was attempted without a running, initialized engine."""
