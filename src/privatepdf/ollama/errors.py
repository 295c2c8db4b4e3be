"""Error taxonomy for the Ollama core.

Every message is written for the person looking at the desktop UI, so callers
can show ``str(exc)`` as-is.
"""

from __future__ import annotations


class OllamaError(RuntimeError):
    """Base class for every error raised by ``privatepdf.ollama``."""


class TransportError(OllamaError):
    """Network failure, timeout, or a non-success HTTP status."""


class ProtocolError(OllamaError):
    """Malformed JSON body or a response missing the expected fields."""


class ServerError(OllamaError):
    """Ollama reported an ``error`` field inside a response stream."""


class NotFoundError(OllamaError):
    """Executable or service unit could not be found.

    ``attempts`` lists what was tried, in order, so the final error of a
    launch can describe every strategy that failed.
    """

    def __init__(self, message: str, attempts: list[str] | None = None) -> None:
        super().__init__(message)
        self.attempts: list[str] = list(attempts or [])


class NotInstalledError(NotFoundError):
    """No Ollama binary anywhere on this machine."""


class LaunchError(OllamaError):
    """The binary was located but could not be started."""

    def __init__(self, message: str, attempts: list[str] | None = None) -> None:
        super().__init__(message)
        self.attempts: list[str] = list(attempts or [])


class TerminateError(OllamaError):
    """The kill command itself could not be executed."""


class FilesystemError(OllamaError):
    """Directory/file creation, archive extraction, or path-traversal failure."""


class UnsupportedPlatformError(OllamaError):
    """Operation has no implementation for the current operating system."""
