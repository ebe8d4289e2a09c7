"""Error kinds raised by file explorers and the session binder.

Filesystem failures (not found, permission denied, already exists) are not
wrapped: they propagate as the builtin ``OSError`` family and their ``str()``
is shown to the user as-is.
"""

from __future__ import annotations

from typing import List, Tuple


class ExplorerError(Exception):
    """Base class of all webfe domain errors."""


class ConnectError(ExplorerError):
    """Bad credentials, unreachable backend, or a transport found dead."""


class NotReadyError(ExplorerError):
    """A capability was used before a successful ``init()``."""

    def __init__(self, message: str = "file explorer is not initialized") -> None:
        super().__init__(message)


class ContentTooLargeError(ExplorerError):
    """getContent refused a file above the inline-edit ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__("file too big, not support getContent")
        self.size = size
        self.limit = limit


class PermsParseError(ExplorerError):
    """Permission code is not a valid mode."""

    def __init__(self, code: str) -> None:
        super().__init__(f"invalid permission code: {code!r}")
        self.code = code


class BulkOperationError(ExplorerError):
    """At least one item of a bulk operation failed.

    The message is the last item error. ``failures`` keeps every
    ``(path, message)`` pair in processing order.
    """

    def __init__(self, failures: List[Tuple[str, str]]) -> None:
        super().__init__(failures[-1][1] if failures else "operation failed")
        self.failures = failures


class ContentEncodingError(ExplorerError):
    """Text handed to ``edit`` has characters the content charset cannot hold."""

    def __init__(self, char: str, encoding: str) -> None:
        super().__init__(f"character {char!r} cannot be encoded as {encoding}")
        self.char = char
        self.encoding = encoding


class SessionLimitError(ExplorerError):
    """Too many bound sessions."""

    def __init__(self, limit: int) -> None:
        super().__init__("too many sessions")
        self.limit = limit
