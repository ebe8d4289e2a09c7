"""FileExplorer capability shared by the local and remote backends.

Paths handed to an explorer are the client's logical, slash-separated paths.
Each backend maps them onto its own storage. Bulk operations (move, copy,
delete, chmod) keep going after an item fails and raise a single
``BulkOperationError`` at the end whose message is the last failure.
"""

from __future__ import annotations

import abc
import io
import posixpath
import re
import threading
import time
from typing import BinaryIO, Callable, Iterable, List, Sequence, Tuple

from services.errors import (
    BulkOperationError,
    ContentEncodingError,
    ContentTooLargeError,
    NotReadyError,
    PermsParseError,
)
from services.logging_setup import core_log as _core_log
from services.models import DirectoryEntry


CONTENT_MAX_BYTES = 1024 * 1024  # 1 MiB
CONTENT_ENCODING = "latin-1"
DIR_MODE = 0o700
MTIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_mtime(ts: float) -> str:
    """Render a timestamp in the backend's local time."""
    return time.strftime(MTIME_FORMAT, time.localtime(ts))


def parse_perms_code(code: str) -> int:
    """Parse a permission code such as "755", "0644" or "0o750"."""
    s = (code or "").strip().lower()
    if s.startswith("0o"):
        s = s[2:]
    if not re.match(r"^[0-7]{1,4}$", s):
        raise PermsParseError(code)
    return int(s, 8)


def decode_lines(raw: bytes, encoding: str = CONTENT_ENCODING) -> str:
    """Decode single-byte text and re-join its lines with "\\n".

    Line terminators are "\\n" with an optional trailing "\\r"; a final
    terminator does not produce an empty last line.
    """
    text = raw.decode(encoding)
    if not text:
        return ""
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return "\n".join(line[:-1] if line.endswith("\r") else line for line in lines)


def target_name(item: str, single_filename: str = "") -> str:
    return single_filename or posixpath.basename(item.rstrip("/"))


class FileExplorer(abc.ABC):
    """Directory and file operations against one backend connection.

    ``init()`` must succeed before anything else; ``close()`` may be called
    any number of times and only releases the connection once.
    """

    kind = "abstract"

    def __init__(
        self,
        *,
        content_max_bytes: int = CONTENT_MAX_BYTES,
        content_encoding: str = CONTENT_ENCODING,
    ) -> None:
        self.content_max_bytes = int(content_max_bytes)
        self.content_encoding = content_encoding
        self._ready = False
        self._closed = False
        self._state_lock = threading.Lock()

    # --------------------------- lifecycle ---------------------------

    def init(self) -> None:
        self._connect()
        self._ready = True

    @property
    def ready(self) -> bool:
        return self._ready and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            self._ready = False
        self._release()

    def _require_ready(self) -> None:
        if not self.ready:
            raise NotReadyError()

    def _connect(self) -> None:
        """Open and authenticate the backend connection."""

    def _release(self) -> None:
        """Release the backend connection. Must tolerate a failed ``_connect``."""

    # --------------------------- single-item primitives ---------------------------

    @abc.abstractmethod
    def _list(self, path: str) -> List[DirectoryEntry]: ...

    @abc.abstractmethod
    def _mkdir(self, path: str) -> None: ...

    @abc.abstractmethod
    def _rename(self, old_path: str, new_path: str) -> None: ...

    @abc.abstractmethod
    def _copy_one(self, item: str, dest_path: str) -> None: ...

    @abc.abstractmethod
    def _delete_one(self, item: str) -> None: ...

    @abc.abstractmethod
    def _chmod_one(self, item: str, mode: int, recursive: bool) -> None: ...

    @abc.abstractmethod
    def _write_stream(self, path: str, stream: BinaryIO) -> None: ...

    @abc.abstractmethod
    def _file_size(self, path: str) -> int: ...

    @abc.abstractmethod
    def _read_bytes(self, path: str) -> bytes: ...

    # --------------------------- capability ---------------------------

    def list_dir(self, path: str) -> List[DirectoryEntry]:
        """Entries of ``path`` sorted by name."""
        self._require_ready()
        return sorted(self._list(path), key=lambda e: e.name)

    def mkdir(self, path: str) -> None:
        self._require_ready()
        self._mkdir(path)

    def rename(self, old_path: str, new_path: str) -> None:
        self._require_ready()
        self._rename(old_path, new_path)

    def move(self, items: Sequence[str], destination_dir: str) -> None:
        self._require_ready()
        self._bulk("move", items, lambda item: self._rename(
            item, posixpath.join(destination_dir, target_name(item))))

    def copy(self, items: Sequence[str], destination_dir: str, single_filename: str = "") -> None:
        self._require_ready()
        self._bulk("copy", items, lambda item: self._copy_one(
            item, posixpath.join(destination_dir, target_name(item, single_filename))))

    def delete(self, items: Sequence[str]) -> None:
        self._require_ready()
        self._bulk("delete", items, self._delete_one)

    def chmod(self, items: Sequence[str], mode_code: str, recursive: bool = False) -> None:
        self._require_ready()
        mode = parse_perms_code(mode_code)
        self._bulk("chmod", items, lambda item: self._chmod_one(item, mode, recursive))

    def upload_file(self, destination_dir: str, stream: BinaryIO, file_name: str) -> None:
        self._require_ready()
        name = posixpath.basename(file_name.replace("\\", "/"))
        if not name or name in (".", ".."):
            raise ValueError(f"invalid file name: {file_name!r}")
        self._write_stream(posixpath.join(destination_dir, name), stream)

    def get_content(self, path: str) -> str:
        self._require_ready()
        size = self._file_size(path)
        if size > self.content_max_bytes:
            raise ContentTooLargeError(size, self.content_max_bytes)
        raw = self._read_bytes(path)
        if len(raw) > self.content_max_bytes:
            # grew between stat and read
            raise ContentTooLargeError(len(raw), self.content_max_bytes)
        return decode_lines(raw, self.content_encoding)

    def edit(self, path: str, content: str) -> None:
        """Overwrite ``path`` with ``content`` in the same charset getContent reads.

        Nothing is written when ``content`` cannot be encoded.
        """
        self._require_ready()
        try:
            raw = content.encode(self.content_encoding)
        except UnicodeEncodeError as e:
            raise ContentEncodingError(e.object[e.start:e.end], self.content_encoding) from e
        self._write_stream(path, io.BytesIO(raw))

    # --------------------------- helpers ---------------------------

    def _bulk(self, op: str, items: Iterable[str], fn: Callable[[str], None]) -> None:
        failures: List[Tuple[str, str]] = []
        for item in items:
            try:
                fn(item)
            except (OSError, ValueError) as e:
                _core_log("warning", f"fe.{op} item failed", backend=self.kind, item=item, error=e)
                failures.append((item, str(e)))
        if failures:
            raise BulkOperationError(failures)
