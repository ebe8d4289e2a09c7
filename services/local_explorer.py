"""FileExplorer backed by the local filesystem, confined to one root directory."""

from __future__ import annotations

import os
import shutil
import stat
from typing import BinaryIO, List

from services.explorer import DIR_MODE, FileExplorer, format_mtime
from services.models import DirectoryEntry


class LocalFileExplorer(FileExplorer):
    kind = "local"

    def __init__(self, root: str = "/", **kwargs) -> None:
        super().__init__(**kwargs)
        self.root = os.path.realpath(root or "/")

    def _real(self, path: str) -> str:
        """Map a client path onto the root, refusing lexical escapes (``..``)."""
        p = os.path.normpath(os.path.join(self.root, (path or "").lstrip("/")))
        try:
            inside = os.path.commonpath([p, self.root]) == self.root
        except ValueError:
            inside = False
        if not inside:
            raise PermissionError(f"path not allowed: {path}")
        return p

    def _list(self, path: str) -> List[DirectoryEntry]:
        results: List[DirectoryEntry] = []
        with os.scandir(self._real(path)) as it:
            for entry in it:
                st = entry.stat(follow_symlinks=False)
                results.append(DirectoryEntry(
                    name=entry.name,
                    permission_string=stat.filemode(st.st_mode),
                    size_bytes=str(int(st.st_size)),
                    modified_at=format_mtime(st.st_mtime),
                    kind="dir" if stat.S_ISDIR(st.st_mode) else "file",
                ))
        return results

    def _mkdir(self, path: str) -> None:
        os.mkdir(self._real(path), DIR_MODE)

    def _rename(self, old_path: str, new_path: str) -> None:
        os.rename(self._real(old_path), self._real(new_path))

    def _copy_one(self, item: str, dest_path: str) -> None:
        src = self._real(item)
        dst = self._real(dest_path)
        if os.path.isdir(src):
            # copytree refuses an existing destination
            shutil.copytree(src, dst, symlinks=True)
            return
        shutil.copyfile(src, dst)
        shutil.copymode(src, dst)

    def _delete_one(self, item: str) -> None:
        p = self._real(item)
        if p == self.root:
            raise PermissionError(f"refusing to delete root: {item}")
        if os.path.isdir(p) and not os.path.islink(p):
            shutil.rmtree(p)
        else:
            os.remove(p)

    def _chmod_one(self, item: str, mode: int, recursive: bool) -> None:
        top = self._real(item)
        if recursive and os.path.isdir(top) and not os.path.islink(top):
            # children first, so a mode without r/x on dirs does not stop the walk
            for dirpath, dirnames, filenames in os.walk(top, topdown=False):
                for name in filenames + dirnames:
                    p = os.path.join(dirpath, name)
                    if not os.path.islink(p):
                        os.chmod(p, mode)
        os.chmod(top, mode)

    def _write_stream(self, path: str, stream: BinaryIO) -> None:
        with open(self._real(path), "wb") as df:
            shutil.copyfileobj(stream, df)

    def _file_size(self, path: str) -> int:
        return int(os.stat(self._real(path)).st_size)

    def _read_bytes(self, path: str) -> bytes:
        with open(self._real(path), "rb") as f:
            return f.read()
