"""FileExplorer backed by a remote host over SSH/SFTP (paramiko).

Every operation goes through the SFTP subsystem only; no remote shell is
required. Host key checking follows one of three policies:

- accept_new: trust unknown hosts on first use and record them in known_hosts,
  reject changed keys.
- reject_new: only hosts already present in known_hosts are accepted.
- accept_any: no host key checking at all (not recommended).
"""

from __future__ import annotations

import errno
import os
import posixpath
import shutil
import socket
import stat
from contextlib import contextmanager
from typing import BinaryIO, Iterator, List, Optional

import paramiko

from services.errors import ConnectError
from services.explorer import DIR_MODE, FileExplorer, format_mtime
from services.logging_setup import core_log as _core_log
from services.models import DirectoryEntry


HOSTKEY_POLICIES = ("accept_new", "reject_new", "accept_any")


def _ensure_known_hosts_file(path: str) -> str:
    """Ensure known_hosts exists and is private (0600)."""
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)
    if not os.path.exists(path):
        with open(path, "w", encoding="utf-8") as f:
            f.write("")
    os.chmod(path, 0o600)
    return path


class RemoteFileExplorer(FileExplorer):
    kind = "ssh"

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        *,
        port: int = 22,
        timeout: float = 10.0,
        keepalive: int = 30,
        hostkey_policy: str = "accept_new",
        known_hosts_path: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.host = host
        self.port = int(port)
        self.username = username
        self._password = password
        self.timeout = float(timeout)
        self.keepalive = int(keepalive)
        policy = (hostkey_policy or "accept_new").strip().lower()
        self.hostkey_policy = policy if policy in HOSTKEY_POLICIES else "accept_new"
        self.known_hosts_path = known_hosts_path
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    # --------------------------- lifecycle ---------------------------

    def _connect(self) -> None:
        client = paramiko.SSHClient()
        if self.hostkey_policy == "accept_any":
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        else:
            if self.known_hosts_path:
                try:
                    client.load_host_keys(_ensure_known_hosts_file(self.known_hosts_path))
                except (OSError, paramiko.SSHException) as e:
                    client.close()
                    _core_log("error", "fe.ssh known_hosts unusable", path=self.known_hosts_path, error=e)
                    raise ConnectError(f"known_hosts file {self.known_hosts_path} is unusable: {e}") from e
            if self.hostkey_policy == "accept_new":
                client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            else:
                client.set_missing_host_key_policy(paramiko.RejectPolicy())

        try:
            client.connect(
                self.host,
                port=self.port,
                username=self.username,
                password=self._password,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            sftp = client.open_sftp()
        except paramiko.AuthenticationException as e:
            client.close()
            _core_log("warning", "fe.ssh auth failed", host=self.host, port=self.port, user=self.username)
            raise ConnectError("authentication failed") from e
        except paramiko.BadHostKeyException as e:
            client.close()
            _core_log("warning", "fe.ssh host key changed", host=self.host, port=self.port)
            raise ConnectError(f"host key for {self.host} has changed") from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            _core_log("warning", "fe.ssh connect failed", host=self.host, port=self.port, error=e)
            raise ConnectError(f"cannot connect to {self.host}:{self.port}: {e}") from e

        transport = client.get_transport()
        if transport is not None and self.keepalive > 0:
            transport.set_keepalive(self.keepalive)

        if self.hostkey_policy == "accept_new" and self.known_hosts_path:
            try:
                client.save_host_keys(self.known_hosts_path)
            except OSError as e:
                _core_log("warning", "fe.ssh known_hosts not saved", path=self.known_hosts_path, error=e)

        self._client = client
        self._sftp = sftp
        _core_log("info", "fe.ssh connected", host=self.host, port=self.port, user=self.username)

    def _release(self) -> None:
        sftp, client = self._sftp, self._client
        self._sftp = None
        self._client = None
        self._password = ""
        for res in (sftp, client):
            if res is None:
                continue
            try:
                res.close()
            except (paramiko.SSHException, OSError, EOFError) as e:
                _core_log("debug", "fe.ssh close error", host=self.host, error=e)

    def transport_active(self) -> bool:
        client = self._client
        if client is None:
            return False
        transport = client.get_transport()
        return bool(transport is not None and transport.is_active())

    @contextmanager
    def _guard(self) -> Iterator[paramiko.SFTPClient]:
        """Yield the SFTP client; a dead transport surfaces as ConnectError."""
        if self._sftp is None or not self.transport_active():
            raise ConnectError("connection to backend lost")
        try:
            yield self._sftp
        except (paramiko.SSHException, EOFError, socket.timeout) as e:
            raise ConnectError(f"connection to backend lost: {e}") from e
        except OSError:
            if not self.transport_active():
                raise ConnectError("connection to backend lost")
            raise

    # --------------------------- primitives ---------------------------

    def _list(self, path: str) -> List[DirectoryEntry]:
        with self._guard() as sftp:
            attrs = sftp.listdir_attr(path or "/")
        return [
            DirectoryEntry(
                name=a.filename,
                permission_string=stat.filemode(a.st_mode or 0),
                size_bytes=str(int(a.st_size or 0)),
                modified_at=format_mtime(a.st_mtime or 0),
                kind="dir" if stat.S_ISDIR(a.st_mode or 0) else "file",
            )
            for a in attrs
        ]

    def _mkdir(self, path: str) -> None:
        with self._guard() as sftp:
            sftp.mkdir(path, mode=DIR_MODE)

    def _rename(self, old_path: str, new_path: str) -> None:
        with self._guard() as sftp:
            sftp.rename(old_path, new_path)

    def _copy_one(self, item: str, dest_path: str) -> None:
        with self._guard() as sftp:
            self._copy_tree(sftp, item, dest_path)

    def _copy_tree(self, sftp: paramiko.SFTPClient, src: str, dst: str) -> None:
        st = sftp.stat(src)
        if stat.S_ISDIR(st.st_mode or 0):
            if self._exists(sftp, dst):
                raise FileExistsError(errno.EEXIST, "Destination already exists", dst)
            sftp.mkdir(dst, mode=stat.S_IMODE(st.st_mode or DIR_MODE))
            for a in sftp.listdir_attr(src):
                self._copy_tree(sftp, posixpath.join(src, a.filename), posixpath.join(dst, a.filename))
            return
        with sftp.open(src, "rb") as sf, sftp.open(dst, "wb") as df:
            sf.prefetch()
            df.set_pipelined(True)
            shutil.copyfileobj(sf, df)
        sftp.chmod(dst, stat.S_IMODE(st.st_mode or 0o644))

    @staticmethod
    def _exists(sftp: paramiko.SFTPClient, path: str) -> bool:
        try:
            sftp.lstat(path)
        except FileNotFoundError:
            return False
        return True

    def _delete_one(self, item: str) -> None:
        with self._guard() as sftp:
            self._remove_tree(sftp, item)

    def _remove_tree(self, sftp: paramiko.SFTPClient, path: str) -> None:
        st = sftp.lstat(path)
        if not stat.S_ISDIR(st.st_mode or 0):
            sftp.remove(path)
            return
        for a in sftp.listdir_attr(path):
            self._remove_tree(sftp, posixpath.join(path, a.filename))
        sftp.rmdir(path)

    def _chmod_one(self, item: str, mode: int, recursive: bool) -> None:
        with self._guard() as sftp:
            if recursive:
                st = sftp.lstat(item)
                if stat.S_ISDIR(st.st_mode or 0):
                    self._chmod_children(sftp, item, mode)
            sftp.chmod(item, mode)

    def _chmod_children(self, sftp: paramiko.SFTPClient, path: str, mode: int) -> None:
        for a in sftp.listdir_attr(path):
            child = posixpath.join(path, a.filename)
            if stat.S_ISLNK(a.st_mode or 0):
                continue
            if stat.S_ISDIR(a.st_mode or 0):
                self._chmod_children(sftp, child, mode)
            sftp.chmod(child, mode)

    def _write_stream(self, path: str, stream: BinaryIO) -> None:
        with self._guard() as sftp:
            with sftp.open(path, "wb") as df:
                df.set_pipelined(True)
                shutil.copyfileobj(stream, df)

    def _file_size(self, path: str) -> int:
        with self._guard() as sftp:
            return int(sftp.stat(path).st_size or 0)

    def _read_bytes(self, path: str) -> bytes:
        with self._guard() as sftp:
            with sftp.open(path, "rb") as f:
                f.prefetch()
                return f.read()
