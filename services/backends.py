"""Build and authenticate the configured FileExplorer for an identity."""

from __future__ import annotations

from werkzeug.security import check_password_hash

from services.config import Settings
from services.errors import ConnectError
from services.explorer import FileExplorer
from services.local_explorer import LocalFileExplorer
from services.logging_setup import core_log as _core_log
from services.models import Identity
from services.remote_explorer import RemoteFileExplorer


class ExplorerFactory:
    """Callable ``Identity -> FileExplorer`` returning an initialized explorer.

    ``init()`` is part of the call: an explorer that fails to initialize is
    closed here and never handed out.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def build(self, identity: Identity) -> FileExplorer:
        s = self.settings
        common = dict(content_max_bytes=s.content_max_bytes, content_encoding=s.content_encoding)
        if s.backend == "local":
            self._check_local_credentials(identity)
            return LocalFileExplorer(s.local_root, **common)
        return RemoteFileExplorer(
            s.backend_host,
            identity.username,
            identity.secret,
            port=s.backend_port,
            timeout=s.ssh_timeout,
            keepalive=s.ssh_keepalive,
            hostkey_policy=s.hostkey_policy,
            known_hosts_path=s.known_hosts_path or None,
            **common,
        )

    def _check_local_credentials(self, identity: Identity) -> None:
        s = self.settings
        if not s.local_user or not s.local_password_hash:
            raise ConnectError("local backend has no credentials configured")
        ok = identity.username == s.local_user and check_password_hash(s.local_password_hash, identity.secret)
        if not ok:
            _core_log("warning", "fe.local auth failed", user=identity.username)
            raise ConnectError("authentication failed")

    def __call__(self, identity: Identity) -> FileExplorer:
        if not identity.is_complete():
            raise ConnectError("username and password are required")
        fe = self.build(identity)
        try:
            fe.init()
        except BaseException:
            fe.close()
            raise
        return fe
