"""Runtime settings, read from WEBFE_* environment variables."""

from __future__ import annotations

import os
import secrets
import sys
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple


BACKENDS = ("ssh", "local")


def _env_str(env: Mapping[str, str], name: str, default: str = "") -> str:
    return (env.get(name, "") or "").strip() or default


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: Optional[int] = None) -> int:
    try:
        v = str(env.get(name, "") or "").strip()
        n = int(float(v)) if v else int(default)
    except ValueError:
        n = int(default)
    if minimum is not None and n < minimum:
        n = minimum
    return n


def default_state_dir() -> str:
    """Return a writable directory for webfe state (known_hosts, logs)."""
    home = os.path.expanduser("~")
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return os.path.join(xdg, "webfe")
    if sys.platform == "darwin":
        return os.path.join(home, "Library", "Application Support", "webfe")
    return os.path.join(home, ".config", "webfe")


def parse_bind(bind: str) -> Tuple[str, int]:
    """``"4000"`` -> ("0.0.0.0", 4000); ``"127.0.0.1:4000"`` -> ("127.0.0.1", 4000)."""
    parts = (bind or "").strip().rsplit(":", 1)
    if len(parts) == 1:
        return "0.0.0.0", int(parts[0])
    return parts[0] or "0.0.0.0", int(parts[1])


def split_host_port(host: str, default_port: int) -> Tuple[str, int]:
    h = (host or "").strip()
    if h.count(":") == 1:
        name, port = h.split(":", 1)
        if port.isdigit():
            return name, int(port)
    return h, int(default_port)


@dataclass
class Settings:
    bind: str = "0.0.0.0:4000"
    server_type: str = "http"
    statics: List[str] = field(default_factory=list)

    backend: str = "ssh"
    backend_host: str = "127.0.0.1"
    backend_port: int = 22
    ssh_timeout: int = 10
    ssh_keepalive: int = 30
    hostkey_policy: str = "accept_new"
    known_hosts_path: str = ""

    local_root: str = "/"
    local_user: str = ""
    local_password_hash: str = field(default="", repr=False)

    session_ttl: int = 86400
    max_sessions: int = 64
    max_upload_mb: int = 200
    content_max_bytes: int = 1024 * 1024
    content_encoding: str = "latin-1"

    secret_key: str = field(default="", repr=False)
    state_dir: str = ""
    log_dir: str = ""

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        state_dir = _env_str(env, "WEBFE_STATE_DIR", default_state_dir())
        backend = _env_str(env, "WEBFE_BACKEND", "ssh").lower()
        if backend not in BACKENDS:
            raise ValueError(f"unsupported WEBFE_BACKEND: {backend}")
        host, port = split_host_port(
            _env_str(env, "WEBFE_BACKEND_HOST", "127.0.0.1"),
            _env_int(env, "WEBFE_BACKEND_PORT", 22, minimum=1),
        )
        return cls(
            bind=_env_str(env, "WEBFE_BIND", "0.0.0.0:4000"),
            server_type=_env_str(env, "WEBFE_SERVER_TYPE", "http").lower(),
            statics=[s for s in _env_str(env, "WEBFE_STATICS").split(":") if s.strip()],
            backend=backend,
            backend_host=host,
            backend_port=port,
            ssh_timeout=_env_int(env, "WEBFE_SSH_TIMEOUT", 10, minimum=1),
            ssh_keepalive=_env_int(env, "WEBFE_SSH_KEEPALIVE", 30, minimum=0),
            hostkey_policy=_env_str(env, "WEBFE_HOSTKEY_POLICY", "accept_new").lower(),
            known_hosts_path=_env_str(env, "WEBFE_KNOWN_HOSTS", os.path.join(state_dir, "known_hosts")),
            local_root=_env_str(env, "WEBFE_LOCAL_ROOT", "/"),
            local_user=_env_str(env, "WEBFE_LOCAL_USER"),
            local_password_hash=_env_str(env, "WEBFE_LOCAL_PASSWORD_HASH"),
            session_ttl=_env_int(env, "WEBFE_SESSION_TTL", 86400, minimum=60),
            max_sessions=_env_int(env, "WEBFE_MAX_SESSIONS", 64, minimum=1),
            max_upload_mb=_env_int(env, "WEBFE_MAX_UPLOAD_MB", 200, minimum=1),
            content_max_bytes=_env_int(env, "WEBFE_CONTENT_MAX_BYTES", 1024 * 1024, minimum=1),
            content_encoding=_env_str(env, "WEBFE_CONTENT_ENCODING", "latin-1"),
            secret_key=_env_str(env, "WEBFE_SECRET_KEY") or secrets.token_hex(32),
            state_dir=state_dir,
            log_dir=_env_str(env, "WEBFE_LOG_DIR", os.path.join(state_dir, "log")),
        )
