"""Binds an authenticated identity to one live FileExplorer per session key.

Per session key the lifecycle is::

    Anonymous -> Authenticating -> Bound -> (Closed | Expired | Failed)

- ``login`` runs Authenticating: the explorer is built and initialized while
  the key's lock is held and only a fully initialized explorer is stored.
  A previous record under the same key is closed first (superseded).
- ``resolve`` returns the Bound record for a key, or None.
- ``logout`` (Closed), ``cleanup`` (Expired, absolute TTL) and ``fail``
  (Failed, dead backend) remove the record and close its explorer.

Sessions live only in RAM. Session keys are random tokens, never usernames.
"""

from __future__ import annotations

import secrets
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from services.errors import ConnectError, SessionLimitError
from services.explorer import FileExplorer
from services.logging_setup import core_log as _core_log
from services.models import Identity


def _key_tag(session_key: str) -> str:
    return (session_key or "")[:6] + "…"


@dataclass
class SessionRecord:
    session_key: str = field(repr=False)
    identity: Identity
    explorer: Optional[FileExplorer] = None
    created_ts: float = 0.0

    @property
    def username(self) -> str:
        return self.identity.username


class SessionBinder:
    def __init__(
        self,
        connect: Callable[[Identity], FileExplorer],
        *,
        ttl_seconds: float = 86400,
        max_sessions: int = 64,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._connect = connect
        self.ttl_seconds = float(ttl_seconds)
        self.max_sessions = int(max_sessions)
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, SessionRecord] = {}
        # session key -> [lock, number of threads using it]
        self._key_locks: Dict[str, list] = {}
        self._pending = 0

    @staticmethod
    def new_session_key() -> str:
        return secrets.token_urlsafe(32)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    @contextmanager
    def _locked(self, session_key: str) -> Iterator[None]:
        """Serialize check-then-act sequences for one session key."""
        with self._lock:
            slot = self._key_locks.setdefault(session_key, [threading.Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._lock:
                slot[1] -= 1
                if slot[1] == 0:
                    self._key_locks.pop(session_key, None)

    def _pop(self, session_key: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._sessions.pop(session_key, None)

    def _close_record(self, rec: Optional[SessionRecord], reason: str) -> None:
        if rec is None:
            return
        explorer, rec.explorer = rec.explorer, None
        if explorer is not None:
            try:
                explorer.close()
            except Exception as e:  # a failing close must not keep the record alive
                _core_log("warning", "session close error", user=rec.username, reason=reason, error=e)
        _core_log("info", "session closed", user=rec.username, key=_key_tag(rec.session_key), reason=reason)

    # --------------------------- lifecycle ---------------------------

    def cleanup(self) -> None:
        """Evict every record older than the TTL, closing its explorer."""
        now = self._clock()
        with self._lock:
            dead = [k for k, r in self._sessions.items() if (now - r.created_ts) > self.ttl_seconds]
            expired = [self._sessions.pop(k) for k in dead]
        for rec in expired:
            self._close_record(rec, "expired")

    def login(self, session_key: str, identity: Identity) -> SessionRecord:
        """Authenticate ``identity`` and bind a fresh explorer to ``session_key``.

        Raises ConnectError or SessionLimitError; on failure nothing stays bound
        to the key.
        """
        if not session_key:
            raise ValueError("session key required")
        self.cleanup()
        with self._locked(session_key):
            self._close_record(self._pop(session_key), "superseded")
            with self._lock:
                if len(self._sessions) + self._pending >= self.max_sessions:
                    raise SessionLimitError(self.max_sessions)
                self._pending += 1
            try:
                explorer = self._connect(identity)
            except ConnectError as e:
                _core_log("warning", "login failed", user=identity.username, key=_key_tag(session_key), error=e)
                raise
            finally:
                with self._lock:
                    self._pending -= 1
            now = self._clock()
            rec = SessionRecord(
                session_key=session_key,
                identity=identity,
                explorer=explorer,
                created_ts=now,
            )
            with self._lock:
                self._sessions[session_key] = rec
        _core_log("info", "session bound", user=identity.username, key=_key_tag(session_key), backend=explorer.kind)
        return rec

    def resolve(self, session_key: Optional[str]) -> Optional[SessionRecord]:
        """Return the Bound record for ``session_key``, connecting lazily if needed.

        A failed lazy connect evicts the record and re-raises ConnectError.
        """
        if not session_key:
            return None
        self.cleanup()
        with self._lock:
            rec = self._sessions.get(session_key)
        if rec is None:
            return None
        if rec.explorer is None:
            with self._locked(session_key):
                with self._lock:
                    rec = self._sessions.get(session_key)
                if rec is None:
                    return None
                if rec.explorer is None:
                    try:
                        rec.explorer = self._connect(rec.identity)
                    except ConnectError:
                        self._close_record(self._pop(session_key), "failed")
                        raise
        return rec

    def logout(self, session_key: Optional[str]) -> bool:
        if not session_key:
            return False
        with self._locked(session_key):
            rec = self._pop(session_key)
            self._close_record(rec, "logout")
        return rec is not None

    def fail(self, session_key: str, explorer: Optional[FileExplorer] = None) -> bool:
        """Evict a record whose backend connection turned out unusable.

        With ``explorer`` given, the record is only evicted while it still
        holds that explorer; a concurrent re-login is left alone.
        """
        with self._locked(session_key):
            with self._lock:
                rec = self._sessions.get(session_key)
                if rec is None or (explorer is not None and rec.explorer is not explorer):
                    return False
                self._sessions.pop(session_key, None)
            self._close_record(rec, "failed")
        return True

    def close_all(self) -> None:
        with self._lock:
            recs: List[SessionRecord] = list(self._sessions.values())
            self._sessions.clear()
        for rec in recs:
            self._close_record(rec, "shutdown")
