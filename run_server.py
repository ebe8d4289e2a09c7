"""webfe entrypoint: threaded WSGI server.

Each request runs in its own worker thread; the session binder is the only
shared state. Every bound explorer is closed on shutdown (SIGINT/SIGTERM).
"""

from __future__ import annotations

import signal
import sys

from werkzeug.serving import make_server

from app import create_app
from services.config import Settings, parse_bind
from services.logging_setup import core_log as _core_log
from services.logging_setup import get_paths, setup_logging


def _raise_exit(signum, frame) -> None:
    raise SystemExit(0)


def main() -> int:
    settings = Settings.from_env()
    setup_logging(settings.log_dir)

    if settings.server_type != "http":
        _core_log("error", "unsupported server type", server_type=settings.server_type)
        print(f"webfe: unsupported WEBFE_SERVER_TYPE {settings.server_type!r}", file=sys.stderr)
        return 2

    host, port = parse_bind(settings.bind)
    app = create_app(settings)
    binder = app.extensions["webfe.binder"]

    srv = make_server(host, port, app, threaded=True)
    signal.signal(signal.SIGTERM, _raise_exit)
    core_path, access_path = get_paths()
    _core_log("info", "webfe listening", host=host, port=port, backend=settings.backend, core_log=core_path, access_log=access_path)
    try:
        srv.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        srv.server_close()
        binder.close_all()
        _core_log("info", "webfe stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
