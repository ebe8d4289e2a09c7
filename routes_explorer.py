"""File explorer bridge API as a Flask Blueprint.

Endpoints (all require a bound session, enforced by the app's session guard):

- POST /api/_ and /bridges/php/handler.php: angular-filemanager JSON actions
- POST /api/upload: multipart upload (``destination`` + file parts)
- POST /api/download: not supported
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from flask import Blueprint, g, jsonify, request

from services.dispatcher import dispatch
from services.errors import ConnectError, ExplorerError, NotReadyError
from services.logging_setup import core_log as _core_log
from services.models import ActionRequest, ResponseEnvelope
from services.session_binder import SessionBinder, SessionRecord


API_PREFIXES = ("/api/", "/bridges/php/handler.php")


def is_api_path(path: str) -> bool:
    return (path or "").startswith(API_PREFIXES)


def envelope_response(env: ResponseEnvelope) -> Any:
    return jsonify(env.to_json()), env.status


def create_explorer_blueprint(*, binder: SessionBinder) -> Blueprint:
    bp = Blueprint("explorer", __name__)

    def _current() -> Optional[SessionRecord]:
        rec = getattr(g, "fe_session", None)
        if rec is None or rec.explorer is None:
            return None
        return rec

    def _respond(env: ResponseEnvelope, rec: Optional[SessionRecord]) -> Any:
        if env.status >= 500 and rec is not None:
            # Failed: the caller has to log in again
            binder.fail(rec.session_key, rec.explorer)
        return envelope_response(env)

    def api_handler() -> Any:
        rec = _current()
        if rec is None:
            return envelope_response(ResponseEnvelope.fail("unauthorized", 500))
        req = ActionRequest.from_json(request.get_json(silent=True))
        return _respond(dispatch(req, rec.explorer), rec)

    bp.add_url_rule("/api/_", "api_handler", api_handler, methods=["POST"])
    bp.add_url_rule("/bridges/php/handler.php", "php_bridge_handler", api_handler, methods=["POST"])

    @bp.post("/api/upload")
    def api_upload() -> Any:
        rec = _current()
        if rec is None:
            return envelope_response(ResponseEnvelope.fail("unauthorized", 500))
        destination = str(request.form.get("destination") or "/")
        parts = list(request.files.items(multi=True))
        if not parts:
            return envelope_response(ResponseEnvelope.fail("no files", 400))

        failures: List[Tuple[str, str]] = []
        for _field, fs in parts:
            name = fs.filename or ""
            try:
                rec.explorer.upload_file(destination, fs.stream, name)
            except (ConnectError, NotReadyError) as e:
                return _respond(ResponseEnvelope.fail(str(e), 500), rec)
            except (ExplorerError, OSError, ValueError) as e:
                failures.append((name, str(e)))
        if failures:
            _core_log("warning", "fe.upload failed", destination=destination, failed=len(failures), total=len(parts))
            return envelope_response(ResponseEnvelope.fail(failures[-1][1], 400))
        _core_log("info", "fe.upload", destination=destination, files=len(parts))
        return envelope_response(ResponseEnvelope.ok())

    @bp.post("/api/download")
    def api_download() -> Any:
        return envelope_response(ResponseEnvelope.not_supported())

    return bp
