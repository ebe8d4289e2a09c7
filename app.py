"""webfe Flask application: session guard, login/logout and page routes."""

from __future__ import annotations

import os
import time
from typing import Any, Optional

from flask import (
    Flask,
    abort,
    flash,
    g,
    redirect,
    render_template,
    request,
    send_from_directory,
    session,
    url_for,
)
from werkzeug.utils import safe_join

from routes_explorer import create_explorer_blueprint, envelope_response, is_api_path
from services.backends import ExplorerFactory
from services.config import Settings
from services.errors import ConnectError, SessionLimitError
from services.logging_setup import access_enabled as _access_enabled
from services.logging_setup import access_logger as _get_access_logger
from services.logging_setup import core_log as _core_log
from services.models import Identity, ResponseEnvelope
from services.session_binder import SessionBinder


SESSION_KEY_FIELD = "uid"


def create_app(settings: Optional[Settings] = None, binder: Optional[SessionBinder] = None) -> Flask:
    settings = settings or Settings.from_env()
    if binder is None:
        binder = SessionBinder(
            ExplorerFactory(settings),
            ttl_seconds=settings.session_ttl,
            max_sessions=settings.max_sessions,
        )

    app = Flask(__name__, static_folder=None, template_folder="templates")
    app.secret_key = settings.secret_key
    app.config.setdefault("SESSION_COOKIE_HTTPONLY", True)
    app.config.setdefault("SESSION_COOKIE_SAMESITE", "Lax")
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_mb * 1024 * 1024
    app.extensions["webfe.settings"] = settings
    app.extensions["webfe.binder"] = binder

    app.register_blueprint(create_explorer_blueprint(binder=binder))

    def _auth_error(message: str) -> Any:
        flash(message, "error")
        return redirect(url_for("login"))

    # --- Access log (optional) ---

    @app.before_request
    def _access_log_before_request():
        g._webfe_t0 = time.time()
        return None

    @app.after_request
    def _access_log_after_request(response):
        if not _access_enabled():
            return response
        path = request.path or ""
        if path.startswith("/static/"):
            return response
        # no cookies/auth details
        client = request.headers.get("X-Forwarded-For") or request.remote_addr or ""
        t0 = getattr(g, "_webfe_t0", None)
        line = f"{client} {request.method} {path} -> {response.status_code}"
        if t0:
            line += f" ({int((time.time() - float(t0)) * 1000.0)}ms)"
        _get_access_logger().info(line)
        return response

    # --- Session guard ---

    @app.before_request
    def _session_guard():
        """Resolve the caller's bound session before any route runs.

        - Static files are always reachable.
        - Unbound callers may only reach /login; API paths get a JSON 500,
          pages are redirected to the login form.
        - A bound caller on a /logout* path is logged out.
        """
        path = request.path or ""
        if path.startswith("/static/"):
            return None

        key = session.get(SESSION_KEY_FIELD)
        try:
            rec = binder.resolve(key)
        except ConnectError as e:
            session.pop(SESSION_KEY_FIELD, None)
            if is_api_path(path):
                return envelope_response(ResponseEnvelope.fail(str(e), 500))
            return _auth_error(str(e))

        if rec is None:
            if key:
                # expired or evicted
                session.pop(SESSION_KEY_FIELD, None)
            if path.startswith("/login"):
                return None
            if is_api_path(path):
                return envelope_response(ResponseEnvelope.fail("unauthorized", 500))
            return redirect(url_for("login"))

        g.fe_session = rec
        g.user = rec.username

        if path.startswith("/logout"):
            binder.logout(key)
            session.clear()
            return redirect(url_for("login"))
        if path.startswith("/login") and request.method == "GET":
            return redirect(url_for("index"))
        return None

    @app.context_processor
    def _inject_user():
        return {"user": getattr(g, "user", None)}

    # --- Pages ---

    @app.get("/")
    def index():
        return render_template("index.html")

    @app.get("/login")
    def login():
        return render_template("login.html")

    @app.post("/login")
    def login_post():
        username = (request.values.get("username") or "").strip()
        password = request.values.get("password") or ""

        # a new key on every login; whatever was bound before is closed
        old_key = session.get(SESSION_KEY_FIELD)
        if old_key:
            binder.logout(old_key)
        session.clear()

        key = binder.new_session_key()
        try:
            binder.login(key, Identity(username, password))
        except (ConnectError, SessionLimitError) as e:
            return _auth_error(str(e))
        session[SESSION_KEY_FIELD] = key
        return redirect(url_for("index"))

    @app.get("/logout")
    def logout():
        # reached only when nothing was bound; the guard handles bound callers
        session.clear()
        return redirect(url_for("login"))

    # --- Static assets from the configured directories, first match wins ---

    @app.get("/static/<path:filename>")
    def static_files(filename: str):
        for d in settings.statics:
            full = safe_join(d, filename)
            if full is not None and os.path.isfile(full):
                return send_from_directory(d, filename)
        abort(404)

    _core_log(
        "info",
        "webfe app created",
        pid=os.getpid(),
        backend=settings.backend,
        host=settings.backend_host if settings.backend == "ssh" else settings.local_root,
        session_ttl=settings.session_ttl,
    )
    return app
