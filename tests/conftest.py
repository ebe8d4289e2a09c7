"""Shared fixtures: a temporary local root, settings for the local backend, app + client."""

from __future__ import annotations

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from services.config import Settings
from services.local_explorer import LocalFileExplorer


USERNAME = "alice"
PASSWORD = "s3cret"


@pytest.fixture
def local_root(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def explorer(local_root):
    fe = LocalFileExplorer(str(local_root))
    fe.init()
    yield fe
    fe.close()


@pytest.fixture
def settings(tmp_path, local_root) -> Settings:
    return Settings(
        backend="local",
        local_root=str(local_root),
        local_user=USERNAME,
        local_password_hash=generate_password_hash(PASSWORD),
        secret_key="test-secret",
        state_dir=str(tmp_path / "state"),
        log_dir=str(tmp_path / "state" / "log"),
        session_ttl=3600,
        max_sessions=4,
    )


@pytest.fixture
def app(settings):
    app = create_app(settings)
    app.config["TESTING"] = True
    yield app
    app.extensions["webfe.binder"].close_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_in(client):
    resp = client.post("/login", data={"username": USERNAME, "password": PASSWORD})
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/")
    return client
