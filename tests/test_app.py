"""HTTP boundary: session guard, login/logout, bridge API, upload."""

from __future__ import annotations

import dataclasses
import io

from app import create_app
from services.errors import ConnectError
from tests.conftest import PASSWORD, USERNAME


def _api(client, **body):
    return client.post("/api/_", json=body)


def _binder(app):
    return app.extensions["webfe.binder"]


def test_pages_redirect_to_login_when_anonymous(client) -> None:
    resp = client.get("/")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/login")
    assert client.get("/login").status_code == 200


def test_api_requires_session(client) -> None:
    resp = _api(client, action="list", path="/")
    assert resp.status_code == 500
    assert resp.get_json() == {"result": {"success": False, "error": "unauthorized"}}


def test_bad_credentials_flash_and_redirect(client, app) -> None:
    resp = client.post("/login", data={"username": USERNAME, "password": "wrong"})

    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/login")
    page = client.get("/login")
    assert b"authentication failed" in page.data
    assert len(_binder(app)) == 0


def test_login_then_list(logged_in, local_root) -> None:
    (local_root / "a.txt").write_bytes(b"hello")
    (local_root / "b").mkdir()

    resp = _api(logged_in, action="list", path="/")

    assert resp.status_code == 200
    items = resp.get_json()["result"]
    assert [(i["name"], i["type"]) for i in items] == [("a.txt", "file"), ("b", "dir")]
    assert items[0]["size"] == "5"
    assert set(items[0]) == {"name", "rights", "size", "date", "type"}


def test_php_bridge_path_is_the_same_handler(logged_in, local_root) -> None:
    (local_root / "x").mkdir()
    resp = logged_in.post("/bridges/php/handler.php", json={"action": "list", "path": "/"})
    assert [i["name"] for i in resp.get_json()["result"]] == ["x"]


def test_signed_in_user_is_sent_from_login_to_index(logged_in) -> None:
    resp = logged_in.get("/login")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/")
    assert USERNAME.encode() in logged_in.get("/").data


def test_folder_scenario_over_http(logged_in, local_root) -> None:
    (local_root / "tmp").mkdir()

    assert _api(logged_in, action="createFolder", newPath="/tmp/x").get_json() == {
        "result": {"success": True, "error": None}
    }
    names = {i["name"]: i["type"] for i in _api(logged_in, action="list", path="/tmp").get_json()["result"]}
    assert names == {"x": "dir"}

    assert _api(logged_in, action="rename", item="/tmp/x", newItemPath="/tmp/y").status_code == 200
    names = [i["name"] for i in _api(logged_in, action="list", path="/tmp").get_json()["result"]]
    assert names == ["y"]


def test_business_failure_is_400(logged_in) -> None:
    resp = _api(logged_in, action="rename", item="/nope", newItemPath="/other")
    assert resp.status_code == 400
    body = resp.get_json()["result"]
    assert body["success"] is False
    assert "No such file" in body["error"]


def test_bad_permission_code_is_400(logged_in, local_root) -> None:
    (local_root / "f").write_text("x")
    resp = _api(logged_in, action="changePermissions", items=["/f"], permsCode="abc", recursive=False)
    assert resp.status_code == 400


def test_compress_is_not_supported(logged_in, local_root) -> None:
    (local_root / "f").write_text("x")
    resp = _api(logged_in, action="compress", items=["/f"], destination="/")
    assert resp.status_code == 200
    assert resp.get_json() == {"result": {"success": False, "error": "Not Supported"}}
    assert sorted(p.name for p in local_root.iterdir()) == ["f"]


def test_download_is_not_supported(logged_in) -> None:
    resp = logged_in.post("/api/download")
    assert resp.get_json() == {"result": {"success": False, "error": "Not Supported"}}


def test_upload(logged_in, local_root) -> None:
    (local_root / "up").mkdir()
    resp = logged_in.post(
        "/api/upload",
        data={
            "destination": "/up",
            "file-0": (io.BytesIO(b"one"), "one.txt"),
            "file-1": (io.BytesIO(b"two"), "two.txt"),
        },
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    assert (local_root / "up" / "one.txt").read_bytes() == b"one"
    assert (local_root / "up" / "two.txt").read_bytes() == b"two"


def test_upload_into_missing_dir_fails(logged_in) -> None:
    resp = logged_in.post(
        "/api/upload",
        data={"destination": "/missing", "file-0": (io.BytesIO(b"x"), "x.txt")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400


def test_static_files_served_without_login(settings, tmp_path) -> None:
    first, second = tmp_path / "s1", tmp_path / "s2"
    first.mkdir()
    second.mkdir()
    (second / "app.js").write_text("console.log(1)")
    (first / "index.css").write_text("body{}")
    app = create_app(dataclasses.replace(settings, statics=[str(first), str(second)]))
    client = app.test_client()

    assert client.get("/static/app.js").data == b"console.log(1)"
    assert client.get("/static/index.css").status_code == 200
    assert client.get("/static/missing.js").status_code == 404


def test_logout_closes_explorer_and_requires_login_again(logged_in, app) -> None:
    binder = _binder(app)
    assert len(binder) == 1
    with logged_in.session_transaction() as sess:
        key = sess["uid"]
    fe = binder.resolve(key).explorer

    resp = logged_in.get("/logout")

    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/login")
    assert fe.closed
    assert binder.resolve(key) is None
    assert _api(logged_in, action="list", path="/").status_code == 500

    logged_in.post("/login", data={"username": USERNAME, "password": PASSWORD})
    assert _api(logged_in, action="list", path="/").status_code == 200


def test_logout_prefix_match(logged_in, app) -> None:
    resp = logged_in.get("/logout/now")
    assert resp.status_code == 302
    assert len(_binder(app)) == 0


def test_relogin_rotates_key_and_closes_previous(logged_in, app) -> None:
    binder = _binder(app)
    with logged_in.session_transaction() as sess:
        first_key = sess["uid"]
    first = binder.resolve(first_key).explorer

    logged_in.post("/login", data={"username": USERNAME, "password": PASSWORD})

    with logged_in.session_transaction() as sess:
        second_key = sess["uid"]
    assert second_key != first_key
    assert first.closed
    assert len(binder) == 1


def test_backend_loss_evicts_session(logged_in, app, monkeypatch) -> None:
    binder = _binder(app)
    with logged_in.session_transaction() as sess:
        key = sess["uid"]
    fe = binder.resolve(key).explorer

    def dead(path):
        raise ConnectError("connection to backend lost")

    monkeypatch.setattr(fe, "list_dir", dead)

    resp = _api(logged_in, action="list", path="/")

    assert resp.status_code == 500
    assert resp.get_json()["result"]["error"] == "connection to backend lost"
    assert fe.closed
    assert binder.resolve(key) is None
    page = logged_in.get("/")
    assert page.status_code == 302 and page.headers["Location"].endswith("/login")


def test_ssh_login_with_unusable_known_hosts_flashes_error(settings, tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    app = create_app(dataclasses.replace(
        settings,
        backend="ssh",
        backend_host="127.0.0.1",
        known_hosts_path=str(blocker / "known_hosts"),
    ))
    client = app.test_client()

    resp = client.post("/login", data={"username": USERNAME, "password": PASSWORD})

    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/login")
    assert b"known_hosts" in client.get("/login").data
    assert len(_binder(app)) == 0
