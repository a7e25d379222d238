"""
Route tests: export, viewer overlay, security events, health.

Dependencies are swapped through app.dependency_overrides; nothing touches
the configured database or blob store.

Run with: pytest tests/test_routes.py -v
"""
import asyncio
import io

import pypdfium2 as pdfium
import pytest
from fastapi.testclient import TestClient
from PIL import Image

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import main
from adapters.blob import LocalBlobStore
from adapters.sqlite import SqliteAdapter
from core.auth import create_session_token
from core.errors import QueryError
from settings import Settings

SECRET = "test-secret-key-that-is-long-enough-for-hs256"


def _png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (400, 300), "white").save(buf, format="PNG")
    return buf.getvalue()


class FailingAssetsStore(SqliteAdapter):
    def list_assets(self, survey_id):
        raise QueryError("connection lost")


class LoopRecordingStore(SqliteAdapter):
    """Records whether survey lookups ran with an event loop in the calling thread."""

    on_loop = None

    def get_survey(self, survey_id):
        try:
            asyncio.get_running_loop()
            self.on_loop = True
        except RuntimeError:
            self.on_loop = False
        return super().get_survey(survey_id)


@pytest.fixture
def settings():
    return Settings(jwt_secret=SECRET, org_name="TES", enforce_license=True, diagram_extensions="png")


@pytest.fixture
def store():
    s = SqliteAdapter.from_url("sqlite://")
    s.upsert_profile("u-1", role="client", company_name="Acme Ltd", email="viewer@acme.test")
    s.upsert_profile("staff", role="internal", company_name="TES")
    s.upsert_profile("revoked", role="client", company_name="Gone Ltd", license_status="revoked")
    return s


@pytest.fixture
def blobs(tmp_path):
    b = LocalBlobStore(str(tmp_path / "blobs"))
    b.upload("asset-diagrams", "templates/check_valve.png", _png())
    return b


@pytest.fixture
def client(settings, store, blobs):
    main.app.dependency_overrides[main.get_settings_dep] = lambda: settings
    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_blob_store] = lambda: blobs
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def _auth(user_id="u-1", email=None):
    token, _ = create_session_token(user_id=user_id, email=email, secret=SECRET)
    return {"Authorization": f"Bearer {token}"}


def _survey(store, **kw):
    fields = {"site_name": "Unit 3 Boiler House", "project_reference": "PRJ-2026-001"}
    fields.update(kw)
    return store.create_survey(**fields)


class TestExportAuth:

    def test_no_session_is_401(self, client, store):
        sid = _survey(store)
        assert client.get(f"/surveys/{sid}/export").status_code == 401

    def test_bad_token_is_401(self, client, store):
        sid = _survey(store)
        r = client.get(f"/surveys/{sid}/export", headers={"Authorization": "Bearer nope"})
        assert r.status_code == 401

    def test_revoked_license_is_403(self, client, store):
        sid = _survey(store)
        assert client.get(f"/surveys/{sid}/export", headers=_auth("revoked")).status_code == 403

    def test_revoked_license_allowed_when_not_enforced(self, client, store, settings):
        sid = _survey(store)
        main.app.dependency_overrides[main.get_settings_dep] = lambda: settings.model_copy(
            update={"enforce_license": False}
        )
        assert client.get(f"/surveys/{sid}/export", headers=_auth("revoked")).status_code == 200

    def test_session_cookie(self, client, store, settings):
        sid = _survey(store)
        token, _ = create_session_token(user_id="u-1", secret=SECRET)
        client.cookies.set(settings.session_cookie_name, token)
        assert client.get(f"/surveys/{sid}/export").status_code == 200

    def test_unknown_user_still_exports_as_client(self, client, store):
        sid = _survey(store)
        assert client.get(f"/surveys/{sid}/export", headers=_auth("nobody")).status_code == 200


class TestExport:

    def test_unknown_survey_is_404(self, client):
        assert client.get("/surveys/missing/export", headers=_auth()).status_code == 404

    def test_asset_query_failure_is_500(self, settings, blobs):
        broken = FailingAssetsStore(engine=SqliteAdapter.from_url("sqlite://").engine)
        broken.upsert_profile("u-1", role="client", company_name="Acme Ltd")
        sid = _survey(broken)
        main.app.dependency_overrides[main.get_settings_dep] = lambda: settings
        main.app.dependency_overrides[main.get_store] = lambda: broken
        main.app.dependency_overrides[main.get_blob_store] = lambda: blobs
        try:
            r = TestClient(main.app).get(f"/surveys/{sid}/export", headers=_auth())
        finally:
            main.app.dependency_overrides.clear()
        assert r.status_code == 500

    def test_survey_lookup_runs_off_the_event_loop(self, settings, blobs):
        recording = LoopRecordingStore(engine=SqliteAdapter.from_url("sqlite://").engine)
        recording.upsert_profile("u-1", role="client", company_name="Acme Ltd")
        sid = _survey(recording)
        main.app.dependency_overrides[main.get_settings_dep] = lambda: settings
        main.app.dependency_overrides[main.get_store] = lambda: recording
        main.app.dependency_overrides[main.get_blob_store] = lambda: blobs
        try:
            r = TestClient(main.app).get(f"/surveys/{sid}/export", headers=_auth())
        finally:
            main.app.dependency_overrides.clear()
        assert r.status_code == 200
        assert recording.on_loop is False

    def test_pdf_response(self, client, store):
        sid = _survey(store)
        store.create_asset(sid, asset_tag="CV-001", asset_type="check_valve", location_area="Roof", quantity=2)
        store.create_asset(sid, asset_tag="XX-002", asset_type="unknown_thing")

        r = client.get(f"/surveys/{sid}/export", headers=_auth(email="viewer@acme.test"))

        assert r.status_code == 200
        assert r.headers["content-type"] == "application/pdf"
        assert r.headers["content-disposition"] == 'attachment; filename="TES_Survey_PRJ-2026-001.pdf"'
        assert r.headers["cache-control"] == "no-store"
        assert "x-request-id" in r.headers

        pdf = pdfium.PdfDocument(r.content)
        try:
            assert len(pdf) == 2
            first = pdf[0].get_textpage().get_text_range()
            second = pdf[1].get_textpage().get_text_range()
        finally:
            pdf.close()
        assert "CV-001" in first and "DIAGRAM UNAVAILABLE" not in first
        assert "XX-002" in second and "DIAGRAM UNAVAILABLE" in second

    def test_empty_survey_has_one_page(self, client, store):
        sid = _survey(store)
        r = client.get(f"/surveys/{sid}/export", headers=_auth())
        pdf = pdfium.PdfDocument(r.content)
        try:
            assert len(pdf) == 1
        finally:
            pdf.close()

    def test_missing_reference_filename(self, client, store):
        sid = _survey(store, project_reference=None)
        r = client.get(f"/surveys/{sid}/export", headers=_auth())
        assert r.headers["content-disposition"] == 'attachment; filename="TES_Survey_REF-UNKNOWN.pdf"'


class TestViewerOverlay:

    def test_client_canvas_overlay(self, client):
        r = client.get("/viewer/overlay", params={"width": 800, "height": 600}, headers=_auth())
        assert r.status_code == 200
        body = r.json()
        assert body["mode"] == "canvas"
        assert body["show_diagonals"] is True
        assert sum(1 for n in body["nodes"] if n["type"] == "Group") == 8
        assert "blind" in body["css"]

    def test_internal_svg_overlay_footer_only(self, client):
        r = client.get(
            "/viewer/overlay",
            params={"width": 800, "height": 600, "mode": "svg"},
            headers=_auth("staff"),
        )
        body = r.json()
        assert body["show_diagonals"] is False
        assert "diagonals" not in body["css"]
        assert "TES" in body["css"]["footer"]["text"]

    def test_requires_session(self, client):
        assert client.get("/viewer/overlay", params={"width": 1, "height": 1}).status_code == 401

    def test_bad_mode_is_422(self, client):
        r = client.get("/viewer/overlay", params={"width": 1, "height": 1, "mode": "webgl"}, headers=_auth())
        assert r.status_code == 422


class TestSecurityEvents:

    def test_anonymous_is_unsuccessful(self, client, store):
        r = client.post("/security/events", json={"key": "PrintScreen"})
        assert r.status_code == 200
        assert r.json()["success"] is False
        assert store.list_security_events() == []

    def test_screenshot_attempt_is_logged(self, client, store):
        r = client.post(
            "/security/events",
            json={"key": "4", "meta": True, "shift": True, "path": "/surveys/s-1"},
            headers=_auth(),
        )
        body = r.json()
        assert body["success"] is True
        assert body["detected"] is True and body["logged"] is True
        events = store.list_security_events("u-1")
        assert len(events) == 1
        assert events[0]["action"] == "SCREENSHOT_ATTEMPT"
        assert events[0]["metadata"]["path"] == "/surveys/s-1"

    def test_focus_loss_obscures(self, client, store):
        r = client.post("/security/events", json={"event": "focus", "focused": False}, headers=_auth())
        assert r.json()["obscure"] is True
        assert store.list_security_events() == []

    def test_focus_without_state_is_422(self, client):
        r = client.post("/security/events", json={"event": "focus"}, headers=_auth())
        assert r.status_code == 422


class TestHealth:

    def test_healthz(self, client):
        assert client.get("/healthz").json()["status"] == "ok"

    def test_readyz(self, client):
        assert client.get("/readyz").json()["status"] == "ready"
