"""
Tests for storage adapters (SQLite, JSON files, blob stores).

Run with: pytest tests/test_adapters.py -v
"""
import asyncio

import httpx
import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adapters.blob import HttpBlobStore, LocalBlobStore
from adapters.json import JsonAdapter
from adapters.sqlite import SqliteAdapter
from core.errors import AuditSinkError, BlobNotFoundError, BlobStoreError, QueryError
from core.security_guard import ScreenshotGuard
from models.converters import asset_from_row, profile_from_row, survey_from_row
from models import IdentityContext, Role


@pytest.fixture(params=["sqlite", "json"])
def store(request, tmp_path):
    if request.param == "sqlite":
        return SqliteAdapter.from_url("sqlite://")
    return JsonAdapter(str(tmp_path / "json"))


class TestSurveyStore:

    def test_missing_rows_are_none(self, store):
        assert store.get_profile("nobody") is None
        assert store.get_survey("nothing") is None

    def test_empty_asset_list_is_not_an_error(self, store):
        sid = store.create_survey(site_name="Empty Site")
        assert store.list_assets(sid) == []

    def test_survey_round_trip(self, store):
        sid = store.create_survey(site_name="Unit 3", project_reference="PRJ-1", client_name="Acme")
        survey = survey_from_row(store.get_survey(sid))
        assert survey.id == sid
        assert survey.site_name == "Unit 3"
        assert survey.project_reference == "PRJ-1"

    def test_assets_in_insertion_order(self, store):
        sid = store.create_survey(site_name="S")
        for tag in ("Z-9", "A-1", "M-5"):
            store.create_asset(sid, asset_tag=tag, asset_type="check_valve")
        other = store.create_survey(site_name="Other")
        store.create_asset(other, asset_tag="X-1", asset_type="gate_valve")

        tags = [asset_from_row(r).asset_tag for r in store.list_assets(sid)]
        assert tags == ["Z-9", "A-1", "M-5"]

    def test_asset_defaults(self, store):
        sid = store.create_survey(site_name="S")
        store.create_asset(sid, asset_tag="T-1", asset_type="tee", obstruction_present=True)
        asset = asset_from_row(store.list_assets(sid)[0])
        assert asset.quantity == 1
        assert asset.complexity_level == 1
        assert asset.obstruction_present is True
        assert asset.location_area is None

    def test_profile_upsert(self, store):
        store.upsert_profile("u-1", role="internal", company_name="TES")
        store.upsert_profile("u-1", role="client", company_name="Acme", license_status="revoked")
        profile = profile_from_row(store.get_profile("u-1"))
        assert profile.role == Role.CLIENT
        assert profile.company_name == "Acme"
        assert profile.license_status == "revoked"

    def test_audit_events(self, store):
        assert store.log_event("SCREENSHOT_ATTEMPT", {"path": "/x"}, user_id="u-1") == {"success": True}
        store.log_event("OTHER", {}, user_id="u-2")
        events = store.list_security_events("u-1")
        assert len(events) == 1
        assert events[0]["action"] == "SCREENSHOT_ATTEMPT"
        assert events[0]["metadata"] == {"path": "/x"}


class TestJsonAdapterFailures:

    def test_corrupt_file_is_query_error(self, tmp_path):
        adapter = JsonAdapter(str(tmp_path))
        (tmp_path / "assets.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(QueryError):
            adapter.list_assets("s-1")

    def test_corrupt_log_file_raises_audit_error(self, tmp_path):
        adapter = JsonAdapter(str(tmp_path))
        (tmp_path / "security_logs.json").write_text("{}", encoding="utf-8")
        with pytest.raises(AuditSinkError):
            adapter.log_event("SCREENSHOT_ATTEMPT", {})


class TestSqliteAdapterFailures:

    def test_log_write_failure_raises_audit_error(self):
        adapter = SqliteAdapter.from_url("sqlite://")
        with adapter.engine.begin() as conn:
            conn.exec_driver_sql("DROP TABLE security_logs")
        with pytest.raises(AuditSinkError):
            adapter.log_event("SCREENSHOT_ATTEMPT", {"path": "/x"}, user_id="u-1")

    def test_guard_swallows_failed_write(self):
        adapter = SqliteAdapter.from_url("sqlite://")
        with adapter.engine.begin() as conn:
            conn.exec_driver_sql("DROP TABLE security_logs")
        identity = IdentityContext(user_id="u-1", role=Role.CLIENT, company_name="Acme")
        resp = ScreenshotGuard(adapter).handle_key(identity, key="PrintScreen")
        assert resp.detected is True
        assert resp.logged is False


class TestConverters:

    def test_bad_role_falls_back_to_client(self):
        assert profile_from_row({"id": "u", "role": "superuser"}).role == Role.CLIENT

    def test_junk_numbers_fall_back(self):
        asset = asset_from_row({
            "id": "a", "survey_id": "s", "asset_tag": "T", "asset_type": "t",
            "quantity": "lots", "complexity_level": None, "obstruction_present": "TRUE",
        })
        assert asset.quantity == 1
        assert asset.complexity_level == 1
        assert asset.obstruction_present is True


class TestLocalBlobStore:

    def test_download(self, tmp_path):
        blobs = LocalBlobStore(str(tmp_path))
        blobs.upload("asset-diagrams", "templates/check_valve.png", b"abc")
        assert asyncio.run(blobs.download("asset-diagrams", "templates/check_valve.png")) == b"abc"

    def test_missing_object(self, tmp_path):
        blobs = LocalBlobStore(str(tmp_path))
        with pytest.raises(BlobNotFoundError):
            asyncio.run(blobs.download("asset-diagrams", "templates/nope.png"))

    def test_path_traversal_rejected(self, tmp_path):
        blobs = LocalBlobStore(str(tmp_path / "root"))
        (tmp_path / "secret.txt").write_bytes(b"x")
        with pytest.raises(BlobStoreError):
            asyncio.run(blobs.download("bucket", "../../secret.txt"))


class TestHttpBlobStore:

    def _store(self, handler):
        return HttpBlobStore(
            "https://storage.example.com/storage/v1",
            api_key="k",
            transport=httpx.MockTransport(handler),
        )

    def test_download_sends_key_and_path(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, content=b"png-bytes")

        data = asyncio.run(self._store(handler).download("asset-diagrams", "templates/x.png"))
        assert data == b"png-bytes"
        assert seen["url"] == "https://storage.example.com/storage/v1/object/asset-diagrams/templates/x.png"
        assert seen["auth"] == "Bearer k"

    def test_404_is_not_found(self):
        store = self._store(lambda r: httpx.Response(404, json={"error": "not_found"}))
        with pytest.raises(BlobNotFoundError):
            asyncio.run(store.download("b", "p.png"))

    def test_400_object_not_found_is_not_found(self):
        store = self._store(lambda r: httpx.Response(400, json={"message": "Object not found"}))
        with pytest.raises(BlobNotFoundError):
            asyncio.run(store.download("b", "p.png"))

    def test_server_error(self):
        store = self._store(lambda r: httpx.Response(503))
        with pytest.raises(BlobStoreError) as exc:
            asyncio.run(store.download("b", "p.png"))
        assert not isinstance(exc.value, BlobNotFoundError)

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(BlobStoreError):
            asyncio.run(self._store(handler).download("b", "p.png"))
