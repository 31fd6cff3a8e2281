"""Tests for the /internal endpoints."""

from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from app.api.v1.dependency import get_session_store
from app.domain.auth.session_store import SessionStore
from tests.fixtures.api_fixtures import API_KEY_HEADERS

DEVICE = {"device_type": "desktop", "device_name": "MacBook"}


class TestIssueSession:
    """POST /api/v1/internal/sessions"""

    def test_requires_api_key(self, api_client):
        resp = api_client.post(
            "/api/v1/internal/sessions",
            json={"owner_id": "owner-1", "device": DEVICE},
            headers={"x-api-key": "wrong"},
        )

        assert resp.status_code == 401
        assert resp.json()["errcode"] == "E_BAD_API_KEY"

    def test_issues_session_and_registers_device(self, api_client, api_owner_repo):
        resp = api_client.post(
            "/api/v1/internal/sessions",
            json={"owner_id": "owner-1", "device": DEVICE},
            headers=API_KEY_HEADERS,
        )

        assert resp.status_code == 200
        results = resp.json()["results"]
        assert len(results["token"]) == 64
        assert results["new_device"] is True
        assert results["snapshot"]["devices_count"] == 1
        assert resp.cookies.get("sessionToken") == results["token"]
        assert len(api_owner_repo.owners["owner-1"].devices) == 1

    def test_returning_device_is_not_new(self, api_client):
        for expected in (True, False):
            resp = api_client.post(
                "/api/v1/internal/sessions",
                json={"owner_id": "owner-1", "device": DEVICE},
                headers=API_KEY_HEADERS,
            )
            assert resp.json()["results"]["new_device"] is expected

    def test_unknown_owner(self, api_client):
        resp = api_client.post(
            "/api/v1/internal/sessions",
            json={"owner_id": "ghost", "device": DEVICE},
            headers=API_KEY_HEADERS,
        )

        assert resp.status_code == 404
        assert resp.json()["errcode"] == "E_OWNER_NOT_FOUND"

    def test_invalid_device(self, api_client):
        resp = api_client.post(
            "/api/v1/internal/sessions",
            json={"owner_id": "owner-1", "device": {"device_type": "desktop", "device_name": " "}},
            headers=API_KEY_HEADERS,
        )

        assert resp.status_code == 422
        assert resp.json()["errcode"] == "E_INVALID_PARAMS"


class TestSyncEvents:
    """POST /api/v1/internal/sync/events"""

    def test_mutation_reaches_live_sessions(self, api_client, api_owner_repo):
        issued = api_client.post(
            "/api/v1/internal/sessions",
            json={"owner_id": "owner-1", "device": DEVICE},
            headers=API_KEY_HEADERS,
        ).json()["results"]
        api_client.cookies.clear()

        api_owner_repo.add_channel("owner-1", "BotA")
        resp = api_client.post(
            "/api/v1/internal/sync/events",
            json={"owner_id": "owner-1", "kind": "ChannelAdded", "payload": {"name": "BotA"}},
            headers=API_KEY_HEADERS,
        )

        assert resp.status_code == 200
        results = resp.json()["results"]
        assert results["channels_count"] == 1
        assert results["sessions_updated"] == 1
        assert results["partial"] is False

        check = api_client.get(
            "/api/v1/session/check", headers={"Authorization": f"Bearer {issued['token']}"}
        ).json()["results"]
        assert [c["name"] for c in check["snapshot"]["channels"]] == ["BotA"]

    def test_unknown_kind_is_rejected(self, api_client):
        resp = api_client.post(
            "/api/v1/internal/sync/events",
            json={"owner_id": "owner-1", "kind": "OwnerExploded"},
            headers=API_KEY_HEADERS,
        )

        assert resp.status_code == 422

    def test_forced_resync(self, api_client, api_owner_repo):
        api_owner_repo.add_channel("owner-1", "BotA")

        resp = api_client.post("/api/v1/internal/sync/owners/owner-1", headers=API_KEY_HEADERS)

        assert resp.json()["results"]["owner_updated"] is True


class TestStorageOutage:
    """Session cache outage surfaces as 503."""

    def test_check_during_outage(self, api_client):
        redis = MagicMock()
        redis.get = AsyncMock(side_effect=RedisConnectionError("connection refused"))
        api_client.app.dependency_overrides[get_session_store] = lambda: SessionStore(redis)

        resp = api_client.get("/api/v1/session/check", headers={"Authorization": "Bearer abc"})

        assert resp.status_code == 503
        body = resp.json()
        assert body["errcode"] == "E_STORAGE_UNAVAILABLE"
        assert "connection refused" not in body["errmesg"]
