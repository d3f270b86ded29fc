# Tests for API v1 upload router.
# Created: 2026-10-18

import pytest
from fastapi.testclient import TestClient
from upload_stub import FakeUploadServer

from adrelay.api.deps import get_dispatcher, get_uploader
from adrelay.api.serve import create_api_app
from adrelay.errors import TransferError
from adrelay.proxy.credentials import CallerSuppliedBearer, ProviderConfig
from adrelay.proxy.dispatcher import ProviderDispatcher
from adrelay.upload.resumable import ResumableUploadOrchestrator
from adrelay.upload.staging import TempFileManager

VIDEO = b"\x00\x00\x00\x18ftypmp42" + b"v" * 4096
AUTH = {"Authorization": "Bearer user-token"}


@pytest.fixture
def scratch(tmp_path):
    return tmp_path / "scratch"


@pytest.fixture
def server():
    return FakeUploadServer()


@pytest.fixture
def client(bare_settings, server, scratch):
    dispatcher = ProviderDispatcher(
        [ProviderConfig("youtube", "https://yt.test", CallerSuppliedBearer())]
    )
    uploader = ResumableUploadOrchestrator(
        TempFileManager(scratch), backoff_base=0, transport=server.transport
    )
    app = create_api_app(bare_settings)
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_uploader] = lambda: uploader
    return TestClient(app)


def leftovers(scratch):
    return list(scratch.iterdir()) if scratch.exists() else []


class TestUploadIntake:
    """Tests for POST /api/v1/upload/intake."""

    def test_upload(self, client, server, scratch):
        resp = client.post(
            "/api/v1/upload/intake",
            files={"file": ("launch.mp4", VIDEO, "video/mp4")},
            data={"title": "Launch", "description": "teaser", "privacyStatus": "public"},
            headers=AUTH,
        )

        assert resp.status_code == 200
        assert resp.json() == {"resourceId": "vid123", "bytesSent": len(VIDEO)}
        assert bytes(server.received) == VIDEO
        assert server.init_bodies[0] == {
            "snippet": {"title": "Launch", "description": "teaser"},
            "status": {"privacyStatus": "public"},
        }
        assert server.init_requests[0].headers["authorization"] == "Bearer user-token"
        assert leftovers(scratch) == []

    def test_title_defaults_to_filename(self, client, server):
        client.post(
            "/api/v1/upload/intake",
            files={"file": ("launch.mp4", VIDEO, "video/mp4")},
            headers=AUTH,
        )
        snippet = server.init_bodies[0]["snippet"]
        assert snippet["title"] == "launch"
        assert server.init_bodies[0]["status"]["privacyStatus"] == "private"

    def test_missing_file(self, client, server):
        resp = client.post("/api/v1/upload/intake", data={"title": "x"}, headers=AUTH)
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
        assert server.init_requests == []

    def test_missing_token_stages_nothing(self, client, server, scratch):
        resp = client.post(
            "/api/v1/upload/intake", files={"file": ("launch.mp4", VIDEO, "video/mp4")}
        )
        assert resp.status_code == 401
        assert server.init_requests == []
        assert leftovers(scratch) == []

    def test_invalid_privacy_status(self, client, server):
        resp = client.post(
            "/api/v1/upload/intake",
            files={"file": ("launch.mp4", VIDEO, "video/mp4")},
            data={"privacyStatus": "friends"},
            headers=AUTH,
        )
        assert resp.status_code == 400
        assert server.init_requests == []

    def test_empty_file(self, client, server, scratch):
        resp = client.post(
            "/api/v1/upload/intake",
            files={"file": ("empty.mp4", b"", "video/mp4")},
            headers=AUTH,
        )
        assert resp.status_code == 400
        assert server.init_requests == []
        assert leftovers(scratch) == []


class TestUploadFailures:
    def test_session_rejected(self, client, server, scratch):
        server.init_status = 403
        resp = client.post(
            "/api/v1/upload/intake",
            files={"file": ("launch.mp4", VIDEO, "video/mp4")},
            headers=AUTH,
        )
        assert resp.status_code == 502
        assert resp.json()["code"] == "session_initiation_failed"
        assert "sk-secret" not in resp.text
        assert leftovers(scratch) == []

    def test_transfer_rejected(self, client, server, scratch):
        server.faults = [400]
        resp = client.post(
            "/api/v1/upload/intake",
            files={"file": ("launch.mp4", VIDEO, "video/mp4")},
            headers=AUTH,
        )
        assert resp.status_code == 502
        assert resp.json()["code"] == "transfer_failed"
        assert leftovers(scratch) == []


class TestIntakeRelease:
    def test_staged_file_released_when_upload_escapes(self, bare_settings, scratch):
        class EscapingUploader(ResumableUploadOrchestrator):
            async def upload(self, staged, metadata, token_provider, *, timeout=None):
                assert staged.path.exists()
                raise TransferError("Upload rejected with HTTP 500")

        dispatcher = ProviderDispatcher(
            [ProviderConfig("youtube", "https://yt.test", CallerSuppliedBearer())]
        )
        app = create_api_app(bare_settings)
        app.dependency_overrides[get_dispatcher] = lambda: dispatcher
        app.dependency_overrides[get_uploader] = lambda: EscapingUploader(TempFileManager(scratch))

        resp = TestClient(app).post(
            "/api/v1/upload/intake",
            files={"file": ("launch.mp4", VIDEO, "video/mp4")},
            headers=AUTH,
        )

        assert resp.status_code == 502
        assert leftovers(scratch) == []
