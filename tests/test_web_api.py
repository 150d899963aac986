"""Tests for FastAPI web API.

Uses TestClient against an application built from isolated settings and a
stub signer.
"""

import asyncio
import plistlib
import shutil
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from ipa_signer import __version__
from ipa_signer.config import Settings
from ipa_signer.errors import GENERIC_FAILURE_MESSAGE, ConfigurationError
from web.app import create_app, prune_loop

SAFARI_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1"
)
CHROME_IOS_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) CriOS/123.0.6312.52 Mobile/15E148 Safari/604.1"
)
DESKTOP_UA = "Mozilla/5.0 (X11; Linux x86_64) Firefox/124.0"


def _with(settings: Settings, **overrides) -> Settings:
    return Settings(**{**settings.model_dump(), **overrides})


@pytest.fixture
def client(settings):
    """Test client for an application created from the isolated settings."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def ipa_bytes(sample_ipa):
    """Content of a minimal IPA."""
    return sample_ipa.read_bytes()


def _upload(client, ipa_bytes, udid="abcd-1234", file_name="Test.ipa", **kwargs):
    data = {} if udid is None else {"udid": udid}
    return client.post(
        "/sign",
        data=data,
        files={"file": (file_name, ipa_bytes, "application/octet-stream")},
        **kwargs,
    )


class TestHealthEndpoint:
    """Tests for health endpoint."""

    def test_health_check(self, client):
        """Health endpoint should return ok status."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "version": __version__,
            "publish_dir": "ok",
        }

    def test_missing_publish_dir_degraded(self, client, settings):
        """A vanished publish directory should be reported."""
        shutil.rmtree(settings.public_dir)

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["publish_dir"] == "missing"

    def test_read_only_publish_dir_degraded(self, client):
        """A publish directory without write access should be reported."""
        with patch("web.routers.health.os.access", return_value=False):
            response = client.get("/health")

        assert response.json()["publish_dir"] == "read_only"
        assert response.json()["status"] == "degraded"


class TestSignEndpoint:
    """Tests for POST /sign."""

    def test_sign_success(self, client, ipa_bytes, settings):
        """Should publish the package and return its links."""
        response = _upload(client, ipa_bytes, udid="ABCD-1234")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "IPA signed successfully."
        assert data["ipa_url"].startswith("https://sign.example.com/public/")
        assert data["ipa_url"].endswith("_ABCD-1234_Test_ipa.ipa")

        name = data["ipa_url"].rsplit("/", 1)[1]
        assert data["ota_url"] == (
            f"https://sign.example.com/ota/com.test.app/1.0/{name}"
        )
        assert data["install_url"] == (
            f"https://sign.example.com/install/com.test.app/1.0/{name}"
        )
        assert (settings.public_dir / name).is_file()
        assert list(settings.work_dir.iterdir()) == []

    def test_published_package_served(self, client, ipa_bytes):
        """The returned package URL should be downloadable."""
        data = _upload(client, ipa_bytes).json()
        path = data["ipa_url"].removeprefix("https://sign.example.com")

        response = client.get(path)

        assert response.status_code == 200
        assert response.content[:2] == b"PK"

    def test_base_url_from_headers(self, settings, ipa_bytes):
        """Without a configured base URL, links follow the request host."""
        app = create_app(_with(settings, base_url=None))
        with TestClient(app) as test_client:
            response = _upload(
                test_client,
                ipa_bytes,
                headers={"host": "signer.lan:8080", "x-forwarded-proto": "https"},
            )

        assert response.status_code == 200
        assert response.json()["ota_url"].startswith("https://signer.lan:8080/ota/")

    def test_missing_udid(self, client, ipa_bytes, settings):
        """Should reject a request without a UDID."""
        response = _upload(client, ipa_bytes, udid=None)

        assert response.status_code == 400
        assert response.json() == {"message": "Device UDID is missing."}
        assert list(settings.work_dir.iterdir()) == []

    def test_unauthorized_udid(self, client, ipa_bytes, settings):
        """Should reject unknown devices before writing anything."""
        response = _upload(client, ipa_bytes, udid="efgh-5678")

        assert response.status_code == 403
        assert response.json() == {"message": "Unauthorized UDID."}
        assert list(settings.work_dir.iterdir()) == []
        assert list(settings.public_dir.iterdir()) == []

    def test_missing_file(self, client):
        """Should reject a request without a package."""
        response = client.post("/sign", data={"udid": "abcd-1234"})

        assert response.status_code == 400
        assert response.json() == {"message": "No file uploaded."}

    def test_not_an_ipa(self, client, ipa_bytes):
        """Should reject packages without the .ipa extension."""
        response = _upload(client, ipa_bytes, file_name="Test.zip")

        assert response.status_code == 400
        assert response.json() == {
            "message": "Uploaded file is not a valid iOS IPA file."
        }

    def test_too_large(self, settings, ipa_bytes):
        """Should answer 413 once the upload limit is exceeded."""
        app = create_app(_with(settings, max_upload_bytes=16))
        with TestClient(app) as test_client:
            response = _upload(test_client, ipa_bytes)

        assert response.status_code == 413
        assert list(settings.work_dir.iterdir()) == []

    def test_signing_failure_is_generic(
        self, client, ipa_bytes, settings, signer_factory
    ):
        """Signer diagnostics should stay out of the response."""
        signer_factory(settings.zsign_path, output="secret-diagnostic", exit_code=1)

        response = _upload(client, ipa_bytes)

        assert response.status_code == 500
        assert response.json() == {"message": GENERIC_FAILURE_MESSAGE}
        assert "secret-diagnostic" not in response.text
        assert list(settings.work_dir.iterdir()) == []
        assert list(settings.public_dir.iterdir()) == []

    def test_corrupt_archive(self, client):
        """A broken archive should fail with the generic message."""
        response = _upload(client, b"PK\x03\x04 not really a zip")

        assert response.status_code == 500
        assert response.json() == {"message": GENERIC_FAILURE_MESSAGE}


class TestOtaEndpoint:
    """Tests for GET /ota/{bundle_id}/{bundle_version}/{ipa_file_name}."""

    def test_manifest(self, client):
        """Should return a plist referencing the published package."""
        response = client.get("/ota/com.test.app/1.0/x.ipa")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<string>https://sign.example.com/public/x.ipa</string>" in response.text
        assert "<string>com.test.app</string>" in response.text
        assert "<string>1.0</string>" in response.text

    def test_manifest_escapes_metadata(self, client):
        """Path values should be escaped in the document."""
        response = client.get("/ota/com.a%26b%3Cc/1.0/x.ipa")

        assert response.status_code == 200
        assert "com.a&amp;b&lt;c" in response.text
        assert "com.a&b<c" not in response.text

    def test_manifest_drops_unrepresentable_characters(self, client):
        """Control characters in the path should not break the document."""
        response = client.get("/ota/com.a%01b/1.0%0B/x.ipa")

        assert response.status_code == 200
        metadata = plistlib.loads(response.content)["items"][0]["metadata"]
        assert metadata["bundle-identifier"] == "com.ab"
        assert metadata["bundle-version"] == "1.0"


class TestInstallEndpoint:
    """Tests for GET /install/{bundle_id}/{bundle_version}/{ipa_file_name}."""

    def test_safari_redirects_to_itms(self, client):
        """Safari on iOS should be sent to the itms-services link."""
        response = client.get(
            "/install/com.test.app/1.0/x.ipa",
            headers={"user-agent": SAFARI_UA},
            follow_redirects=False,
        )

        assert response.status_code == 307
        assert response.headers["location"] == (
            "itms-services://?action=download-manifest"
            "&url=https://sign.example.com/ota/com.test.app/1.0/x.ipa"
        )

    def test_other_ios_browser_bounced_to_safari(self, client):
        """Other iOS browsers should be bounced to Safari."""
        response = client.get(
            "/install/com.test.app/1.0/x.ipa",
            headers={"user-agent": CHROME_IOS_UA},
            follow_redirects=False,
        )

        assert response.status_code == 307
        assert response.headers["location"] == (
            "x-safari-https://sign.example.com/install/com.test.app/1.0/x.ipa"
        )

    def test_desktop_gets_qr_page(self, client):
        """Non-iOS clients should get an HTML page with a QR code."""
        response = client.get(
            "/install/com.test.app/1.0/x.ipa",
            headers={"user-agent": DESKTOP_UA},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "QRCode" in response.text
        assert "https://sign.example.com/install/com.test.app/1.0/x.ipa" in response.text


class TestCreateApp:
    """Tests for create_app factory."""

    def test_requires_allowed_udids(self, settings):
        """An empty allow-list should refuse to start."""
        with pytest.raises(ConfigurationError):
            create_app(_with(settings, valid_udids=" , "))

    def test_creates_directories(self, settings):
        """Work and publish directories should exist after startup."""
        create_app(settings)

        assert settings.work_dir.is_dir()
        assert settings.public_dir.is_dir()

    def test_prune_task_lifecycle(self, settings):
        """Startup and shutdown should succeed with pruning enabled."""
        app = create_app(_with(settings, prune_interval=3600))
        with TestClient(app) as test_client:
            assert test_client.get("/health").status_code == 200


class TestCors:
    """Tests for cross-origin access to the API."""

    def test_preflight_allowed_by_default(self, client):
        """Any origin should be able to upload from a browser."""
        response = client.options(
            "/sign",
            headers={
                "Origin": "https://upload.example.org",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]

    def test_simple_response_carries_origin_header(self, client):
        """Regular responses should carry the CORS header too."""
        response = client.get("/health", headers={"Origin": "https://x.example"})

        assert response.headers["access-control-allow-origin"] == "*"

    def test_configured_origins_only(self, settings):
        """A restricted origin list should refuse other origins."""
        app = create_app(_with(settings, cors_origins=["https://upload.example.org"]))
        with TestClient(app) as test_client:
            allowed = test_client.options(
                "/sign",
                headers={
                    "Origin": "https://upload.example.org",
                    "Access-Control-Request-Method": "POST",
                },
            )
            refused = test_client.options(
                "/sign",
                headers={
                    "Origin": "https://elsewhere.example",
                    "Access-Control-Request-Method": "POST",
                },
            )

        assert allowed.status_code == 200
        assert allowed.headers["access-control-allow-origin"] == (
            "https://upload.example.org"
        )
        assert refused.status_code == 400


class _StopLoop(Exception):
    """Ends prune_loop from its sleep."""


class TestPruneLoop:
    """Tests for the periodic publish prune task."""

    def test_keeps_running_after_failure(self, settings, caplog):
        """A failed prune should be logged and retried on the next tick."""
        sleep = AsyncMock(side_effect=[None, None, _StopLoop()])
        with (
            patch("web.app.asyncio.sleep", sleep),
            patch(
                "web.app.prune_published",
                side_effect=[PermissionError("denied"), []],
            ) as mock_prune,
        ):
            with pytest.raises(_StopLoop):
                asyncio.run(prune_loop(settings))

        assert mock_prune.call_count == 2
        mock_prune.assert_called_with(settings.public_dir, settings.published_max_age)
        assert "prune failed" in caplog.text
        assert sleep.await_count == 3
