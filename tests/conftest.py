# Shared fixtures.
# Created: 2026-10-18

import pytest

from adrelay.api import deps
from adrelay.config import Settings, reset_settings


@pytest.fixture(autouse=True)
def _fresh_singletons():
    """Every test starts without cached settings or dependency singletons."""
    reset_settings()
    deps._reset()
    yield
    deps._reset()
    reset_settings()


@pytest.fixture
def oauth_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        youtube_client_id="test-client-id",
        youtube_client_secret="test-secret",
        youtube_redirect_uri="http://testserver/api/v1/auth/youtube/callback",
        scratch_dir=tmp_path / "scratch",
    )


@pytest.fixture
def bare_settings(tmp_path) -> Settings:
    return Settings(_env_file=None, scratch_dir=tmp_path / "scratch")
