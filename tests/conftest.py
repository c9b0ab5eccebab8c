"""Shared pytest fixtures for inboxly tests."""
import sys
sys.dont_write_bytecode = True

from unittest.mock import patch  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402

from helpers import _create_jwks, _generate_rsa_keypair  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset the process-wide JWKS cache so keys never leak between tests."""
    from inboxly.api.auth import jwks_cache

    jwks_cache.clear()
    yield
    jwks_cache.clear()


@pytest.fixture(scope="session")
def rsa_keypair():
    """RSA key pair shared by the session (generation is slow)."""
    return _generate_rsa_keypair()


@pytest.fixture
def jwks(rsa_keypair):
    _, public_key = rsa_keypair
    return _create_jwks(public_key)


@pytest.fixture
def oidc_env():
    """OIDC environment variables matching helpers._create_token defaults."""
    return {
        "OIDC_ISSUER": "https://auth.example.com",
        "OIDC_AUDIENCE": "inboxly-api",
        "OIDC_JWKS_URL": "https://auth.example.com/.well-known/jwks.json",
    }


@pytest.fixture
def mock_jwks_fetch(jwks):
    """Serve the test JWKS instead of fetching it."""
    with patch("inboxly.api.auth._fetch_jwks", return_value=jwks) as mock:
        yield mock


@pytest.fixture
def mock_db_user():
    """Resolve sub "user-123" to a fixed user; anything else is unknown."""
    user_id = str(uuid4())

    def mock_get_user(external_subject: str):
        from inboxly.api.auth import CurrentUser

        if external_subject == "user-123":
            return CurrentUser(
                id=user_id,
                external_subject="user-123",
                email="agent@example.com",
                name="Test Agent",
            )
        return None

    with patch("inboxly.api.auth._get_user_from_db", side_effect=mock_get_user) as mock:
        mock.user_id = user_id
        yield mock
