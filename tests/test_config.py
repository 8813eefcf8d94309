from pydantic import ValidationError
import pytest

from clubsphere.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.PORT == 5000
    assert settings.MONGODB_DATABASE == "club_db"
    assert settings.RETRACT_ROLE_GRANT_ON_LEAVE is False
    assert settings.MEMBER_PERMISSIONS


@pytest.mark.parametrize(
    "overrides",
    [
        {"MONGODB_URL": "  "},
        {"STORAGE_OPERATION_TIMEOUT_SECONDS": 0},
        {"IDENTITY_VERIFY_TIMEOUT_SECONDS": 500},
        {"MEMBER_PERMISSIONS": []},
        {"RECONCILIATION_INTERVAL_MINUTES": 0},
    ],
)
def test_invalid_values_fail_fast(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_shared_secret_mode_only_without_jwks():
    assert Settings(_env_file=None, IDENTITY_SHARED_SECRET="s").identity_uses_shared_secret is True
    assert (
        Settings(_env_file=None, IDENTITY_SHARED_SECRET="s", IDENTITY_JWKS_URL="https://id/jwks")
        .identity_uses_shared_secret
        is False
    )
