import pytest
from fastapi import HTTPException
from jose import jwt

from app.api import deps
from app.core.config import settings
from app.core.exceptions import EmptyAudienceError, NotFoundError


def _token(**claims):
    payload = {"sub": "user_test", "exp": 9999999999}  # High expiration for tests
    payload.update(claims)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def test_owner_is_the_organization_when_present():
    user = deps.get_current_user(_token(orgId="acme-corp"))

    assert user.owner_id == "acme-corp"


def test_owner_falls_back_to_the_user():
    user = deps.get_current_user(_token())

    assert user.owner_id == "user_test"


def test_bad_token_is_rejected():
    with pytest.raises(HTTPException) as exc_info:
        deps.get_current_user(jwt.encode({"sub": "x", "exp": 9999999999}, "wrong", algorithm="HS256"))

    assert exc_info.value.status_code == 401


def test_internal_api_key():
    assert deps.get_internal_api_key(settings.INTERNAL_API_KEY) == settings.INTERNAL_API_KEY
    with pytest.raises(HTTPException):
        deps.get_internal_api_key("nope")


def test_domain_errors_map_to_http_status():
    assert deps.http_error(NotFoundError("Segment not found")).status_code == 404
    assert deps.http_error(EmptyAudienceError("No customers")).status_code == 400
