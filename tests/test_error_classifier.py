"""오류 분류기 테스트"""

import httpx
import pytest

from core.domain.error_classifier import (
    ErrorCategory,
    call_boundary,
    classify,
    is_rate_limit_error,
    is_watermark_expired,
    to_error_value,
)
from core.domain.errors import (
    AuthFailure,
    NotFound,
    RateLimited,
    RemoteApiError,
    TransientApiFailure,
    WatermarkExpired,
)


class TestClassification:

    @pytest.mark.parametrize("reason", [
        "userRateLimitExceeded", "rateLimitExceeded", "quotaExceeded",
        "dailyLimitExceeded", "limitExceeded", "backendError",
    ])
    def test_403_rate_limit_reasons(self, reason):
        assert is_rate_limit_error(RemoteApiError(403, "x", [reason]))

    def test_429_is_rate_limit(self):
        assert classify(RemoteApiError(429, "slow down")) == ErrorCategory.RATE_LIMIT

    def test_401_is_auth(self):
        assert classify(RemoteApiError(401, "Invalid Credentials")) == ErrorCategory.AUTH

    def test_invalid_grant_is_auth(self):
        error = RemoteApiError.from_response_body(
            400, {"error": "invalid_grant", "error_description": "Token has been expired or revoked."}
        )
        assert classify(error) == ErrorCategory.AUTH
        assert "revoked" in error.message

    def test_watermark_signatures(self):
        assert is_watermark_expired(RemoteApiError(404, "not found"))
        assert is_watermark_expired(RemoteApiError(400, "Invalid startHistoryId / historyId too old"))
        assert not is_watermark_expired(RemoteApiError(400, "bad request"))

    def test_watermark_context_changes_404_category(self):
        error = RemoteApiError(404, "not found")
        assert classify(error) == ErrorCategory.NOT_FOUND
        assert classify(error, watermark=True) == ErrorCategory.WATERMARK_EXPIRED

    def test_google_error_body_parsing(self):
        body = {"error": {"code": 403, "message": "Quota exceeded",
                          "errors": [{"reason": "quotaExceeded", "domain": "usageLimits"}]}}
        error = RemoteApiError.from_response_body(403, body)
        assert error.reasons == ["quotaExceeded"]
        assert error.message == "Quota exceeded"


class TestErrorValues:

    def test_to_error_value_kinds(self):
        assert isinstance(to_error_value(RemoteApiError(401, "x"), "a@b.c"), AuthFailure)
        assert isinstance(to_error_value(RemoteApiError(429, "x")), RateLimited)
        assert isinstance(to_error_value(RemoteApiError(404, "x")), NotFound)
        assert isinstance(to_error_value(RemoteApiError(404, "x"), watermark=True), WatermarkExpired)
        assert isinstance(to_error_value(RemoteApiError(500, "x")), TransientApiFailure)

    def test_auth_failure_hint(self):
        error = to_error_value(RemoteApiError(401, "x"), "me@example.com")
        assert "auth import --email me@example.com" in error.describe()

    @pytest.mark.asyncio
    async def test_boundary_converts_transport_errors(self):
        async def operation():
            raise httpx.ConnectError("connection refused")

        result = await call_boundary(operation, email="me@example.com")
        assert isinstance(result, TransientApiFailure)
        assert isinstance(result.cause, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_boundary_passes_values_through(self):
        async def operation():
            return {"ok": True}

        assert await call_boundary(operation) == {"ok": True}

    @pytest.mark.asyncio
    async def test_boundary_does_not_hide_programming_errors(self):
        async def operation():
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await call_boundary(operation)
