"""Gmail API 클라이언트 어댑터 테스트 (httpx.MockTransport)"""

from urllib.parse import parse_qs

import httpx
import pytest

from adapters.external.gmail_api_client import GmailApiClientAdapter
from core.domain.error_classifier import ErrorCategory, classify
from core.domain.errors import RemoteApiError

from tests.fakes import RecordingLogger


def make_client(handler) -> GmailApiClientAdapter:
    return GmailApiClientAdapter(
        RecordingLogger(),
        client_id="client-1",
        client_secret="secret",
        base_url="https://gmail.test/gmail/v1/users/me",
        token_url="https://oauth.test/token",
        transport=httpx.MockTransport(handler),
    )


class TestRequests:

    @pytest.mark.asyncio
    async def test_list_threads_sends_query_and_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = request.url.params
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"threads": [{"id": "t1"}], "resultSizeEstimate": 1})

        result = await make_client(handler).list_threads("tok", q="in:sent", label_ids=["INBOX"], max_results=5)

        assert result["threads"] == [{"id": "t1"}]
        assert seen["path"] == "/gmail/v1/users/me/threads"
        assert seen["params"]["q"] == "in:sent"
        assert seen["params"].get_list("labelIds") == ["INBOX"]
        assert seen["params"]["maxResults"] == "5"
        assert "pageToken" not in seen["params"]
        assert seen["auth"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_history_parameters(self):
        seen = {}

        def handler(request):
            seen["params"] = request.url.params
            return httpx.Response(200, json={"historyId": "12"})

        await make_client(handler).list_history("tok", "10", label_id="INBOX", history_types=["messageAdded"])

        assert seen["params"]["startHistoryId"] == "10"
        assert seen["params"]["labelId"] == "INBOX"
        assert seen["params"]["historyTypes"] == "messageAdded"

    @pytest.mark.asyncio
    async def test_labels_unwrapped(self):
        def handler(request):
            return httpx.Response(200, json={"labels": [{"id": "INBOX"}]})

        assert await make_client(handler).list_labels("tok") == [{"id": "INBOX"}]

    @pytest.mark.asyncio
    async def test_refresh_posts_form(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"access_token": "new", "expires_in": 3599})

        result = await make_client(handler).refresh_credential("refresh-1")

        assert result["access_token"] == "new"
        assert seen["url"] == "https://oauth.test/token"
        assert seen["form"]["grant_type"] == ["refresh_token"]
        assert seen["form"]["refresh_token"] == ["refresh-1"]
        assert seen["form"]["client_id"] == ["client-1"]


class TestErrors:

    @pytest.mark.asyncio
    async def test_google_error_body_becomes_remote_error(self):
        def handler(request):
            return httpx.Response(403, json={"error": {
                "code": 403, "message": "User Rate Limit Exceeded",
                "errors": [{"reason": "userRateLimitExceeded"}],
            }})

        with pytest.raises(RemoteApiError) as excinfo:
            await make_client(handler).get_thread("tok", "t1")

        assert excinfo.value.status_code == 403
        assert classify(excinfo.value) == ErrorCategory.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_invalid_grant_from_token_endpoint(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Bad Request"})

        with pytest.raises(RemoteApiError) as excinfo:
            await make_client(handler).refresh_credential("revoked")
        assert classify(excinfo.value) == ErrorCategory.AUTH

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        def handler(request):
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        with pytest.raises(RemoteApiError) as excinfo:
            await make_client(handler).get_profile("tok")
        assert excinfo.value.status_code == 502
        assert "Bad Gateway" in excinfo.value.message
