"""
Gmail API 클라이언트 어댑터

Gmail REST v1 API와 Google OAuth 토큰 엔드포인트와의 통신을 담당하는 어댑터입니다.
2xx가 아닌 응답은 RemoteApiError로 발생시키며, 재시도와 오류 값 변환은 코어가 담당합니다.
"""

from typing import Any, Dict, List, Optional

import httpx

from core.domain.errors import RemoteApiError
from core.domain.ports import LoggerPort, MailApiClientPort

DEFAULT_API_BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
DEFAULT_TOKEN_URL = "https://oauth2.googleapis.com/token"


class GmailApiClientAdapter(MailApiClientPort):
    """Gmail API 클라이언트 어댑터"""

    def __init__(
        self,
        logger: LoggerPort,
        client_id: str,
        client_secret: str,
        base_url: str = DEFAULT_API_BASE_URL,
        token_url: str = DEFAULT_TOKEN_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.logger = logger
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.token_url = token_url
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        if 200 <= response.status_code < 300:
            return
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        error = RemoteApiError.from_response_body(response.status_code, body)
        self.logger.error(f"{operation} 실패: {response.status_code} - {error.message}")
        raise error

    async def _get(self, access_token: str, path: str, params: Dict[str, Any], operation: str) -> Any:
        clean_params = {k: v for k, v in params.items() if v is not None and v != []}
        async with self._client() as client:
            response = await client.get(
                f"{self.base_url}{path}",
                params=clean_params,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            self._raise_for_status(response, operation)
            return response.json()

    async def list_threads(
        self,
        access_token: str,
        q: Optional[str] = None,
        label_ids: Optional[List[str]] = None,
        max_results: int = 25,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """스레드 목록을 조회합니다."""
        self.logger.debug(f"스레드 목록 조회: q={q!r}, labelIds={label_ids}")
        return await self._get(
            access_token,
            "/threads",
            {
                "q": q or None,
                "labelIds": label_ids or None,
                "maxResults": max_results,
                "pageToken": page_token or None,
            },
            "스레드 목록 조회",
        )

    async def get_thread(self, access_token: str, thread_id: str, format: str = "full") -> Dict[str, Any]:
        """스레드 상세를 조회합니다."""
        return await self._get(access_token, f"/threads/{thread_id}", {"format": format}, "스레드 조회")

    async def get_message(self, access_token: str, message_id: str, format: str = "full") -> Dict[str, Any]:
        """메시지 상세를 조회합니다."""
        return await self._get(access_token, f"/messages/{message_id}", {"format": format}, "메시지 조회")

    async def list_history(
        self,
        access_token: str,
        start_history_id: str,
        label_id: Optional[str] = None,
        history_types: Optional[List[str]] = None,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """변경 이력 한 페이지를 조회합니다."""
        return await self._get(
            access_token,
            "/history",
            {
                "startHistoryId": start_history_id,
                "labelId": label_id,
                "historyTypes": history_types or None,
                "pageToken": page_token or None,
            },
            "변경 이력 조회",
        )

    async def get_profile(self, access_token: str) -> Dict[str, Any]:
        """프로필을 조회합니다."""
        return await self._get(access_token, "/profile", {}, "프로필 조회")

    async def list_labels(self, access_token: str) -> List[Dict[str, Any]]:
        """라벨 목록을 조회합니다."""
        result = await self._get(access_token, "/labels", {}, "라벨 목록 조회")
        return result.get("labels") or []

    async def refresh_credential(self, refresh_token: str) -> Dict[str, Any]:
        """리프레시 토큰으로 액세스 토큰을 갱신합니다."""
        self.logger.debug(f"토큰 갱신 요청: client_id={self.client_id}")

        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        async with self._client() as client:
            response = await client.post(
                self.token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            self._raise_for_status(response, "토큰 갱신")
            result = response.json()

        self.logger.debug("토큰 갱신 성공")
        return result
