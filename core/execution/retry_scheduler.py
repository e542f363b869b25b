"""
재시도 스케줄러

속도 제한 오류에 한해 지수 백오프로 재시도합니다.
대기 시간: base_delay_ms * 2^(attempt-1)
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from core.domain.error_classifier import is_rate_limit_error
from core.domain.ports import LoggerPort

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_BASE_DELAY_MS = 60_000


class RetryScheduler:
    """속도 제한 재시도 스케줄러"""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        logger: Optional[LoggerPort] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts는 1 이상이어야 합니다")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.logger = logger
        self._sleep = sleep

    def delay_ms(self, attempt: int) -> int:
        """attempt번째 실패 뒤의 대기 시간 (밀리초)"""
        return self.base_delay_ms * 2 ** (attempt - 1)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        operation을 실행합니다.

        속도 제한이 아닌 오류, 또는 마지막 시도의 오류는 그대로 다시 발생시킵니다.
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if not is_rate_limit_error(e) or attempt >= self.max_attempts:
                    raise
                delay = self.delay_ms(attempt)
                if self.logger:
                    self.logger.warning(
                        f"속도 제한, {delay / 1000:.0f}초 후 재시도 ({attempt}/{self.max_attempts})"
                    )
                await self._sleep(delay / 1000)
                attempt += 1


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
) -> T:
    """기본 정책으로 operation을 재시도 실행합니다."""
    return await RetryScheduler(max_attempts, base_delay_ms).run(operation)
