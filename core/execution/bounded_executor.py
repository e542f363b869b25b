"""
동시성 제한 실행기

공유 커서에서 항목을 하나씩 가져가는 작업자 N개로 항목별 비동기 작업을 실행합니다.
결과 순서는 입력 순서와 같습니다.

작업 결과 규칙:
- None: 건너뛴 항목 (결과 목록에 None 자리로 남음)
- fatal_types 인스턴스: 치명적 오류. 새 항목 가져가기를 멈추고, 진행 중인 항목이
  끝나면 첫 치명적 오류를 전체 결과로 반환
- 작업자가 예상치 못한 예외를 발생시키면 모든 작업자가 끝난 뒤 다시 발생
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from core.domain.errors import AuthFailure, SyncError

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 10


class BoundedExecutor:
    """동시성 제한 실행기"""

    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        fatal_types: Tuple[Type[SyncError], ...] = (AuthFailure,),
    ):
        if concurrency < 1:
            raise ValueError("concurrency는 1 이상이어야 합니다")
        self.concurrency = concurrency
        self.fatal_types = fatal_types

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[Optional[R]]],
        concurrency: Optional[int] = None,
    ) -> Union[List[Optional[R]], SyncError]:
        limit = concurrency or self.concurrency
        results: List[Optional[R]] = [None] * len(items)
        if not items:
            return results

        cursor = 0
        fatal: List[SyncError] = []

        async def run_worker() -> None:
            nonlocal cursor
            while not fatal and cursor < len(items):
                index = cursor
                cursor += 1
                result = await worker(items[index])
                if isinstance(result, self.fatal_types):
                    fatal.append(result)
                    return
                results[index] = result

        tasks = [asyncio.ensure_future(run_worker()) for _ in range(min(limit, len(items)))]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        if fatal:
            return fatal[0]
        return results
