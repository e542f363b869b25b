"""
CLI 공용 도우미

명령어마다 팩토리를 열고 닫는 컨텍스트와 오류 값 출력 함수를 제공합니다.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from adapters.factory import AdapterFactory
from core.domain.entities import AccountIdentity, SkippedItem
from core.domain.errors import AuthFailure, SyncError

console = Console()


@asynccontextmanager
async def open_factory() -> AsyncGenerator[AdapterFactory, None]:
    """설정에 따라 팩토리를 만들고 데이터베이스를 연 뒤, 끝나면 닫습니다."""
    factory = AdapterFactory()
    await factory.open()
    try:
        yield factory
    finally:
        await factory.close()


def fail(error: SyncError) -> None:
    """오류 값을 출력하고 종료합니다."""
    if isinstance(error, AuthFailure):
        console.print(f"[red]{error.describe()}[/red]")
    else:
        console.print(f"[red]오류: {error.describe()}[/red]")
    raise typer.Exit(1)


async def resolve_identity(factory: AdapterFactory, email: Optional[str]) -> AccountIdentity:
    """이메일로 등록된 계정을 찾습니다. 없으면 오류를 출력하고 종료합니다."""
    identity = await factory.create_credential_manager().find_identity(email)
    if isinstance(identity, SyncError):
        fail(identity)
    return identity


def print_skipped(skipped: List[SkippedItem]) -> None:
    """부분 실패로 건너뛴 항목을 표로 출력합니다."""
    if not skipped:
        return
    table = Table(title=f"건너뛴 항목 {len(skipped)}개")
    table.add_column("ID", style="cyan")
    table.add_column("사유", style="yellow")
    for item in skipped:
        table.add_row(item.id, item.reason)
    console.print(table)


def run_command(coroutine) -> None:
    """비동기 명령을 실행합니다. 예상치 못한 예외는 출력 후 종료 코드 1로 끝냅니다."""
    try:
        asyncio.run(coroutine)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]오류: {str(e)}[/red]")
        raise typer.Exit(1)
