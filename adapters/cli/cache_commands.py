"""
캐시 관리 CLI 명령어
"""

from typing import List, Optional

import typer

from core.usecases.thread_sync import INVALIDATION_SCOPES
from .common import console, open_factory, resolve_identity, run_command

cache_app = typer.Typer(help="캐시 관리 명령어")


@cache_app.command("invalidate")
def invalidate(
    email: Optional[str] = typer.Option(None, "--email", "-e", help="계정 이메일"),
    scope: str = typer.Option("all", "--scope", "-s", help=f"무효화 범위 ({', '.join(INVALIDATION_SCOPES)})"),
    thread_ids: Optional[List[str]] = typer.Option(None, "--thread", "-t", help="특정 스레드 ID (scope=threads)"),
):
    """계정의 캐시를 무효화합니다."""
    if scope not in INVALIDATION_SCOPES:
        console.print(f"[red]오류: 지원하지 않는 범위입니다: {scope}[/red]")
        raise typer.Exit(1)

    async def _invalidate():
        async with open_factory() as factory:
            identity = await resolve_identity(factory, email)
            deleted = await factory.create_thread_sync_engine().invalidate(identity, scope, thread_ids)
            console.print(f"[green]✓ {identity.email} 캐시 {deleted}개를 무효화했습니다[/green]")

    run_command(_invalidate())


@cache_app.command("clear-expired")
def clear_expired():
    """만료된 캐시 항목을 정리합니다."""

    async def _clear():
        async with open_factory() as factory:
            deleted = await factory.create_cache_store().clear_expired()
            console.print(f"[green]✓ 만료된 캐시 {deleted}개를 정리했습니다[/green]")

    run_command(_clear())
