"""
메일 CLI 명령어

스레드 목록/상세, 라벨 조회와 새 메일 감시(watch) 명령어입니다.
"""

import asyncio
import signal
from typing import List, Optional

import typer
from rich.table import Table

from core.domain.entities import WatchEvent, WatchNotice
from core.domain.errors import SyncError
from core.usecases.change_watch import WATCH_FOLDER_LABELS, merge_watchers
from .common import console, fail, open_factory, print_skipped, resolve_identity, run_command

mail_app = typer.Typer(help="메일 조회 및 감시 명령어")


def _format_date(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


@mail_app.command("list")
def list_threads(
    email: Optional[str] = typer.Option(None, "--email", "-e", help="계정 이메일"),
    folder: str = typer.Option("inbox", "--folder", help="폴더 (inbox, sent, trash, spam, drafts, starred, archive, snoozed, all, 또는 라벨 이름)"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Gmail 검색어"),
    max_results: Optional[int] = typer.Option(None, "--max", "-n", help="최대 스레드 수"),
    page_token: Optional[str] = typer.Option(None, "--page", help="다음 페이지 토큰"),
):
    """스레드 목록을 조회합니다."""

    async def _list():
        async with open_factory() as factory:
            identity = await resolve_identity(factory, email)
            result = await factory.create_thread_sync_engine().list_threads(
                identity,
                folder=folder,
                query=query,
                max_results=max_results or factory.get_config().get_page_size(),
                page_token=page_token,
            )
            if isinstance(result, SyncError):
                fail(result)

            table = Table(title=f"{identity.email} - {folder} (약 {result.result_size_estimate}개)")
            table.add_column("ID", style="dim")
            table.add_column("보낸 사람", style="cyan")
            table.add_column("제목", style="white")
            table.add_column("날짜", style="yellow")
            table.add_column("메시지", justify="right")

            for thread in result.threads:
                subject = f"[bold]{thread.subject}[/bold]" if thread.has_unread else thread.subject
                table.add_row(
                    thread.id,
                    thread.sender.name or thread.sender.email,
                    subject,
                    _format_date(thread.date),
                    str(thread.message_count),
                )
            console.print(table)
            print_skipped(result.skipped)
            if result.next_page_token:
                console.print(f"[dim]다음 페이지: --page {result.next_page_token}[/dim]")

    run_command(_list())


@mail_app.command("show")
def show_thread(
    thread_id: str = typer.Argument(..., help="스레드 ID"),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="계정 이메일"),
):
    """스레드 상세를 표시합니다."""

    async def _show():
        async with open_factory() as factory:
            identity = await resolve_identity(factory, email)
            result = await factory.create_thread_sync_engine().get_thread(identity, thread_id)
            if isinstance(result, SyncError):
                fail(result)

            thread = result.thread
            console.print(f"[bold]{thread.subject}[/bold] [dim]({thread.message_count}개 메시지)[/dim]")
            for message in thread.messages:
                console.print(f"\n[cyan]{message.sender.display()}[/cyan]  [yellow]{_format_date(message.date)}[/yellow]")
                console.print(message.snippet if message.body_html else (message.body or message.snippet))
                for attachment in message.attachments:
                    console.print(f"[dim]  첨부: {attachment.filename} ({attachment.size} bytes)[/dim]")

    run_command(_show())


@mail_app.command("labels")
def list_labels(
    email: Optional[str] = typer.Option(None, "--email", "-e", help="계정 이메일"),
):
    """라벨 목록을 조회합니다."""

    async def _labels():
        async with open_factory() as factory:
            identity = await resolve_identity(factory, email)
            labels = await factory.create_thread_sync_engine().list_labels(identity)
            if isinstance(labels, SyncError):
                fail(labels)

            table = Table(title=f"{identity.email} 라벨")
            table.add_column("ID", style="dim")
            table.add_column("이름", style="cyan")
            table.add_column("종류", style="green")
            for label in labels:
                table.add_row(label["id"], label["name"], label["type"])
            console.print(table)

    run_command(_labels())


@mail_app.command("watch")
def watch(
    emails: Optional[List[str]] = typer.Option(None, "--email", "-e", help="계정 이메일 (여러 번 지정 가능, 생략 시 모든 계정)"),
    folder: str = typer.Option("inbox", "--folder", help=f"감시할 폴더 ({', '.join(WATCH_FOLDER_LABELS)})"),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="폴링 간격 (초)"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="클라이언트 측 필터 (from:, to:, subject:, is:, has:, label:)"),
    once: bool = typer.Option(False, "--once", help="한 번만 폴링하고 종료"),
):
    """새 메일을 감시합니다. Ctrl+C로 종료합니다."""

    async def _watch():
        async with open_factory() as factory:
            manager = factory.create_credential_manager()
            if emails:
                identities = [await resolve_identity(factory, email) for email in emails]
            else:
                identities = await manager.list_identities()
            if not identities:
                console.print("[yellow]등록된 계정이 없습니다. `mailsync auth import` 로 추가하세요.[/yellow]")
                raise typer.Exit(1)

            watchers = [
                factory.create_change_watcher(identity, folder=folder, interval_seconds=interval,
                                              query=query, once=once)
                for identity in identities
            ]

            loop = asyncio.get_running_loop()
            loop.add_signal_handler(signal.SIGINT, lambda: [w.cancel() for w in watchers])

            failed = False
            async for item in merge_watchers(watchers):
                if isinstance(item, WatchNotice):
                    console.print(f"[dim]# {item.account}: {item.text}[/dim]")
                elif isinstance(item, WatchEvent):
                    message = item.message
                    console.print(
                        f"[green]{item.account}[/green] [cyan]{message.sender.display()}[/cyan] "
                        f"{message.subject} [dim]({item.thread_id})[/dim]"
                    )
                elif isinstance(item, SyncError):
                    failed = True
                    console.print(f"[red]{item.describe()}[/red]")

            loop.remove_signal_handler(signal.SIGINT)
            if failed:
                raise typer.Exit(1)

    run_command(_watch())
