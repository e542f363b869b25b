"""
인증 관련 CLI 명령어

외부에서 발급받은 OAuth 토큰 가져오기, 상태 조회, 갱신, 로그아웃 명령어들입니다.
브라우저 동의 절차는 다루지 않습니다.
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from core.domain.entities import AccountIdentity, Credential
from core.domain.errors import SyncError
from .common import console, fail, open_factory, resolve_identity, run_command

auth_app = typer.Typer(help="인증 관련 명령어")


@auth_app.command("import")
def import_credential(
    email: str = typer.Option(..., "--email", "-e", help="계정 이메일"),
    token_file: Path = typer.Option(..., "--file", "-f", exists=True, readable=True,
                                    help="토큰 JSON 파일 (access_token, refresh_token, expires_in 등)"),
    app_id: Optional[str] = typer.Option(None, "--app-id", help="OAuth 클라이언트 ID (기본: 설정값)"),
):
    """발급받은 토큰 JSON을 가져와 암호화 저장합니다."""

    async def _import():
        async with open_factory() as factory:
            identity = AccountIdentity(
                email=email,
                app_id=app_id or factory.get_config().get_google_client_id(),
            )
            credential = Credential.from_token_response(json.loads(token_file.read_text(encoding="utf-8")))
            await factory.create_credential_manager().store(identity, credential)
            console.print(f"[green]✓ {identity.email} 자격 증명을 저장했습니다[/green]")

    run_command(_import())


@auth_app.command("status")
def show_status():
    """등록된 계정의 인증 상태를 표시합니다."""

    async def _status():
        async with open_factory() as factory:
            manager = factory.create_credential_manager()
            identities = await manager.list_identities()
            if not identities:
                console.print("[yellow]등록된 계정이 없습니다. `mailsync auth import` 로 추가하세요.[/yellow]")
                return

            table = Table(title="인증 상태")
            table.add_column("이메일", style="cyan")
            table.add_column("앱 ID", style="dim")
            table.add_column("상태", style="green")
            table.add_column("만료", style="yellow")
            table.add_column("Refresh Token", style="red")

            for identity in identities:
                status = await manager.status(identity)
                state = "만료됨" if status.get("expired") else "유효"
                table.add_row(
                    identity.email,
                    identity.app_id,
                    state,
                    str(status.get("expires_at") or "-"),
                    "있음" if status.get("has_refresh_token") else "없음",
                )
            console.print(table)

    run_command(_status())


@auth_app.command("refresh")
def refresh_credential(
    email: Optional[str] = typer.Option(None, "--email", "-e", help="계정 이메일"),
):
    """토큰을 강제로 갱신합니다."""

    async def _refresh():
        async with open_factory() as factory:
            identity = await resolve_identity(factory, email)
            credential = await factory.create_credential_manager().refresh(identity)
            if isinstance(credential, SyncError):
                fail(credential)
            console.print(f"[green]✓ 토큰 갱신 완료: {identity.email} (만료: {credential.expires_at})[/green]")

    run_command(_refresh())


@auth_app.command("logout")
def logout(
    email: str = typer.Option(..., "--email", "-e", help="계정 이메일"),
    force: bool = typer.Option(False, "--force", "-f", help="확인 없이 강제 실행"),
):
    """계정의 자격 증명, 캐시, 워터마크를 삭제합니다."""
    if not force and not typer.confirm(f"{email} 계정의 모든 로컬 데이터를 삭제합니다. 계속하시겠습니까?"):
        console.print("[yellow]취소되었습니다.[/yellow]")
        return

    async def _logout():
        async with open_factory() as factory:
            identity = await resolve_identity(factory, email)
            await factory.create_credential_manager().forget(identity)
            await factory.create_cache_store().clear_all(identity)
            await factory.create_watermark_repository().delete(identity)
            console.print(f"[green]✓ {identity.email} 로그아웃 완료[/green]")

    run_command(_logout())
