"""
데이터베이스 관리 CLI 명령어

데이터베이스 초기화와 리셋을 위한 CLI 명령어입니다.
"""

import typer

from adapters.db.database import DatabaseAdapter
from config.adapters import get_config
from .common import console, run_command

# CLI 앱 생성
app = typer.Typer(name="db", help="데이터베이스 관리 명령어")


@app.command("init")
def init_database(
    drop_existing: bool = typer.Option(False, "--drop", help="기존 테이블을 삭제하고 재생성"),
):
    """데이터베이스를 초기화합니다."""

    async def _init():
        config = get_config()
        console.print(f"[blue]환경: {config.get_environment()}[/blue]")
        console.print(f"[blue]데이터베이스: {config.get_database_url()}[/blue]")

        async with DatabaseAdapter.from_config(config) as database:
            if drop_existing:
                console.print("[yellow]기존 테이블을 삭제하는 중...[/yellow]")
                await database.drop_tables()

            console.print("[blue]데이터베이스 테이블을 생성하는 중...[/blue]")
            await database.create_tables()

        console.print("[green]✓ 데이터베이스가 성공적으로 초기화되었습니다![/green]")

    run_command(_init())


@app.command("reset")
def reset_database():
    """데이터베이스를 리셋합니다. (모든 계정, 캐시, 워터마크 삭제)"""

    confirm = typer.confirm("모든 데이터가 삭제됩니다. 계속하시겠습니까?")
    if not confirm:
        console.print("[yellow]취소되었습니다.[/yellow]")
        return

    async def _reset():
        async with DatabaseAdapter.from_config(get_config()) as database:
            await database.drop_tables()
            await database.create_tables()
        console.print("[green]✓ 데이터베이스 리셋이 완료되었습니다![/green]")

    run_command(_reset())
