"""
mailsync - 다중 계정 메일 동기화 CLI

메인 진입점 파일입니다.
"""

import typer

from adapters.cli.auth_commands import auth_app
from adapters.cli.cache_commands import cache_app
from adapters.cli.common import console
from adapters.cli.db_commands import app as db_app
from adapters.cli.mail_commands import mail_app
from config.adapters import get_config

__version__ = "1.0.0"

# 메인 CLI 앱
app = typer.Typer(
    name="mailsync",
    help="다중 계정 Gmail 동기화 도구",
    no_args_is_help=True,
)

# 서브 명령어 추가
app.add_typer(auth_app, name="auth")
app.add_typer(mail_app, name="mail")
app.add_typer(cache_app, name="cache")
app.add_typer(db_app, name="db")


@app.command("version")
def show_version():
    """버전 정보를 표시합니다."""
    console.print("[bold]mailsync - 다중 계정 메일 동기화 도구[/bold]")
    console.print(f"버전: {__version__}")


@app.command("config")
def show_config():
    """현재 설정을 표시합니다."""
    try:
        config = get_config()

        console.print("[bold]현재 설정[/bold]")
        console.print(f"환경: {config.get_environment()}")
        console.print(f"디버그 모드: {config.is_debug()}")
        console.print(f"데이터베이스 URL: {config.get_database_url()}")
        console.print(f"Google 클라이언트 ID: {config.get_google_client_id()}")
        console.print(f"API 주소: {config.get_api_base_url()}")
        console.print(f"로그 레벨: {config.get_log_level()}")
        console.print(f"재시도: 최대 {config.get_retry_max_attempts()}회, 기본 대기 {config.get_retry_base_delay_ms()}ms")
        console.print(f"하이드레이션 동시성: {config.get_hydrate_concurrency()}")
        console.print(f"감시 간격(초): {config.get_watch_interval_seconds()}")

    except Exception as e:
        console.print(f"[red]오류: {str(e)}[/red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
