"""
CLI 命令模块 - wasession 的所有命令行命令定义。

本模块使用 Typer 框架定义 wasession 的 CLI 命令体系：
- onboard：初始化默认配置文件
- pair：为会话获取配对码（已配对时提示）
- run：启动一个或多个会话并保持在线（断线自动重连），Ctrl+C 退出
- sessions：会话管理（列出磁盘上的会话、重置会话凭据）
- status：查看配置与会话概况

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、彩色状态等）
"""

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from wasession import __logo__, __version__

app = typer.Typer(
    name="wasession",
    help=f"{__logo__} wasession - multi-session messaging connection manager",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} wasession v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """wasession CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


def _configure_logs(logs: bool, verbose: bool = False) -> None:
    """开关 wasession 的运行日志；verbose 时输出 DEBUG 级别，否则只输出 INFO 及以上。"""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")
    if logs:
        logger.enable("wasession")
    else:
        logger.disable("wasession")


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """
    初始化 wasession 配置。

    在 ~/.wasession/ 下创建默认配置文件 config.json；已存在时询问是否覆盖。
    """
    from wasession.config.loader import get_config_path, save_config
    from wasession.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config)
    config.sessions_path.mkdir(parents=True, exist_ok=True)

    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print(f"[green]✓[/green] Sessions directory: {config.sessions_path}")
    console.print(f"\n{__logo__} wasession is ready!")
    console.print("\nNext steps:")
    console.print("  1. Start the protocol bridge (bridge.url in the config)")
    console.print("  2. Pair a session: [cyan]wasession pair --session default[/cyan]")
    console.print("  3. Keep it online: [cyan]wasession run --session default[/cyan]")


# ============================================================================
# Pairing
# ============================================================================


@app.command()
def pair(
    session_id: str = typer.Option(None, "--session", "-s", help="Session ID"),
    timeout: float = typer.Option(None, "--timeout", "-t", help="Seconds to wait for a pairing code"),
    phone: str = typer.Option(None, "--phone", help="Phone number to pair (defaults to owner number)"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show runtime logs"),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Show debug output"),
):
    """
    获取会话的配对码。

    已有凭据时直接提示"已配对"；否则启动会话并等待配对码，
    拿到配对码后保持连接，直到配对完成（状态变为 connected）或用户按 Ctrl+C。
    """
    from wasession.api import build_api
    from wasession.config.loader import load_config
    from wasession.session.errors import WASessionError
    from wasession.session.registry import SessionStatus

    config = load_config()
    _configure_logs(logs, verbose)
    api = build_api(config)
    sid = session_id or config.sessions.default_id

    async def run():
        try:
            with console.status(f"[dim]Requesting pairing code for {sid}...[/dim]", spinner="dots"):
                result = await api.pairing.get_pairing_code(sid, timeout=timeout, phone_number=phone)
            if result.already_paired:
                console.print(f"[green]✓[/green] Session [cyan]{sid}[/cyan] is already paired")
                return

            console.print(f"{__logo__} Pairing code for [cyan]{sid}[/cyan]: [bold]{result.code}[/bold]")
            console.print("[dim]Waiting for the device to link (Ctrl+C to abort)...[/dim]")
            while True:
                state = api.lifecycle.status_of(sid)
                if state == SessionStatus.CONNECTED:
                    break
                if state == SessionStatus.LOGGED_OUT:
                    console.print(f"[red]Session {sid} was logged out before pairing completed[/red]")
                    raise typer.Exit(1)
                await asyncio.sleep(0.5)
            console.print(f"[green]✓[/green] Session [cyan]{sid}[/cyan] connected")
        except WASessionError as e:
            console.print(f"[red]Pairing failed: {e.detail}[/red]")
            raise typer.Exit(1)
        finally:
            await api.lifecycle.stop_all()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nAborted.")


# ============================================================================
# Run
# ============================================================================


@app.command()
def run(
    session_ids: list[str] = typer.Option(None, "--session", "-s", help="Session ID (repeatable)"),
    all_paired: bool = typer.Option(False, "--all", "-a", help="Run every paired session on disk"),
    logs: bool = typer.Option(True, "--logs/--no-logs", help="Show runtime logs"),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Show debug output"),
):
    """
    启动会话并保持在线。

    每个会话独立连接，非注销断线后按配置的间隔自动重连；
    注销的会话不再重连，需要执行 `wasession sessions reset` 后重新配对。
    """
    from wasession.api import build_api
    from wasession.config.loader import load_config
    from wasession.session.errors import ConstructionError

    config = load_config()
    _configure_logs(logs, verbose)
    api = build_api(config)

    targets = list(session_ids or [])
    if all_paired:
        targets += [s["session_id"] for s in api.pairing.store.list_sessions() if s["paired"]]
    targets = list(dict.fromkeys(targets)) or [config.sessions.default_id]

    console.print(f"{__logo__} Starting sessions: {', '.join(targets)}")

    async def main_loop():
        try:
            for sid in targets:
                try:
                    await api.lifecycle.ensure_started(sid)
                except ConstructionError as e:
                    console.print(f"[red]✗[/red] {sid}: {e.detail}")
            while True:
                await asyncio.sleep(3600)
        finally:
            await api.lifecycle.stop_all()

    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


# ============================================================================
# Session Commands
# ============================================================================


sessions_app = typer.Typer(help="Manage stored sessions")
app.add_typer(sessions_app, name="sessions")


@sessions_app.command("list")
def sessions_list():
    """以表格形式列出磁盘上的所有会话及其配对状态。"""
    from wasession.config.loader import load_config
    from wasession.session.credentials import CredentialStore

    config = load_config()
    store = CredentialStore(config.sessions_path)
    sessions = store.list_sessions()

    if not sessions:
        console.print("No sessions.")
        return

    table = Table(title="Sessions")
    table.add_column("Session", style="cyan")
    table.add_column("Paired", style="green")
    table.add_column("Path", style="dim")

    for s in sessions:
        table.add_row(s["session_id"], "✓" if s["paired"] else "✗", s["path"])

    console.print(table)


@sessions_app.command("reset")
def sessions_reset(
    session_id: str = typer.Argument(..., help="Session ID to reset"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """删除会话凭据（注销后重新配对前必须执行）。"""
    from wasession.config.loader import load_config
    from wasession.session.credentials import CredentialStore
    from wasession.session.errors import WASessionError

    config = load_config()
    store = CredentialStore(config.sessions_path)

    if not yes and not typer.confirm(f"Delete credentials for session {session_id}?"):
        raise typer.Exit()

    try:
        cleared = store.clear(session_id)
    except WASessionError as e:
        console.print(f"[red]{e.detail}[/red]")
        raise typer.Exit(1)

    if cleared:
        console.print(f"[green]✓[/green] Reset session {session_id}")
    else:
        console.print(f"[red]Session {session_id} not found[/red]")


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status():
    """显示 wasession 配置与会话概况。"""
    from wasession.config.loader import get_config_path, load_config
    from wasession.session.credentials import CredentialStore

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} wasession Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Bridge: {config.bridge.url}")
    console.print(f"Gateway: {config.gateway.host}:{config.gateway.port}")
    console.print(f"Owner: {config.owner_number}")

    sessions = CredentialStore(config.sessions_path).list_sessions()
    paired = sum(1 for s in sessions if s["paired"])
    console.print(f"Sessions: {len(sessions)} stored, {paired} paired")


if __name__ == "__main__":
    app()
