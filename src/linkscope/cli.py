"""Command-line interface for LinkScope."""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
import httpx
import uvicorn

from .core.errors import LinkScopeError
from .models.config import AppConfig

CONFIG_DIR_OPTION = click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Configuration directory (default: ~/.linkscope)",
)
USER_OPTION = click.option(
    "--user",
    type=str,
    default=None,
    help="Username to act as (default: LINKSCOPE_USERNAME)",
)


@click.group()
@click.version_option(version="0.1.0", prog_name="linkscope")
def cli():
    """LinkScope - AI-summarized link bookmarks."""
    pass


@cli.command()
@CONFIG_DIR_OPTION
@click.option("--username", type=str, default=None, help="Username records are attributed to")
@click.option(
    "--openai-api-key",
    type=str,
    default=None,
    help="OpenAI API key (will be saved to .env file)",
)
@click.option(
    "--analyzer-mode",
    type=click.Choice(["direct", "proxy"], case_sensitive=False),
    default="proxy",
    show_default=True,
    help="'direct' calls OpenAI with your key, 'proxy' goes through 'linkscope serve'.",
)
def init(
    config_dir: Optional[Path],
    username: Optional[str],
    openai_api_key: Optional[str],
    analyzer_mode: str,
):
    """Initialize LinkScope configuration.

    Creates the configuration directory, .env file and link storage.
    """
    from .config import ConfigError, ConfigManager

    try:
        cm = ConfigManager(config_dir)

        click.echo(f"Initializing LinkScope at {cm.config_dir}...")

        if not username:
            username = click.prompt("Username")

        cm.create_env_file(username.strip(), openai_api_key)
        click.echo("[OK] Created .env file")

        app_config = AppConfig(analyzer_mode=analyzer_mode.lower())
        storage_dir = cm.storage_root(app_config)
        (storage_dir / "links").mkdir(parents=True, exist_ok=True)
        app_config = app_config.model_copy(update={"storage_path": str(storage_dir)})

        cm.save_app_config(app_config)
        click.echo("[OK] Created config.yaml")
        click.echo(f"[OK] Created storage directory at {storage_dir}")

        if not openai_api_key:
            click.echo(f"\n[WARNING] Please add your OpenAI API key to: {cm.env_file}")

        click.echo("\nStart the server with: linkscope serve")

    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: config.yaml host)")
@click.option("--port", type=int, default=None, help="Bind port (default: config.yaml port)")
@click.option("--reload", is_flag=True, default=False, help="Restart on source changes")
@CONFIG_DIR_OPTION
def serve(host: Optional[str], port: Optional[int], reload: bool, config_dir: Optional[Path]):
    """Start the LinkScope API server and analyze proxy."""
    from .config import CONFIG_DIR_ENV, ConfigError, ConfigManager

    cm = ConfigManager(config_dir)
    try:
        app_config = cm.load_app_config()
        cm.load_env_settings()
    except ConfigError as e:
        _fail(str(e))
        return

    # The app builds its own ConfigManager inside the uvicorn process
    if config_dir:
        os.environ[CONFIG_DIR_ENV] = str(config_dir)

    host = host or app_config.host
    port = port or app_config.port
    base_url = f"http://{host}:{port}"

    click.echo(f"LinkScope API ({cm.config_dir})")
    click.echo(f"  links:   {base_url}/api/v1/links")
    click.echo(f"  analyze: {base_url}/api/analyze-link")
    click.echo(f"  docs:    {base_url}/docs")

    try:
        uvicorn.run(
            "linkscope.api:app",
            host=host,
            port=port,
            reload=reload,
            log_level=app_config.log_level.lower(),
        )
    except KeyboardInterrupt:
        click.echo("Stopped.")


async def _open_board(config_dir: Optional[Path], user: Optional[str], with_analyzer: bool):
    from .config import ConfigManager
    from .core.analyzer import create_analyzer
    from .core.link_board import LinkBoard
    from .core.link_store import LinkStore
    from .core.link_table import LinkTable

    cm = ConfigManager(config_dir)
    app_config = cm.load_app_config()
    logging.basicConfig(level=app_config.log_level.upper())

    session = cm.load_session(user)
    table = LinkTable(cm.storage_root(app_config))
    await table.initialize()

    analyzer = create_analyzer(app_config, session) if with_analyzer else None
    board = LinkBoard(LinkStore(table, session), analyzer)
    await board.load()
    return board


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@cli.command()
@click.argument("url")
@click.option("--context", type=str, default=None, help="Hint passed to the analyzer")
@click.option("--title", type=str, default=None)
@click.option("--summary", type=str, default=None, help="Required with --manual")
@click.option("--tags", type=str, default=None, help="Comma-separated tags")
@click.option("--todo", is_flag=True, default=False, help="Add to the Todos tab")
@click.option("--manual", is_flag=True, default=False, help="Skip AI analysis")
@USER_OPTION
@CONFIG_DIR_OPTION
def add(
    url: str,
    context: Optional[str],
    title: Optional[str],
    summary: Optional[str],
    tags: Optional[str],
    todo: bool,
    manual: bool,
    user: Optional[str],
    config_dir: Optional[Path],
):
    """Add a link, analyzed by AI unless --manual is given."""
    from .config import ConfigError
    from .models.link import LinkStatus

    tag_list: List[str] = [t.strip() for t in (tags or "").split(",") if t.strip()]

    async def run():
        board = await _open_board(config_dir, user, with_analyzer=not manual)
        return await board.add_link(
            url=url,
            context=context,
            title=title,
            summary=summary,
            tags=tag_list,
            status=LinkStatus.TODO if todo else LinkStatus.ACTIVE,
            use_ai=not manual,
        )

    try:
        record = asyncio.run(run())
    except (ConfigError, LinkScopeError) as e:
        _fail(str(e))
        return

    click.echo(f"[OK] Added {record.url}")
    click.echo(f"     {record.summary}")
    if record.tags:
        click.echo(f"     tags: {', '.join(record.tags)}")


@cli.command(name="list")
@click.option(
    "--tab",
    type=click.Choice(["links", "todos"], case_sensitive=False),
    default="links",
    show_default=True,
)
@click.option("--search", type=str, default="", help="Search url, summary, title and tags")
@click.option("--tag", type=str, default=None, help="Exact tag filter")
@USER_OPTION
@CONFIG_DIR_OPTION
def list_links(
    tab: str,
    search: str,
    tag: Optional[str],
    user: Optional[str],
    config_dir: Optional[Path],
):
    """Show the links visible in one tab."""
    from .config import ConfigError
    from .core.views import Tab
    from .utils.url_utils import extract_host

    try:
        board = asyncio.run(_open_board(config_dir, user, with_analyzer=False))
    except (ConfigError, LinkScopeError) as e:
        _fail(str(e))
        return

    visible = board.view(Tab(tab.lower()), search, tag)
    if not visible:
        click.echo("No links found.")
        return

    for record in visible:
        marker = {"todo": "[ ]", "completed": "[x]"}.get(record.status.value, " - ")
        click.echo(f"{marker} {record.title or extract_host(record.url)}  {record.url}")
        click.echo(f"      {record.summary}")
        if record.tags:
            click.echo(f"      #{' #'.join(record.tags)}")


@cli.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["csv", "json"], case_sensitive=False),
    default="csv",
    show_default=True,
)
@click.option(
    "--output",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Output file (default: linkscope-links-<date>.<format>)",
)
@USER_OPTION
@CONFIG_DIR_OPTION
def export(fmt: str, output: Optional[Path], user: Optional[str], config_dir: Optional[Path]):
    """Export every visible link to CSV or JSON."""
    from .config import ConfigError
    from .core.exporter import export_filename, to_csv, to_json

    try:
        board = asyncio.run(_open_board(config_dir, user, with_analyzer=False))
    except (ConfigError, LinkScopeError) as e:
        _fail(str(e))
        return

    fmt = fmt.lower()
    content = to_csv(board.links) if fmt == "csv" else to_json(board.links)
    output = output or Path(export_filename(fmt))
    output.write_text(content, encoding="utf-8")

    click.echo(f"[OK] Exported {len(board.links)} links to {output}")


Check = Tuple[str, str, Optional[str]]


def _check_config(cm) -> Tuple[List[Check], Optional[AppConfig]]:
    from .config import ConfigError

    if not cm.config_file.exists():
        return [("FAIL", f"Missing config file: {cm.config_file}", "Run: linkscope init")], None
    try:
        app_config = cm.load_app_config()
    except ConfigError as e:
        return [("FAIL", f"config.yaml validation failed: {e}", None)], None
    return [("PASS", "config.yaml parsed successfully", None)], app_config


def _check_env(cm, app_config) -> List[Check]:
    from .config import ConfigError, is_placeholder_secret

    try:
        env_settings = cm.load_env_settings()
    except ConfigError as e:
        return [("FAIL", f".env validation failed: {e}", None)]

    checks: List[Check] = []
    username = (env_settings.linkscope_username or "").strip()
    if username:
        checks.append(("PASS", f"Username: {username}", None))
    else:
        checks.append(("FAIL", "LINKSCOPE_USERNAME is not set", f"Set it in {cm.env_file}"))

    if not is_placeholder_secret(env_settings.openai_api_key):
        checks.append(("PASS", "OPENAI_API_KEY looks configured", None))
    elif app_config is not None and app_config.analyzer_mode == "direct":
        checks.append(
            (
                "FAIL",
                "OPENAI_API_KEY appears unset or placeholder",
                f"Set OPENAI_API_KEY in {cm.env_file} or use analyzer_mode: proxy",
            )
        )
    else:
        checks.append(("WARN", "OPENAI_API_KEY is not set; the analyze proxy will answer 500", None))
    return checks


def _check_storage(cm, app_config) -> List[Check]:
    if app_config is None:
        return []
    storage_dir = cm.storage_root(app_config)
    if storage_dir.is_dir():
        return [("PASS", f"Link storage is accessible: {storage_dir}", None)]
    return [("FAIL", f"Link storage missing: {storage_dir}", "Run: linkscope init")]


def _check_server(api_url: Optional[str]) -> List[Check]:
    if not api_url:
        return [("WARN", "Skipped server check (pass --api-url to enable)", None)]

    health_url = f"{api_url.rstrip('/')}/api/v1/health"
    try:
        response = httpx.get(health_url, timeout=3.0)
    except httpx.HTTPError as e:
        return [("FAIL", f"Server is not reachable at {health_url} ({e})", "Start it: linkscope serve")]

    if response.status_code != 200:
        return [("FAIL", f"{health_url} answered HTTP {response.status_code}", None)]
    return [("PASS", f"Server is reachable: {health_url}", None)]


@cli.command()
@CONFIG_DIR_OPTION
@click.option(
    "--api-url",
    type=str,
    default=None,
    help="Base URL of a running server to check, e.g. http://127.0.0.1:8000",
)
def doctor(config_dir: Optional[Path], api_url: Optional[str]):
    """Check configuration, credentials and storage, and suggest fixes."""
    from .config import ConfigManager

    cm = ConfigManager(config_dir)
    click.echo(f"LinkScope doctor ({cm.config_dir})")

    checks, app_config = _check_config(cm)
    checks += _check_env(cm, app_config)
    checks += _check_storage(cm, app_config)
    checks += _check_server(api_url)

    for status, message, fix in checks:
        click.echo(f"[{status}] {message}")
        if fix:
            click.echo(f"      Fix: {fix}")

    failures = sum(1 for status, _, _ in checks if status == "FAIL")
    warnings = sum(1 for status, _, _ in checks if status == "WARN")
    click.echo(f"Summary: {failures} fail, {warnings} warn")

    sys.exit(1 if failures else 0)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
