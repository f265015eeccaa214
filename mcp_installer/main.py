"""
MCP server installer — CLI entrypoint.

Usage:
    mcp-installer --help
    mcp-installer analyze https://github.com/example/foo-mcp
    mcp-installer install template:basic-api
    mcp-installer list
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from mcp_installer import __version__
from mcp_installer.core.observability.logging_config import setup_logging_from_env


def _parse_env_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--env")
        env[key] = value
    return env


def _installation(ctx: click.Context, pacing_ms: int | None = None):
    """Build an Installation for this invocation (host injectable via ctx.obj)."""
    from mcp_installer.adapters.local import LocalHostServices
    from mcp_installer.core.config.loader import ConfigError, load_settings
    from mcp_installer.core.use_cases.install import Installation

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if pacing_ms is not None:
        settings = settings.model_copy(update={"pacing_ms": pacing_ms})

    host = ctx.obj.get("host") or LocalHostServices()
    return Installation(host, settings)


def install_options(func):
    """Options shared by ``plan`` and ``install``."""
    decorators = [
        click.option("--method", type=click.Choice(["npx", "uv", "python", "docker"]),
                     default=None, help="Override the recommended install method."),
        click.option("--path", "install_path", default=None, help="Installation directory."),
        click.option("--name", "server_name", default=None, help="Server name in the host config."),
        click.option("--port", type=int, default=None, help="Server port."),
        click.option("--env", "env_pairs", multiple=True, metavar="KEY=VALUE",
                     help="Environment variable for the server (repeatable)."),
        click.option("--auto-start", is_flag=True, help="Mark the server for auto-start."),
        click.option("--no-write-config", is_flag=True, help="Skip writing repo config files."),
        click.option("--no-host-config", is_flag=True, help="Do not update the host config."),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def _build_options(
    method: str | None,
    install_path: str | None,
    server_name: str | None,
    port: int | None,
    env_pairs: tuple[str, ...],
    auto_start: bool,
    no_write_config: bool,
    no_host_config: bool,
):
    from mcp_installer.core.models import InstallMethod, InstallOptions

    return InstallOptions(
        method=InstallMethod(method) if method else None,
        install_path=install_path,
        server_name=server_name,
        port=port,
        environment=_parse_env_pairs(env_pairs),
        auto_start=auto_start,
        write_config=not no_write_config,
        update_host_config=not no_host_config,
    )


@click.group()
@click.version_option(version=__version__, prog_name="mcp-installer")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to installer settings (default: ~/.config/mcp-installer/settings.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """MCP server installer — install and register MCP servers."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging_from_env(debug=debug, verbose=verbose, quiet=quiet)


# ── Analyze / plan ──────────────────────────────────────────────


@cli.command()
@click.argument("source")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def analyze(ctx: click.Context, source: str, as_json: bool) -> None:
    """Analyze a source without installing it.

    SOURCE is a git URL (optionally ``#ref``), ``template:<id>``, or a
    local directory.
    """
    from mcp_installer.adapters.base import HostServicesError
    from mcp_installer.core.services.analyzer import AnalysisError

    installation = _installation(ctx)
    try:
        analysis = installation.analyze(source)
    except (AnalysisError, HostServicesError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(analysis.model_dump(mode="json"), indent=2))
        return

    click.secho(f"\n🔍 {analysis.repo_name}", fg="cyan", bold=True)
    click.echo(f"   Language:   {analysis.language}")
    click.echo(f"   Framework:  {analysis.framework or '-'}")
    click.echo(f"   Method:     {analysis.recommended_method}")
    click.echo(f"   Container:  {'yes' if analysis.has_container_manifest else 'no'}")
    if analysis.declared_port:
        click.echo(f"   Port:       {analysis.declared_port}")
    if analysis.config_file_candidates:
        click.echo(f"   Config:     {', '.join(analysis.config_file_candidates)}")
    if analysis.declared_dependencies:
        click.echo(f"   Dependencies: {len(analysis.declared_dependencies)}")
        for dep in analysis.declared_dependencies[:20]:
            click.echo(f"     • {dep.name} {dep.version or ''}".rstrip())
    click.echo()


@cli.command()
@click.argument("source")
@install_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, source: str, as_json: bool, **kw) -> None:
    """Show the installation plan for SOURCE without running it."""
    from mcp_installer.adapters.base import HostServicesError
    from mcp_installer.core.services.analyzer import AnalysisError
    from mcp_installer.core.services.planner import PlanError

    installation = _installation(ctx)
    try:
        options = _build_options(**kw)
        _, built = installation.plan(source, options)
    except (AnalysisError, PlanError, HostServicesError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(built.model_dump(mode="json"), indent=2))
        return

    click.secho(f"\n📋 {built.repo_name} ({built.method}) → {built.install_path}", fg="cyan", bold=True)
    for i, step in enumerate(built.steps, start=1):
        click.echo(f"   {i}. [{step.kind}] {step.description}")
    click.echo()


# ── Install ─────────────────────────────────────────────────────


@cli.command()
@click.argument("source")
@install_options
@click.option("--pacing-ms", type=int, default=None, help="Pause between steps (ms).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, source: str, pacing_ms: int | None, as_json: bool, **kw) -> None:
    """Install SOURCE and register it with the host application."""
    installation = _installation(ctx, pacing_ms=pacing_ms)
    options = _build_options(**kw)
    quiet = ctx.obj.get("quiet", False)

    if not as_json:
        def _print_event(event: dict) -> None:
            data = event["data"]
            if event["type"] == "progress":
                mark = {"failed": "✗", "done": "✓"}.get(data["phase"], "•")
                click.echo(
                    f"   {mark} [{data['completed_step_count']}/{data['total_step_count']}] "
                    f"{data['current_step_description']}"
                )
            elif event["type"] == "log" and data["level"] == "warn" and not quiet:
                click.secho(f"     ⚠ {data['message']}", fg="yellow")

        installation.bus.add_listener(_print_event)
        click.secho(f"\n⚡ Installing {source}", fg="cyan", bold=True)

    result = installation.run(source, options)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if not result.ok:
        where = f" at {result.failed_step}" if result.failed_step else ""
        click.secho(f"\n❌ Installation failed{where} ({result.error_kind}): {result.error}", fg="red")
        sys.exit(1)

    entry = result.entry
    assert entry is not None  # guaranteed when ok
    click.echo()
    click.secho(f"✅ Installed {entry.name} ({entry.id})", fg="green", bold=True)
    click.echo(f"   Path:   {entry.install_path}")
    click.echo(f"   Method: {entry.install_method}")
    if result.report and result.report.verification and not result.report.verification.success:
        click.secho(f"   ⚠️  {result.report.verification.message}", fg="yellow")
    click.echo()


# ── Registry ────────────────────────────────────────────────────


@cli.command("list")
@click.option("--all", "include_removed", is_flag=True, help="Include removed servers.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_servers(ctx: click.Context, include_removed: bool, as_json: bool) -> None:
    """List installed servers."""
    from mcp_installer.core.persistence.registry import RegistryError

    installation = _installation(ctx)
    try:
        entries = installation.registry.list(include_removed=include_removed)
    except RegistryError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No servers installed.")
        return

    for entry in entries:
        color = "green" if entry.status == "installed" else "white"
        click.secho(f"   • {entry.id}", fg=color, nl=False)
        click.echo(f"  [{entry.install_method}] {entry.install_path}  ({entry.status})")


@cli.command()
@click.argument("entry_id")
@click.option("--keep-host-config", is_flag=True, help="Leave the host config untouched.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def remove(ctx: click.Context, entry_id: str, keep_host_config: bool, as_json: bool) -> None:
    """Mark ENTRY_ID as removed (files on disk are kept)."""
    from mcp_installer.core.persistence.host_config import ConfigWriteError
    from mcp_installer.core.persistence.registry import RegistryError

    installation = _installation(ctx)
    try:
        entry = installation.remove(entry_id, update_host_config=not keep_host_config)
    except (RegistryError, ConfigWriteError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(entry.model_dump(mode="json"), indent=2))
        return
    click.secho(f"🗑️  Removed {entry.id}", fg="green")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def templates(as_json: bool) -> None:
    """List installable templates."""
    from mcp_installer.core.services.templates import TemplateCatalog

    catalog = TemplateCatalog().all()
    if as_json:
        click.echo(json.dumps([t.model_dump(mode="json") for t in catalog], indent=2))
        return

    for t in catalog:
        click.secho(f"   • template:{t.id}", fg="cyan", nl=False)
        click.echo(f"  {t.name} — {t.description}")


# ── Host config ─────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Host application config commands."""


@config.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Show the host config (defaults when the file is absent)."""
    installation = _installation(ctx)
    document = installation.reconciler.load()

    if as_json:
        click.echo(json.dumps(document, indent=2, ensure_ascii=False))
        return

    click.secho(f"\n⚙️  {installation.reconciler.path}", fg="cyan", bold=True)
    servers = document.get("mcpServers") if isinstance(document.get("mcpServers"), dict) else {}
    for name, server in servers.items():
        if not isinstance(server, dict):
            continue
        state = "enabled" if server.get("enabled") else "disabled"
        click.echo(f"   • {name}  port={server.get('port')}  {state}")
    click.echo()


@config.command("ensure")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_ensure(ctx: click.Context, as_json: bool) -> None:
    """Write the host config with every required server present."""
    from mcp_installer.core.persistence.host_config import ConfigWriteError

    installation = _installation(ctx)
    try:
        document = installation.reconciler.ensure()
    except ConfigWriteError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(document, indent=2, ensure_ascii=False))
        return
    click.secho(f"✅ Host config ready: {installation.reconciler.path}", fg="green")


if __name__ == "__main__":
    cli()
