"""
envplan — CLI entrypoint.

Usage:
    python -m src.main --help
    python -m src.main provision --adaptive
    python -m src.main verify
"""

from __future__ import annotations

import json
import signal
import sys
import threading
from pathlib import Path

import click

from src import __version__
from src.core.observability.logging_config import setup_from_flags


@click.group()
@click.version_option(version=__version__, prog_name="envplan")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to envplan.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """envplan — plan and provision reproducible Python environments."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_from_flags(debug=debug, verbose=verbose, quiet=quiet)


def _emit_json(data: dict) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


# ── provision ───────────────────────────────────────────────────


@cli.command()
@click.option(
    "--adaptive/--no-adaptive",
    default=None,
    help="Apply the host compatibility rules (default: ENVPLAN_ADAPTIVE).",
)
@click.option("--update", is_flag=True, help="Move to the newest stable interpreter and upgrade pins.")
@click.option("--force-reinstall", is_flag=True, help="Discard the existing environment first.")
@click.option("--parallelism", "-j", type=int, default=None, help="Install workers (1-8).")
@click.option("--dry-run", is_flag=True, help="Plan but don't execute.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def provision(
    ctx: click.Context,
    adaptive: bool | None,
    update: bool,
    force_reinstall: bool,
    parallelism: int | None,
    dry_run: bool,
    mock: bool,
    as_json: bool,
) -> None:
    """Provision the project environment.

    Examples:

        envplan provision

        envplan provision --adaptive --force-reinstall

        envplan provision --update --dry-run
    """
    from src.core.use_cases.provision import provision as run_provision

    cancel = threading.Event()

    def _on_interrupt(signum, frame) -> None:
        if cancel.is_set():
            raise KeyboardInterrupt
        click.secho("\n⏸  Stopping at the next step boundary (Ctrl-C again to abort)", fg="yellow", err=True)
        cancel.set()

    in_main = threading.current_thread() is threading.main_thread()
    previous = signal.signal(signal.SIGINT, _on_interrupt) if in_main else None
    try:
        out = run_provision(
            ctx.obj.get("config_path"),
            adaptive=adaptive,
            update=update,
            force_reinstall=force_reinstall,
            parallelism=parallelism,
            dry_run=dry_run,
            mock_mode=mock,
            cancel=cancel,
        )
    finally:
        if in_main:
            signal.signal(signal.SIGINT, previous)

    if as_json:
        _emit_json(out.to_dict())
        sys.exit(out.exit_code)

    if out.error:
        click.secho(f"❌ {out.error}", fg="red")
        sys.exit(out.exit_code)

    quiet = ctx.obj.get("quiet", False)
    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""

    if not quiet:
        click.secho(f"\n🐍 {mode_label}provision — {out.config.name if out.config else ''}", fg="cyan", bold=True)
        if out.profile:
            click.echo(f"   Host: {out.profile.summary()}")
        rec = out.recommendation
        if rec.enabled:
            if rec.interpreter:
                click.echo(f"   Rule: {rec.signature_id} → Python {rec.interpreter}")
            else:
                click.echo("   Rule: no signature matches this host")
        _print_reconcile(out.reconcile)

    plan = out.plan
    if plan is None:
        click.echo()
        sys.exit(out.exit_code)

    click.echo(
        f"   Plan: Python {plan.target_interpreter} | env {plan.env_action.value} | "
        f"{plan.parallelism} worker(s) | {len(plan.reconciled_manifest.entries)} package(s)"
    )

    if out.result is None:
        click.echo()
        return

    result = out.result
    click.echo()
    click.echo("   " + " → ".join(s.value for s in result.states))

    click.echo()
    if result.success:
        click.secho(
            f"   ✓ Python {result.interpreter_verified}: "
            f"{len(result.installed)} installed, {len(result.skipped)} already present",
            fg="green",
            bold=True,
        )
    else:
        _print_failure(result)
    click.echo()
    sys.exit(out.exit_code)


def _print_reconcile(rec) -> None:
    if rec is None:
        return
    if rec.created:
        click.secho("   ⚠ No manifest found; using the default package set", fg="yellow")
    for change in rec.constraints:
        click.echo(f"   ⊕ {change.message}")
    for report in rec.reports:
        click.secho(f"   ⊘ {report.message}", fg="yellow")
    if rec.write and rec.write.changed:
        backup = f" (backup: {rec.write.backup.name})" if rec.write.backup else ""
        click.echo(f"   📝 Wrote {rec.write.path}{backup}")


def _print_failure(result) -> None:
    step = result.failed_step.value if result.failed_step else "unknown"
    click.secho(f"   ✗ Failed at {step} ({result.error_type})", fg="red", bold=True)
    for line in result.diagnostics[:20]:
        click.echo(f"     │ {line}")
    if result.failed_packages:
        click.echo(f"     │ failed packages: {', '.join(result.failed_packages)}")


# ── profile ─────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--adaptive/--no-adaptive",
    default=None,
    help="Apply the host compatibility rules (default: ENVPLAN_ADAPTIVE).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def profile(ctx: click.Context, adaptive: bool | None, as_json: bool) -> None:
    """Show host facts and the recommended interpreter."""
    from src.core.use_cases.profile import get_profile

    result = get_profile(ctx.obj.get("config_path"), adaptive=adaptive)

    if as_json:
        _emit_json(result.to_dict())
        sys.exit(1 if result.error else 0)

    p = result.profile
    if result.error or p is None:
        click.secho(f"❌ {result.error or 'Host profile unavailable'}", fg="red")
        sys.exit(1)

    click.secho("\n🖥  Host profile", fg="cyan", bold=True)
    click.echo(f"   OS:      {p.os_family.value} {p.os_version}")
    click.echo(f"   Arch:    {p.arch.value}")
    click.echo(f"   CPUs:    {p.cpu_cores}")
    click.echo(f"   Memory:  {p.available_memory_gb:.1f} GB available")
    click.echo(f"   Disk:    {p.available_disk_gb:.1f} GB free")

    rec = result.recommendation
    click.echo()
    if not rec.enabled:
        click.echo("   Compatibility rules: off (use --adaptive)")
    elif rec.interpreter:
        click.secho(f"   Recommended: Python {rec.interpreter}", fg="green", bold=True)
        click.echo(f"   Signature:   {rec.signature_id}")
        if rec.reason:
            click.echo(f"   Reason:      {rec.reason}")
        for name, version in rec.package_pins.items():
            click.echo(f"   Pin:         {name}=={version}")
    else:
        click.echo("   No signature matches this host; the newest stable interpreter will be used")
    click.echo()


# ── reconcile ───────────────────────────────────────────────────


@cli.command()
@click.option("--write", is_flag=True, help="Persist the reconciled manifest (with backup).")
@click.option(
    "--adaptive/--no-adaptive",
    default=None,
    help="Include package pins from matching compatibility rules.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def reconcile(ctx: click.Context, write: bool, adaptive: bool | None, as_json: bool) -> None:
    """Deduplicate and constrain the manifest."""
    from src.core.use_cases.reconcile import reconcile_manifest

    result = reconcile_manifest(ctx.obj.get("config_path"), write=write, adaptive=adaptive)

    if as_json:
        _emit_json(result.to_dict())
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho("\n📦 Manifest", fg="cyan", bold=True)
    if not result.changed:
        click.secho("   ✓ Nothing to reconcile", fg="green")
    _print_reconcile(result)

    if result.changed and not write:
        click.echo()
        click.echo("   Run with --write to save these changes.")
    click.echo()


# ── verify ──────────────────────────────────────────────────────


@cli.command()
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def verify(ctx: click.Context, mock: bool, as_json: bool) -> None:
    """Check the existing environment against the lock."""
    from src.core.use_cases.provision import verify_environment

    out = verify_environment(ctx.obj.get("config_path"), mock_mode=mock)

    if as_json:
        _emit_json(out.to_dict())
        sys.exit(out.exit_code)

    result = out.result
    if out.error or result is None:
        click.secho(f"❌ {out.error or 'Verification did not run'}", fg="red")
        sys.exit(out.exit_code)

    if result.success:
        click.secho(f"✓ Environment OK (Python {result.interpreter_verified})", fg="green", bold=True)
        if ctx.obj.get("verbose"):
            for line in result.diagnostics:
                click.echo(f"  │ {line}")
    else:
        _print_failure(result)
    sys.exit(out.exit_code)


# ── history ─────────────────────────────────────────────────────


@cli.command()
@click.option("-n", "count", default=10, show_default=True, help="Number of runs to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent provisioning runs."""
    from src.core.use_cases.history import get_history

    result = get_history(ctx.obj.get("config_path"), n=count)

    if as_json:
        _emit_json(result.to_dict())
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if not result.entries:
        click.echo("No runs recorded yet.")
        return

    click.secho(f"\n📜 Last {len(result.entries)} of {result.total} run(s)", fg="cyan", bold=True)
    for entry in reversed(result.entries):
        color = {"ok": "green", "failed": "red"}.get(entry.status, "white")
        click.echo(f"   {entry.timestamp[:19]}  {entry.operation_type:<9} ", nl=False)
        click.secho(f"{entry.status:<7}", fg=color, nl=False)
        target = f"Python {entry.target_interpreter}" if entry.target_interpreter else "-"
        step = f"  [{entry.failed_step}]" if entry.failed_step else ""
        click.echo(f" {target} {entry.env_action or ''}{step}")
    click.echo()


if __name__ == "__main__":
    cli()
