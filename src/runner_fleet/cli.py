"""
Runner Fleet command line interface.

Usage:
    runner-fleet provision OWNER REPO [REPO ...] [--label gpu] [--force]
    runner-fleet remove OWNER REPO [REPO ...]
    runner-fleet status OWNER REPO [REPO ...]
"""

import dataclasses
import json
import logging
import sys
from typing import Optional

import click

from . import __version__
from .config import FleetConfig, load_config
from .error_handling import PreflightError
from .preflight import check_config, run_preflight
from .provisioning import (
    ArtifactCache,
    BatchSummary,
    CredentialBroker,
    FleetOrchestrator,
    ScriptAgentController,
    TargetReconciler,
    build_targets,
)

PREFLIGHT_EXIT_CODE = 2


def setup_logging(debug: bool = False) -> None:
    """Configure logging to stderr."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_reconciler(config: FleetConfig) -> TargetReconciler:
    """Wire the reconciler and its collaborators from configuration."""
    broker = CredentialBroker(
        api_url=config.api_url,
        api_token=config.token,
        timeout=config.request_timeout,
    )
    cache = ArtifactCache(
        cache_dir=config.cache_dir,
        url_template=config.download_url_template,
        platform=config.platform,
        sha256=config.artifact_sha256,
        timeout=config.download_timeout,
    )
    return TargetReconciler(
        controller=ScriptAgentController(use_sudo=config.use_sudo),
        broker=broker,
        cache=cache,
        version=config.agent_version,
        web_url=config.web_url,
        host_id=config.host_id,
        install_service=config.install_service,
    )


def _load(config_path: Optional[str], **overrides) -> FleetConfig:
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        raise PreflightError(str(e)) from e
    # replace() re-runs __post_init__ so overridden paths and labels are normalized
    return dataclasses.replace(config, **{k: v for k, v in overrides.items() if v is not None})


def _report(summary: BatchSummary, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2))
        return
    for outcome in summary.outcomes:
        line = f"{outcome.target}: {outcome.status.value}"
        if outcome.reason:
            line += f" ({outcome.reason})"
        click.echo(line)
        for warning in outcome.warnings:
            click.echo(f"  warning: {warning}")
    if summary.aborted:
        click.echo(f"Batch aborted: {summary.aborted}", err=True)


def _fail_preflight(error: PreflightError) -> None:
    click.echo(f"Pre-flight check failed: {error}", err=True)
    sys.exit(PREFLIGHT_EXIT_CODE)


@click.group()
@click.version_option(__version__, prog_name="runner-fleet")
@click.option("--config", "config_path", envvar="RUNNER_FLEET_CONFIG", default=None, help="Path to a YAML config file")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], debug: bool):
    """Provision self-hosted runners, one per repository."""
    setup_logging(debug)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.argument("owner")
@click.argument("targets", nargs=-1, required=True)
@click.option("--base-dir", type=click.Path(file_okay=False), default=None, help="Directory holding one subdirectory per runner")
@click.option("--label", "labels", multiple=True, help="Runner label (repeatable or comma-separated)")
@click.option("--version", "agent_version", default=None, help="Runner version to install")
@click.option("--work-dir", default=None, help="Runner work directory name")
@click.option("--no-service", is_flag=True, help="Do not install or start local services")
@click.option("--force", is_flag=True, help="Remove and reconfigure already configured runners")
@click.option("--json", "as_json", is_flag=True, help="Print the batch summary as JSON")
@click.pass_context
def provision(
    ctx: click.Context,
    owner: str,
    targets: tuple[str, ...],
    base_dir: Optional[str],
    labels: tuple[str, ...],
    agent_version: Optional[str],
    work_dir: Optional[str],
    no_service: bool,
    force: bool,
    as_json: bool,
):
    """Register a runner for each TARGET repository of OWNER."""
    try:
        config = _load(
            ctx.obj["config_path"],
            base_dir=base_dir,
            agent_version=agent_version,
            work_dir=work_dir,
            install_service=False if no_service else None,
        )
        label_list = config.labels + [p.strip() for value in labels for p in value.split(",")]
        target_list = build_targets(owner, targets, config.base_dir, label_list, config.work_dir)
        check_config(config)
        reconciler = create_reconciler(config)
        run_preflight(config, reconciler.broker)
    except PreflightError as e:
        _fail_preflight(e)

    try:
        summary = FleetOrchestrator(reconciler).run(target_list, force=force)
    finally:
        reconciler.broker.close()

    _report(summary, as_json)
    sys.exit(summary.exit_code)


@main.command()
@click.argument("owner")
@click.argument("targets", nargs=-1, required=True)
@click.option("--base-dir", type=click.Path(file_okay=False), default=None, help="Directory holding one subdirectory per runner")
@click.option("--json", "as_json", is_flag=True, help="Print the batch summary as JSON")
@click.pass_context
def remove(ctx: click.Context, owner: str, targets: tuple[str, ...], base_dir: Optional[str], as_json: bool):
    """Deregister the runner of each TARGET repository and remove its service."""
    try:
        config = _load(ctx.obj["config_path"], base_dir=base_dir)
        target_list = build_targets(owner, targets, config.base_dir)
        check_config(config)
        reconciler = create_reconciler(config)
        run_preflight(config, reconciler.broker)
    except PreflightError as e:
        _fail_preflight(e)

    try:
        summary = FleetOrchestrator(reconciler).deprovision(target_list)
    finally:
        reconciler.broker.close()

    _report(summary, as_json)
    sys.exit(summary.exit_code)


@main.command()
@click.argument("owner")
@click.argument("targets", nargs=-1, required=True)
@click.option("--base-dir", type=click.Path(file_okay=False), default=None, help="Directory holding one subdirectory per runner")
@click.pass_context
def status(ctx: click.Context, owner: str, targets: tuple[str, ...], base_dir: Optional[str]):
    """Show the local state of each TARGET runner."""
    try:
        config = _load(ctx.obj["config_path"], base_dir=base_dir)
        target_list = build_targets(owner, targets, config.base_dir)
    except PreflightError as e:
        _fail_preflight(e)

    reconciler = create_reconciler(config)
    try:
        rows = FleetOrchestrator(reconciler).status(target_list)
    finally:
        reconciler.broker.close()
    click.echo(json.dumps(rows, indent=2))


if __name__ == "__main__":
    main()
