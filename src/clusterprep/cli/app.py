# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterprep/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from clusterprep.config.loader import load_config
from clusterprep.config.models import NetworkMode, Role
from clusterprep.coordinator import BootstrapRequest, run_bootstrap
from clusterprep.errors import ClusterprepError
from clusterprep.logging.log import init_logging
from clusterprep.observers.dispatcher import EventBus
from clusterprep.observers.jsonfile import JsonFileObserver
from clusterprep.observers.logger import LoggerObserver


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Cluster node bootstrap: static network, SSH identity, key trust")


def _fail(exc: Exception) -> None:
    typer.secho(f"[ERROR] {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


# ------------------------------------------------------------------------------
# Bootstrap command
# ------------------------------------------------------------------------------

@app.command()
def bootstrap(
    role: Optional[Role] = typer.Option(None, "--role", "-r", help="Node role: master or worker"),
    hostname: Optional[str] = typer.Option(None, "--hostname", "-n", help="Hostname to set (required with --role)"),
    static_ip: Optional[str] = typer.Option(
        None, "--static-ip", "-i", help="Static address in CIDR form, e.g. 192.168.100.101/24"
    ),
    gateway: Optional[str] = typer.Option(
        None, "--gateway", "-g", help="Default gateway, required with --static-ip"
    ),
    online: bool = typer.Option(False, "--online", help="Keep a DHCP NAT interface for internet access"),
    sync: bool = typer.Option(False, "--sync", help="Distribute SSH keys to the roster (master only)"),
    skip_tuning: bool = typer.Option(False, "--skip-tuning", help="Do not apply system tuning"),
    skip_preflight: bool = typer.Option(False, "--skip-preflight", help="Skip OS and privilege checks"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="clusterprep YAML config"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug output on the console"),
):
    """Bring this node to its desired network, identity and trust state."""
    try:
        request = BootstrapRequest.build(
            role=role,
            hostname=hostname,
            static_ip=static_ip,
            gateway=gateway,
            mode=NetworkMode.ONLINE if online else NetworkMode.OFFLINE,
            sync=sync,
            skip_tuning=skip_tuning,
        )
        cfg = load_config(config)
    except ClusterprepError as exc:
        _fail(exc)

    if request.is_empty:
        typer.echo("[WARN] No setup action requested")
        typer.echo("       use --static-ip, --role/--hostname and/or --sync (see --help)")
        return

    logger, run_id, log_path = init_logging(verbose=verbose)

    typer.echo("")
    typer.secho("clusterprep bootstrap started", bold=True)
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")
    typer.echo("")

    bus = EventBus([
        LoggerObserver(logger),
        JsonFileObserver(log_path.parent / f"{run_id}.jsonl"),
    ])

    try:
        result = run_bootstrap(
            request,
            cfg,
            bus=bus,
            run_id=run_id,
            preflight=not skip_preflight,
        )
    except ClusterprepError as exc:
        _fail(exc)

    if result.trust is not None and result.trust.failures:
        typer.secho(
            f"[WARN] {len(result.trust.failures)} peer(s) not configured, see {log_path}",
            fg=typer.colors.YELLOW,
        )
    typer.secho("clusterprep bootstrap completed", fg=typer.colors.GREEN)


# ------------------------------------------------------------------------------
# Roster
# ------------------------------------------------------------------------------

@app.command("show-roster")
def show_roster(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="clusterprep YAML config"),
):
    """Print the cluster roster as it will appear in /etc/hosts."""
    try:
        cfg = load_config(config)
        roster = cfg.cluster_roster()
    except ClusterprepError as exc:
        _fail(exc)

    for node in roster.nodes:
        marker = "  (coordinator)" if node.hostname == cfg.coordinator else ""
        typer.echo(f"{node.line()}{marker}")


if __name__ == "__main__":
    app()
