from __future__ import annotations

import logging
import os
import sys
from time import perf_counter
from typing import Any, Dict, List, Optional, Tuple

from rich.console import Console
from rich.prompt import Prompt

from .audit.aggregate import PolicyFetcher, aggregate
from .audit.discovery import discover
from .auth.providers import AuthContext, AuthError, get_tenancy_ocid, is_cloud_shell, resolve_auth
from .config import RunConfig, dump_config, load_run_config
from .logging import LogConfig, add_run_log_file, get_logger, setup_logging
from .oci.directory import OCIDirectoryClient
from .report import make_header, write_reports
from .util.errors import (
    AuthResolutionError,
    ConfigError,
    ConnectivityError,
    ExitCode,
    as_exit_code,
)
from .util.rich_progress import AuditConsole, render_run_summary_table

LOG = get_logger(__name__)

PROFILE_AUTH_METHODS = {"auto", "config", "security_token"}


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    timer_key: Optional[str] = None,
    **extra: Any,
) -> None:
    key = timer_key or step
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(key)
        elif phase in {"complete", "error"}:
            duration_ms = timers.finish(key)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def _prompt_profile(cfg: RunConfig) -> Optional[str]:
    """
    Outside Cloud Shell, ask for the OCI profile the way the interactive tool always has.
    """
    if cfg.profile or cfg.auth not in PROFILE_AUTH_METHODS:
        return cfg.profile
    if is_cloud_shell() and cfg.auth == "auto":
        return None
    if not cfg.interactive or not sys.stdin.isatty():
        return None
    return Prompt.ask("Enter the OCI profile to use", default="DEFAULT")


def _resolve_auth(cfg: RunConfig, profile: Optional[str] = None) -> AuthContext:
    config_file = str(cfg.config_file) if cfg.config_file else None
    try:
        return resolve_auth(cfg.auth, profile or cfg.profile, cfg.tenancy_ocid, config_file=config_file)
    except AuthError as e:
        raise AuthResolutionError(str(e)) from e


def _build_directory_client(ctx: AuthContext) -> OCIDirectoryClient:
    try:
        return OCIDirectoryClient(ctx)
    except AuthError as e:
        raise AuthResolutionError(str(e)) from e


def _connect(cfg: RunConfig, console: AuditConsole) -> Tuple[AuthContext, OCIDirectoryClient, str]:
    profile = _prompt_profile(cfg)
    ctx = _resolve_auth(cfg, profile)
    cloud_shell = ctx.method == "cloud_shell"
    console.environment(
        ctx.environment_label,
        region=ctx.region,
        user=os.getenv("OCI_CS_USER_OCID"),
        cloud_shell=cloud_shell,
    )
    tenancy_ocid = get_tenancy_ocid(ctx)
    if not tenancy_ocid:
        raise ConfigError("Tenancy OCID could not be determined; pass --tenancy or set OCI_TENANCY_OCID")
    console.info("Tenancy OCID", tenancy_ocid)
    client = _build_directory_client(ctx)
    return ctx, client, tenancy_ocid


def _check_connectivity(
    client: OCIDirectoryClient, ctx: AuthContext, tenancy_ocid: str, console: AuditConsole
) -> Optional[List[str]]:
    console.working("Checking connectivity with OCI...")
    try:
        regions = client.check_connectivity(tenancy_ocid)
    except ConnectivityError as e:
        detail = str(e.__cause__ or e)
        console.connectivity_failure(detail, cloud_shell=ctx.method == "cloud_shell", profile=ctx.profile)
        LOG.error("Connectivity check failed", extra={"error": detail, "auth": ctx.method})
        return None
    console.ok("Connectivity verified")
    return regions


def cmd_run(cfg: RunConfig) -> int:
    console = AuditConsole(enabled=cfg.progress)
    timers = _StepTimers()
    LOG.debug("Resolved configuration", extra={"config": dump_config(cfg)})

    ctx, client, tenancy_ocid = _connect(cfg, console)
    if _check_connectivity(client, ctx, tenancy_ocid, console) is None:
        return int(ExitCode.OCI_ERROR)

    tenancy_name = client.resolve_tenancy_name(tenancy_ocid)
    region = os.getenv("OCI_REGION") or client.resolve_home_region(tenancy_ocid)
    console.info("Tenancy", tenancy_name)

    console.phase("PHASE 1: COMPARTMENT TREE DISCOVERY")
    _log_event(LOG, logging.INFO, "Discovering compartment tree", step="discovery", phase="start", timers=timers)
    nodes = discover(
        client,
        tenancy_ocid,
        tenancy_name,
        max_depth=cfg.max_depth,
        on_node=console.discovered,
    )
    _log_event(
        LOG,
        logging.INFO,
        "Compartment tree discovered",
        step="discovery",
        phase="complete",
        timers=timers,
        compartments=len(nodes),
    )
    console.ok(f"Tree discovered: {len(nodes)} compartments")

    console.phase("PHASE 2: POLICY SEARCH")
    fetcher = PolicyFetcher(client)
    _log_event(LOG, logging.INFO, "Aggregating policies", step="aggregation", phase="start", timers=timers)
    stats, summary = aggregate(fetcher, nodes, on_stats=console.aggregated)
    _log_event(
        LOG,
        logging.INFO,
        "Policies aggregated",
        step="aggregation",
        phase="complete",
        timers=timers,
        policies=summary.total_policies,
        statements=summary.total_statements,
        failed_compartments=len(fetcher.failures),
    )
    if fetcher.failures:
        LOG.warning(
            "Some compartments could not be read and are reported as policy-free",
            extra={"failed_compartments": sorted(fetcher.failures)},
        )
    console.ok("Policy search completed")

    console.phase("PHASE 3: REPORT GENERATION")
    _log_event(LOG, logging.INFO, "Writing reports", step="report", phase="start", timers=timers)
    header = make_header(tenancy_name, ctx.environment_label, region)
    paths = write_reports(
        outdir=cfg.outdir,
        header=header,
        nodes=nodes,
        stats=stats,
        summary=summary,
        policies_for=fetcher,
    )
    _log_event(
        LOG,
        logging.INFO,
        "Reports written",
        step="report",
        phase="complete",
        timers=timers,
        detail=str(paths.detail),
        summary=str(paths.summary),
    )
    console.ok("Reports generated")

    render_run_summary_table(
        summary=summary,
        files=[str(paths.detail), str(paths.summary)],
        console=console.console,
    )
    console.phase("Executive summary")
    console.print_text(paths.summary.read_text(encoding="utf-8"))
    return int(ExitCode.OK)


def cmd_validate_auth(cfg: RunConfig) -> int:
    console = AuditConsole(enabled=cfg.progress)
    ctx, client, tenancy_ocid = _connect(cfg, console)
    regions = _check_connectivity(client, ctx, tenancy_ocid, console)
    if regions is None:
        return int(ExitCode.OCI_ERROR)
    LOG.info("Authentication validated", extra={"auth": ctx.method, "profile": ctx.profile, "regions": regions})
    print("OK: authentication validated; subscribed regions:", ", ".join(regions))
    return int(ExitCode.OK)


def cmd_list_compartments(cfg: RunConfig) -> int:
    # stdout carries only the tree.
    console = AuditConsole(enabled=False, console=Console(stderr=True))
    ctx, client, tenancy_ocid = _connect(cfg, console)
    if _check_connectivity(client, ctx, tenancy_ocid, console) is None:
        return int(ExitCode.OCI_ERROR)
    tenancy_name = client.resolve_tenancy_name(tenancy_ocid)
    for node in discover(client, tenancy_ocid, tenancy_name, max_depth=cfg.max_depth):
        print(f'{"    " * node.depth}{node.name} ({node.id})')
    return int(ExitCode.OK)


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))
        if cfg.log_file:
            add_run_log_file(cfg.log_file)

        if command == "run":
            code = cmd_run(cfg)
        elif command == "validate-auth":
            code = cmd_validate_auth(cfg)
        elif command == "list-compartments":
            code = cmd_list_compartments(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.exit(130)
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
