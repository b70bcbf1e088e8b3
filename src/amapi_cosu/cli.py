from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Iterator

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler

from amapi_cosu.auth import CredentialsError, GoogleCredentialsAuth, load_credentials
from amapi_cosu.client import (
    COMMAND_REBOOT,
    ENROLLMENT_TOKEN_DURATION_SECONDS,
    AndroidManagementClient,
    ApiError,
    ClientConfig,
)
from amapi_cosu.config import ConfigError, CosuConfig, load_config
from amapi_cosu.policy import build_kiosk_policy, policy_resource_name
from amapi_cosu.render import render_devices_list, render_workflow_result
from amapi_cosu.run_log import LogFn, run_log_fn
from amapi_cosu.token_provider import ConsoleTokenProvider, StaticTokenProvider
from amapi_cosu.workflow import CosuWorkflow

app = typer.Typer(add_completion=False, help="Android Management API kiosk (COSU) provisioning")
policy_app = typer.Typer(add_completion=False, help="Kiosk policy inspection")
enroll_app = typer.Typer(add_completion=False, help="Enrollment token management")
devices_app = typer.Typer(add_completion=False, help="Device listing and commands")

app.add_typer(policy_app, name="policy")
app.add_typer(enroll_app, name="enroll")
app.add_typer(devices_app, name="devices")


def _setup_logging(level: str) -> None:
    lvl = logging.getLevelName(str(level or "warning").upper())
    if not isinstance(lvl, int):
        lvl = logging.WARNING
    logging.basicConfig(
        level=lvl,
        format="%(name)s %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@contextmanager
def _surface_errors() -> Iterator[None]:
    try:
        yield
    except (ApiError, CredentialsError, ConfigError, httpx.HTTPError) as e:
        err = Console(stderr=True, no_color=not os.isatty(2))
        err.print(f"[bold red]error:[/bold red] {type(e).__name__}: ", end="")
        err.print(str(e), markup=False, highlight=False)
        raise typer.Exit(code=1) from e


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_path: Path = typer.Option(
        None,
        "--config",
        help="TOML config file (default: $AMAPI_CONFIG or ./amapi-cosu.toml)",
    ),
    project_id: str = typer.Option(
        None, "--project-id", help="Google Cloud project id (env: AMAPI_PROJECT_ID)"
    ),
    credentials: str = typer.Option(
        None,
        "--credentials",
        help="Service account JSON key file (env: AMAPI_CREDENTIALS_FILE)",
    ),
    policy_id: str = typer.Option(
        None, "--policy-id", help="Policy id (env: AMAPI_POLICY_ID, default: samplePolicy)"
    ),
    app_package: str = typer.Option(
        None, "--app-package", help="Kiosk app package name (env: AMAPI_APP_PACKAGE)"
    ),
    log_level: str = typer.Option(None, "--log-level", help="debug|info|warning|error"),
    run_log: str = typer.Option(None, "--run-log", help="Append JSONL run events to this file"),
) -> None:
    with _surface_errors():
        cfg = load_config(config_path.expanduser() if config_path else None)

    # CLI overrides
    if project_id:
        cfg.project_id = project_id
    if credentials:
        cfg.credentials_file = credentials
    if policy_id:
        cfg.policy_id = policy_id
    if app_package:
        cfg.app_package = app_package
    if log_level:
        cfg.log_level = log_level
    if run_log:
        cfg.run_log = run_log

    _setup_logging(cfg.log_level)
    ctx.obj = {"config": cfg, "log_fn": run_log_fn(cfg.run_log)}


def _config(ctx: typer.Context) -> CosuConfig:
    return (ctx.obj or {})["config"]


def _log_fn(ctx: typer.Context) -> LogFn | None:
    return (ctx.obj or {}).get("log_fn")


def _client(ctx: typer.Context) -> AndroidManagementClient:
    cfg = _config(ctx)
    try:
        cfg.require_api()
    except ConfigError as e:
        raise typer.BadParameter(str(e))

    creds = load_credentials(str(cfg.credentials_file))
    return AndroidManagementClient(
        ClientConfig(
            api_base=cfg.api_base,
            timeout_s=cfg.timeout_s,
            list_retries=cfg.list_retries,
        ),
        auth=GoogleCredentialsAuth(creds),
        log_fn=_log_fn(ctx),
    )


def _console(*, stderr: bool = False) -> Console:
    # If output is redirected, avoid rich's color codes.
    no_color = not os.isatty(2 if stderr else 1)
    return Console(no_color=no_color, stderr=stderr)


def _enterprise(ctx: typer.Context, value: str | None) -> str:
    name = (value or _config(ctx).enterprise_name or "").strip()
    if not name:
        raise typer.BadParameter(
            "Enterprise name required (set AMAPI_ENTERPRISE_NAME or --enterprise)"
        )
    return name


@app.command("run", help="Sign up (or reuse) an enterprise, apply the kiosk policy, enroll, reboot")
def run(
    ctx: typer.Context,
    enterprise: str | None = typer.Option(
        None,
        "--enterprise",
        help="Reuse an existing enterprise (ex: enterprises/LC0abc) and skip signup",
    ),
    enterprise_token: str | None = typer.Option(
        None,
        "--enterprise-token",
        help="enterpriseToken from the signup callback; skips the interactive prompt",
    ),
    skip_reboot: bool = typer.Option(False, "--skip-reboot", help="Stop after listing devices"),
    json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
) -> None:
    cfg = _config(ctx)
    if enterprise:
        cfg.enterprise_name = enterprise
    if skip_reboot:
        cfg.reboot = False
    if not cfg.enterprise_name:
        try:
            cfg.require_signup()
        except ConfigError as e:
            raise typer.BadParameter(str(e))

    # Keep stdout clean for JSON; progress goes to stderr then.
    console = _console(stderr=json_out)
    if enterprise_token is not None:
        provider = StaticTokenProvider(enterprise_token)
    else:
        provider = ConsoleTokenProvider(console)

    with _surface_errors():
        c = _client(ctx)
        try:
            workflow = CosuWorkflow(c, cfg, provider, console, log_fn=_log_fn(ctx))
            result = workflow.run()
        finally:
            c.close()

    if json_out:
        print(AndroidManagementClient.pretty_json(result.to_dict()))
        return
    render_workflow_result(console, result)


@policy_app.command("show", help="Print the kiosk policy payload (no API call)")
def policy_show(
    ctx: typer.Context,
    enterprise: str | None = typer.Option(
        None, "--enterprise", help="Also print the policy resource name for this enterprise"
    ),
) -> None:
    cfg = _config(ctx)
    policy = build_kiosk_policy(cfg.app_package)
    if enterprise or cfg.enterprise_name:
        name = policy_resource_name(_enterprise(ctx, enterprise), cfg.policy_id)
        _console(stderr=True).print(f"policy: {name}", markup=False, highlight=False)
    print(AndroidManagementClient.pretty_json(policy.to_payload()))


@enroll_app.command("create", help="Create a 24h enrollment token for the configured policy")
def enroll_create(
    ctx: typer.Context,
    enterprise: str | None = typer.Option(None, "--enterprise"),
    json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
) -> None:
    cfg = _config(ctx)
    name = _enterprise(ctx, enterprise)
    with _surface_errors():
        c = _client(ctx)
        try:
            token = c.create_enrollment_token(
                name, cfg.policy_id, ENROLLMENT_TOKEN_DURATION_SECONDS
            )
        finally:
            c.close()

    if json_out:
        print(AndroidManagementClient.pretty_json(asdict(token)))
        return
    _console().print(
        f"Enrollment token (to be typed on device): {token.value}", markup=False, highlight=False
    )


@devices_app.command("list", help="List the first page of devices for an enterprise")
def devices_list(
    ctx: typer.Context,
    enterprise: str | None = typer.Option(None, "--enterprise"),
    json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
) -> None:
    name = _enterprise(ctx, enterprise)
    with _surface_errors():
        c = _client(ctx)
        try:
            devices = c.list_devices(name)
        finally:
            c.close()

    if json_out:
        print(AndroidManagementClient.pretty_json([d.raw or {"name": d.name} for d in devices]))
        return
    render_devices_list(_console(), devices)


@devices_app.command("reboot", help="Send a REBOOT command to a device (Android 7.0+)")
def devices_reboot(
    ctx: typer.Context,
    device: str = typer.Argument(
        ..., help="Device resource name (ex: enterprises/LC0abc/devices/3a1b...)"
    ),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation prompt"),
) -> None:
    if not yes:
        if not typer.confirm(f"Reboot {device}?", default=False):
            raise typer.Exit(code=2)

    with _surface_errors():
        c = _client(ctx)
        try:
            c.issue_command(device, COMMAND_REBOOT)
        finally:
            c.close()

    _console().print(f"Reboot command sent to {device}.", markup=False, highlight=False)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
