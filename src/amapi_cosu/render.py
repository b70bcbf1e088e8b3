from __future__ import annotations

from typing import Sequence

from rich.console import Console
from rich.table import Table

from amapi_cosu.models import Device
from amapi_cosu.workflow import WorkflowResult


def _trunc(s: str, n: int = 60) -> str:
    if len(s) <= n:
        return s
    return s[: max(0, n - 1)] + "…"


def render_devices_list(
    console: Console, devices: Sequence[Device], *, title: str = "Devices"
) -> None:
    if not devices:
        console.print("No devices found.")
        return

    t = Table(title=title)
    t.add_column("#", justify="right")
    t.add_column("name", overflow="fold")
    t.add_column("state")
    t.add_column("policy", overflow="fold")
    t.add_column("enrolled_at", overflow="fold")

    for idx, d in enumerate(devices, start=1):
        t.add_row(
            str(idx),
            d.name,
            str(d.state or ""),
            _trunc(str(d.applied_policy_name or d.policy_name or ""), 80),
            str(d.enrollment_time or ""),
        )

    console.print(t)
    console.print(f"total={len(devices)} (first page only)")


def render_workflow_result(
    console: Console, result: WorkflowResult, *, title: str = "Kiosk provisioning"
) -> None:
    t = Table(title=title)
    t.add_column("field")
    t.add_column("value", overflow="fold")
    t.add_row("state", result.state.value)
    t.add_row("enterprise", str(result.enterprise_name or ""))
    t.add_row("policy", str(result.policy_name or ""))
    t.add_row("enrollment_token", str(result.enrollment_token or ""))
    t.add_row("devices", str(len(result.devices)))
    t.add_row("rebooted", str(result.rebooted_device or "-"))
    if result.error:
        t.add_row("error", result.error)
    console.print(t)
