"""Enterprise bootstrap, kiosk policy, enrollment and device management, in order.

Each step blocks on one remote call and hands its output to the next step.
Any exception aborts the run: the result is marked FAILED and the exception
is re-raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rich.console import Console

from amapi_cosu.client import (
    COMMAND_REBOOT,
    ENROLLMENT_TOKEN_DURATION_SECONDS,
    DeviceManagementApi,
)
from amapi_cosu.config import CosuConfig
from amapi_cosu.models import Device, EnrollmentToken
from amapi_cosu.policy import build_kiosk_policy, policy_resource_name
from amapi_cosu.run_log import LogFn, emit
from amapi_cosu.token_provider import EnterpriseTokenProvider

log = logging.getLogger("amapi_cosu.workflow")


class WorkflowState(str, Enum):
    START = "START"
    ENTERPRISE_READY = "ENTERPRISE_READY"
    POLICY_SET = "POLICY_SET"
    TOKEN_ISSUED = "TOKEN_ISSUED"
    DEVICES_LISTED = "DEVICES_LISTED"
    NO_DEVICES = "NO_DEVICES"
    REBOOT_SENT = "REBOOT_SENT"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class WorkflowResult:
    state: WorkflowState = WorkflowState.START
    history: list[WorkflowState] = field(default_factory=lambda: [WorkflowState.START])
    enterprise_name: str | None = None
    policy_name: str | None = None
    enrollment_token: str | None = None
    devices: list[str] = field(default_factory=list)
    rebooted_device: str | None = None
    error: str | None = None

    def advance(self, state: WorkflowState) -> None:
        self.state = state
        self.history.append(state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "enterprise_name": self.enterprise_name,
            "policy_name": self.policy_name,
            "enrollment_token": self.enrollment_token,
            "devices": list(self.devices),
            "rebooted_device": self.rebooted_device,
            "error": self.error,
        }


class CosuWorkflow:
    def __init__(
        self,
        api: DeviceManagementApi,
        config: CosuConfig,
        token_provider: EnterpriseTokenProvider,
        console: Console,
        *,
        log_fn: LogFn | None = None,
    ):
        self.api = api
        self.config = config
        self.token_provider = token_provider
        self.console = console
        self._log_fn = log_fn
        self.last_result: WorkflowResult | None = None

    def _say(self, message: str) -> None:
        self.console.print(message, markup=False, highlight=False, soft_wrap=True)

    def _event(self, name: str, **data: Any) -> None:
        emit(self._log_fn, {"event": name, **data})

    # ---- Steps ----

    def bootstrap_enterprise(self) -> str:
        """Return the configured enterprise, or sign up a new one interactively."""
        if self.config.enterprise_name:
            log.info("reusing enterprise %s", self.config.enterprise_name)
            self._say(f"Using existing enterprise: {self.config.enterprise_name}")
            return self.config.enterprise_name

        self.config.require_signup()
        project_id = str(self.config.project_id)

        self._say("Creating signup URL...")
        signup_url = self.api.create_signup_url(project_id, self.config.callback_url)
        self._event("signup_url_created", signup_url_name=signup_url.name)

        enterprise_token = self.token_provider.get_enterprise_token(signup_url)

        self._say("Creating enterprise...")
        name = self.api.create_enterprise(project_id, signup_url.name, enterprise_token)
        self._say(f"Enterprise created with name: {name}")
        return name

    def apply_policy(self, enterprise_name: str) -> str:
        self._say("Setting policy...")
        name = policy_resource_name(enterprise_name, self.config.policy_id)
        self.api.update_policy(name, build_kiosk_policy(self.config.app_package))
        return name

    def create_enrollment_token(self, enterprise_name: str) -> EnrollmentToken:
        self._say("Creating enrollment token...")
        # The token references the bare policy id, not the full resource name.
        token = self.api.create_enrollment_token(
            enterprise_name, self.config.policy_id, ENROLLMENT_TOKEN_DURATION_SECONDS
        )
        self._say(f"Enrollment token (to be typed on device): {token.value}")
        return token

    def list_devices(self, enterprise_name: str) -> list[Device]:
        self._say("Listing devices...")
        devices = list(self.api.list_devices(enterprise_name) or [])
        for device in devices:
            self._say(f"Found device with name: {device.name}")
        return devices

    def reboot_first_device(self, devices: list[Device]) -> Device | None:
        if not devices:
            self._say("No devices found.")
            return None

        device = devices[0]
        self._say(f"Sending reboot command to {device.name}...")
        self.api.issue_command(device.name, COMMAND_REBOOT)
        self._say(f"Reboot command sent to {device.name}.")
        return device

    # ---- Pipeline ----

    def run(self) -> WorkflowResult:
        result = WorkflowResult()
        self.last_result = result
        self._event("workflow_start")
        try:
            result.enterprise_name = self.bootstrap_enterprise()
            self._transition(result, WorkflowState.ENTERPRISE_READY)

            result.policy_name = self.apply_policy(result.enterprise_name)
            self._transition(result, WorkflowState.POLICY_SET)

            token = self.create_enrollment_token(result.enterprise_name)
            result.enrollment_token = token.value
            self._transition(result, WorkflowState.TOKEN_ISSUED)

            devices = self.list_devices(result.enterprise_name)
            result.devices = [d.name for d in devices]
            self._transition(result, WorkflowState.DEVICES_LISTED)

            if self.config.reboot:
                rebooted = self.reboot_first_device(devices)
                if rebooted is None:
                    self._transition(result, WorkflowState.NO_DEVICES)
                else:
                    result.rebooted_device = rebooted.name
                    self._transition(result, WorkflowState.REBOOT_SENT)
        except Exception as e:
            result.error = str(e)
            log.error("workflow failed in state %s: %s", result.state.value, e)
            self._event("workflow_failed", state=result.state.value, error=str(e))
            result.advance(WorkflowState.FAILED)
            raise

        self._transition(result, WorkflowState.DONE)
        return result

    def _transition(self, result: WorkflowResult, state: WorkflowState) -> None:
        log.info("state %s -> %s", result.state.value, state.value)
        self._event("state", previous=result.state.value, state=state.value)
        result.advance(state)
