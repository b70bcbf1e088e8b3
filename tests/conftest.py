from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Any

import pytest

# Prioritize the in-repo package during tests.
_SRC = Path(__file__).resolve().parents[1] / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from rich.console import Console

from amapi_cosu.config import CosuConfig
from amapi_cosu.models import Device, EnrollmentToken, Policy, SignupUrl


class FakeApi:
    """In-memory stand-in for the Android Management API."""

    def __init__(
        self,
        *,
        enterprise_name: str = "enterprises/E1",
        devices: list[str] | None = None,
        token_value: str = "ABCDEFGHIJ",
    ):
        self.enterprise_name = enterprise_name
        self.devices = list(devices or [])
        self.token_value = token_value
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.commands: list[tuple[str, str]] = []
        self.policies: dict[str, Policy] = {}
        self.fail_on: dict[str, Exception] = {}
        self.closed = False

    def _record(self, op: str, *args: Any) -> None:
        self.calls.append((op, args))
        if op in self.fail_on:
            raise self.fail_on[op]

    def create_signup_url(self, project_id: str, callback_url: str) -> SignupUrl:
        self._record("create_signup_url", project_id, callback_url)
        return SignupUrl(name="signupUrls/C1", url="https://enterprise.google.com/signup/x")

    def create_enterprise(
        self, project_id: str, signup_url_name: str, enterprise_token: str
    ) -> str:
        self._record("create_enterprise", project_id, signup_url_name, enterprise_token)
        return self.enterprise_name

    def update_policy(self, policy_resource_name: str, policy: Policy) -> None:
        self._record("update_policy", policy_resource_name, policy)
        self.policies[policy_resource_name] = policy

    def create_enrollment_token(
        self, enterprise_name: str, policy_id: str, duration_seconds: int
    ) -> EnrollmentToken:
        self._record("create_enrollment_token", enterprise_name, policy_id, duration_seconds)
        return EnrollmentToken(
            value=self.token_value, policy_name=policy_id, duration=f"{duration_seconds}s"
        )

    def list_devices(self, enterprise_name: str) -> list[Device]:
        self._record("list_devices", enterprise_name)
        return [Device(name=n) for n in self.devices]

    def issue_command(self, device_name: str, command_type: str) -> None:
        self._record("issue_command", device_name, command_type)
        self.commands.append((device_name, command_type))

    def close(self) -> None:
        self.closed = True

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for k in (
        "AMAPI_CONFIG",
        "AMAPI_PROJECT_ID",
        "AMAPI_CREDENTIALS_FILE",
        "GOOGLE_APPLICATION_CREDENTIALS",
        "AMAPI_POLICY_ID",
        "AMAPI_APP_PACKAGE",
        "AMAPI_ENTERPRISE_NAME",
        "AMAPI_CALLBACK_URL",
        "AMAPI_API_BASE",
        "AMAPI_TIMEOUT_SECONDS",
        "AMAPI_LIST_RETRIES",
        "AMAPI_LOG_LEVEL",
        "AMAPI_RUN_LOG",
    ):
        monkeypatch.delenv(k, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture()
def console() -> Console:
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture()
def cfg() -> CosuConfig:
    return CosuConfig(project_id="test-project", credentials_file="/nonexistent/key.json")
