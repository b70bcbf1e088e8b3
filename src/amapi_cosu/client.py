from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

import httpx

from amapi_cosu.config import DEFAULT_API_BASE
from amapi_cosu.models import Command, Device, EnrollmentToken, Policy, SignupUrl
from amapi_cosu.run_log import LogFn, emit


ENROLLMENT_TOKEN_DURATION_SECONDS = 86400
COMMAND_REBOOT = "REBOOT"

log = logging.getLogger("amapi_cosu.client")


class ApiError(RuntimeError):
    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        self.status = _google_status(detail)
        super().__init__(f"HTTP {status_code}: {_google_message(detail)}")


def _google_error(detail: Any) -> Mapping[str, Any]:
    if isinstance(detail, Mapping) and isinstance(detail.get("error"), Mapping):
        return detail["error"]
    return {}


def _google_status(detail: Any) -> str | None:
    s = _google_error(detail).get("status")
    return str(s) if s else None


def _google_message(detail: Any) -> str:
    err = _google_error(detail)
    if err.get("message"):
        status = err.get("status")
        return f"{status}: {err['message']}" if status else str(err["message"])
    return str(detail)


def _check_payload(status_code: int, payload: Any, fields: tuple[str, ...]) -> None:
    if not isinstance(payload, Mapping):
        raise ApiError(
            status_code,
            {"error": {"message": f"expected a JSON object, got: {str(payload)[:200]}"}},
        )
    missing = [f for f in fields if not payload.get(f)]
    if missing:
        raise ApiError(
            status_code,
            {"error": {"message": f"response missing {', '.join(missing)}: {payload}"}},
        )


class DeviceManagementApi(Protocol):
    """The six remote operations the kiosk workflow depends on."""

    def create_signup_url(self, project_id: str, callback_url: str) -> SignupUrl: ...

    def create_enterprise(
        self, project_id: str, signup_url_name: str, enterprise_token: str
    ) -> str: ...

    def update_policy(self, policy_resource_name: str, policy: Policy) -> None: ...

    def create_enrollment_token(
        self, enterprise_name: str, policy_id: str, duration_seconds: int
    ) -> EnrollmentToken: ...

    def list_devices(self, enterprise_name: str) -> list[Device]: ...

    def issue_command(self, device_name: str, command_type: str) -> None: ...


@dataclass(frozen=True)
class ClientConfig:
    api_base: str = DEFAULT_API_BASE
    timeout_s: float = 30.0
    list_retries: int = 0
    user_agent: str = "amapi-cosu"


class AndroidManagementClient:
    def __init__(
        self,
        cfg: ClientConfig | None = None,
        *,
        auth: httpx.Auth | None = None,
        transport: httpx.BaseTransport | None = None,
        log_fn: LogFn | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        cfg = cfg or ClientConfig()
        api_base = (cfg.api_base or "").rstrip("/")
        if not api_base:
            raise ValueError("api_base is required")

        self.cfg = cfg
        self._log_fn = log_fn
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=api_base,
            timeout=cfg.timeout_s,
            auth=auth,
            transport=transport,
            headers={
                "Accept": "application/json",
                "User-Agent": cfg.user_agent,
            },
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AndroidManagementClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any | None = None,
        expect: tuple[str, ...] | None = None,
    ) -> Any:
        """Send one request and decode the JSON body.

        With ``expect`` set, a 2xx body must be a JSON object carrying a
        non-empty value for each listed field, otherwise ApiError is raised.
        """
        log.debug("request method=%s path=%s", method, path)
        emit(self._log_fn, {"event": "http_request", "method": method, "path": path})

        r = self._client.request(method, path, params=params, json=json_body)

        emit(
            self._log_fn,
            {"event": "http_response", "method": method, "path": path, "status": r.status_code},
        )
        if r.status_code >= 400:
            try:
                detail: Any = r.json()
            except Exception:
                detail = r.text
            log.warning("request failed method=%s path=%s status=%s", method, path, r.status_code)
            raise ApiError(r.status_code, detail)

        payload: Any = {}
        if r.status_code != 204 and r.content:
            try:
                payload = r.json()
            except json.JSONDecodeError:
                payload = r.text

        if expect is not None:
            _check_payload(r.status_code, payload, expect)
        return payload

    @staticmethod
    def pretty_json(obj: Any) -> str:
        return json.dumps(obj, indent=2, sort_keys=True, default=str)

    # ---- Signup ----

    def create_signup_url(self, project_id: str, callback_url: str) -> SignupUrl:
        payload = self.request(
            "POST",
            "/signupUrls",
            params={"projectId": project_id, "callbackUrl": callback_url},
            expect=("name", "url"),
        )
        return SignupUrl.from_payload(payload)

    def create_enterprise(
        self, project_id: str, signup_url_name: str, enterprise_token: str
    ) -> str:
        payload = self.request(
            "POST",
            "/enterprises",
            params={
                "projectId": project_id,
                "signupUrlName": signup_url_name,
                "enterpriseToken": enterprise_token,
            },
            json_body={},
            expect=("name",),
        )
        return str(payload["name"])

    # ---- Policies / enrollment ----

    def update_policy(self, policy_resource_name: str, policy: Policy) -> None:
        self.request("PATCH", f"/{policy_resource_name}", json_body=policy.to_payload())

    def create_enrollment_token(
        self,
        enterprise_name: str,
        policy_id: str,
        duration_seconds: int = ENROLLMENT_TOKEN_DURATION_SECONDS,
    ) -> EnrollmentToken:
        payload = self.request(
            "POST",
            f"/{enterprise_name}/enrollmentTokens",
            json_body={
                "policyName": policy_id,
                "duration": f"{int(duration_seconds)}s",
            },
            expect=("value",),
        )
        return EnrollmentToken.from_payload(payload)

    # ---- Devices ----

    def list_devices(self, enterprise_name: str) -> list[Device]:
        """First page only. A missing ``devices`` field means no devices."""
        retries = max(0, int(self.cfg.list_retries))
        path = f"/{enterprise_name}/devices"

        for attempt in range(retries + 1):
            try:
                payload = self.request("GET", path, expect=())
                break
            except (ApiError, httpx.TransportError) as e:
                transient = not isinstance(e, ApiError) or e.status_code >= 500
                if not transient or attempt >= retries:
                    raise
                log.info("list_devices retry %d/%d after %s", attempt + 1, retries, e)
                emit(
                    self._log_fn,
                    {"event": "http_retry", "path": path, "attempt": attempt + 1, "error": str(e)},
                )
                self._sleep(2**attempt)

        items = payload.get("devices")
        return [Device.from_payload(d) for d in (items or []) if isinstance(d, Mapping)]

    def issue_command(self, device_name: str, command_type: str = COMMAND_REBOOT) -> None:
        self.request(
            "POST",
            f"/{device_name}:issueCommand",
            json_body=Command(type=command_type).to_payload(),
        )
