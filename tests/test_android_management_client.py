from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from amapi_cosu.client import AndroidManagementClient, ApiError, ClientConfig
from amapi_cosu.policy import build_kiosk_policy


API_BASE = "https://androidmanagement.test/v1"


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    list_retries: int = 0,
    sleeps: list[float] | None = None,
    events: list[dict[str, Any]] | None = None,
) -> AndroidManagementClient:
    return AndroidManagementClient(
        ClientConfig(api_base=API_BASE, list_retries=list_retries),
        transport=httpx.MockTransport(handler),
        sleep=(sleeps.append if sleeps is not None else lambda s: None),
        log_fn=(events.append if events is not None else None),
    )


def test_create_signup_url_sends_project_and_callback() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"name": "signupUrls/C1", "url": "https://enterprise.google.com/x"}
        )

    signup = _client(handler).create_signup_url("proj-1", "https://localhost:9999")

    assert signup.name == "signupUrls/C1"
    assert signup.url == "https://enterprise.google.com/x"
    req = seen[0]
    assert req.method == "POST"
    assert req.url.path == "/v1/signupUrls"
    assert req.url.params["projectId"] == "proj-1"
    assert req.url.params["callbackUrl"] == "https://localhost:9999"


def test_create_enterprise_returns_name() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"name": "enterprises/E1"})

    name = _client(handler).create_enterprise("proj-1", "signupUrls/C1", "tok-123")

    assert name == "enterprises/E1"
    params = seen[0].url.params
    assert params["projectId"] == "proj-1"
    assert params["signupUrlName"] == "signupUrls/C1"
    assert params["enterpriseToken"] == "tok-123"


def test_update_policy_patches_resource_with_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"name": "enterprises/E1/policies/samplePolicy"})

    policy = build_kiosk_policy("com.example.kiosk")
    _client(handler).update_policy("enterprises/E1/policies/samplePolicy", policy)

    req = seen[0]
    assert req.method == "PATCH"
    assert req.url.path == "/v1/enterprises/E1/policies/samplePolicy"
    assert json.loads(req.content) == policy.to_payload()


def test_enrollment_token_uses_bare_policy_id_and_one_day() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "name": "enterprises/E1/enrollmentTokens/T1",
                "value": "ABCDEFGHIJ",
                "policyName": "enterprises/E1/policies/samplePolicy",
                "duration": "86400s",
            },
        )

    token = _client(handler).create_enrollment_token("enterprises/E1", "samplePolicy")

    assert token.value == "ABCDEFGHIJ"
    assert token.name == "enterprises/E1/enrollmentTokens/T1"
    req = seen[0]
    assert req.url.path == "/v1/enterprises/E1/enrollmentTokens"
    assert json.loads(req.content) == {"policyName": "samplePolicy", "duration": "86400s"}


@pytest.mark.parametrize("body", [{}, {"devices": []}, {"devices": None, "nextPageToken": "x"}])
def test_list_devices_normalizes_missing_list(body: dict[str, Any]) -> None:
    devices = _client(lambda r: httpx.Response(200, json=body)).list_devices("enterprises/E1")
    assert devices == []


def test_list_devices_preserves_order_and_reads_first_page_only() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "devices": [
                    {"name": "enterprises/E1/devices/D1", "state": "ACTIVE"},
                    {"name": "enterprises/E1/devices/D2"},
                ],
                "nextPageToken": "page-2",
            },
        )

    devices = _client(handler).list_devices("enterprises/E1")

    assert [d.name for d in devices] == [
        "enterprises/E1/devices/D1",
        "enterprises/E1/devices/D2",
    ]
    assert devices[0].state == "ACTIVE"
    assert len(seen) == 1
    assert seen[0].url.path == "/v1/enterprises/E1/devices"


def test_issue_command_posts_reboot() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"name": "enterprises/E1/devices/D1/operations/1"})

    _client(handler).issue_command("enterprises/E1/devices/D1", "REBOOT")

    req = seen[0]
    assert req.method == "POST"
    assert req.url.path == "/v1/enterprises/E1/devices/D1:issueCommand"
    assert json.loads(req.content) == {"type": "REBOOT"}


def test_api_error_carries_google_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            json={
                "error": {
                    "code": 403,
                    "message": "Caller does not have permission",
                    "status": "PERMISSION_DENIED",
                }
            },
        )

    with pytest.raises(ApiError) as exc:
        _client(handler).create_signup_url("proj-1", "https://localhost:9999")

    assert exc.value.status_code == 403
    assert exc.value.status == "PERMISSION_DENIED"
    assert "Caller does not have permission" in str(exc.value)


def test_api_error_with_plain_text_body() -> None:
    with pytest.raises(ApiError) as exc:
        _client(lambda r: httpx.Response(502, text="bad gateway")).update_policy(
            "enterprises/E1/policies/p", build_kiosk_policy("a.b")
        )

    assert exc.value.status_code == 502
    assert exc.value.detail == "bad gateway"
    assert exc.value.status is None


def test_list_devices_does_not_retry_by_default() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(503, json={"error": {"message": "unavailable"}})

    with pytest.raises(ApiError):
        _client(handler).list_devices("enterprises/E1")
    assert len(calls) == 1


def test_list_devices_retries_transient_errors_with_backoff() -> None:
    responses = [
        httpx.Response(503, json={"error": {"message": "unavailable"}}),
        httpx.Response(500, text="oops"),
        httpx.Response(200, json={"devices": [{"name": "enterprises/E1/devices/D1"}]}),
    ]
    sleeps: list[float] = []
    events: list[dict[str, Any]] = []

    devices = _client(
        lambda r: responses.pop(0), list_retries=2, sleeps=sleeps, events=events
    ).list_devices("enterprises/E1")

    assert [d.name for d in devices] == ["enterprises/E1/devices/D1"]
    assert sleeps == [1, 2]
    assert [e["event"] for e in events].count("http_retry") == 2


def test_list_devices_does_not_retry_client_errors() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(404, json={"error": {"message": "not found", "status": "NOT_FOUND"}})

    with pytest.raises(ApiError) as exc:
        _client(handler, list_retries=3).list_devices("enterprises/missing")

    assert exc.value.status == "NOT_FOUND"
    assert len(calls) == 1


def test_list_devices_retries_transport_errors() -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={})

    sleeps: list[float] = []
    assert _client(handler, list_retries=1, sleeps=sleeps).list_devices("enterprises/E1") == []
    assert sleeps == [1]


def test_blank_api_base_is_rejected() -> None:
    with pytest.raises(ValueError):
        AndroidManagementClient(ClientConfig(api_base="/"))


def test_client_closes_as_context_manager() -> None:
    with _client(lambda r: httpx.Response(200, json={})) as c:
        assert c.list_devices("enterprises/E1") == []
    assert c._client.is_closed


def test_create_enterprise_without_name_raises() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(ApiError) as exc:
        _client(handler).create_enterprise("proj-1", "signupUrls/C1", "tok-123")

    assert exc.value.status_code == 200
    assert "name" in str(exc.value)
    assert len(seen) == 1


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>ok</html>"),
        httpx.Response(200, json=["signupUrls/C1"]),
        httpx.Response(200, json={"name": "signupUrls/C1", "url": ""}),
    ],
)
def test_create_signup_url_rejects_unexpected_body(response: httpx.Response) -> None:
    with pytest.raises(ApiError) as exc:
        _client(lambda r: response).create_signup_url("proj-1", "https://localhost:9999")
    assert exc.value.status_code == 200


def test_enrollment_token_without_value_raises() -> None:
    with pytest.raises(ApiError):
        _client(
            lambda r: httpx.Response(200, json={"name": "enterprises/E1/enrollmentTokens/T1"})
        ).create_enrollment_token("enterprises/E1", "samplePolicy")


def test_list_devices_rejects_non_object_body() -> None:
    with pytest.raises(ApiError):
        _client(lambda r: httpx.Response(200, text="maintenance")).list_devices("enterprises/E1")
