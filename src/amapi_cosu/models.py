from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class SignupUrl:
    name: str
    url: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SignupUrl":
        return cls(name=str(payload.get("name") or ""), url=str(payload.get("url") or ""))


@dataclass(frozen=True)
class ApplicationPolicy:
    package_name: str
    install_type: str
    default_permission_policy: str
    lock_task_allowed: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "packageName": self.package_name,
            "installType": self.install_type,
            "defaultPermissionPolicy": self.default_permission_policy,
            "lockTaskAllowed": self.lock_task_allowed,
        }


@dataclass(frozen=True)
class PersistentPreferredActivity:
    receiver_activity: str
    actions: tuple[str, ...]
    categories: tuple[str, ...]

    def to_payload(self) -> dict[str, Any]:
        return {
            "receiverActivity": self.receiver_activity,
            "actions": list(self.actions),
            "categories": list(self.categories),
        }


@dataclass(frozen=True)
class Policy:
    applications: tuple[ApplicationPolicy, ...] = ()
    persistent_preferred_activities: tuple[PersistentPreferredActivity, ...] = ()
    keyguard_disabled: bool = False
    status_bar_disabled: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the API's camelCase JSON shape."""
        return {
            "applications": [a.to_payload() for a in self.applications],
            "persistentPreferredActivities": [
                p.to_payload() for p in self.persistent_preferred_activities
            ],
            "keyguardDisabled": self.keyguard_disabled,
            "statusBarDisabled": self.status_bar_disabled,
        }


@dataclass(frozen=True)
class EnrollmentToken:
    value: str
    policy_name: str
    duration: str
    name: str | None = None
    expiration_timestamp: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "EnrollmentToken":
        return cls(
            value=str(payload.get("value") or ""),
            policy_name=str(payload.get("policyName") or ""),
            duration=str(payload.get("duration") or ""),
            name=payload.get("name"),
            expiration_timestamp=payload.get("expirationTimestamp"),
        )


@dataclass(frozen=True)
class Device:
    name: str
    state: str | None = None
    policy_name: str | None = None
    applied_policy_name: str | None = None
    enrollment_time: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Device":
        return cls(
            name=str(payload.get("name") or ""),
            state=payload.get("state"),
            policy_name=payload.get("policyName"),
            applied_policy_name=payload.get("appliedPolicyName"),
            enrollment_time=payload.get("enrollmentTime"),
            raw=dict(payload),
        )


@dataclass(frozen=True)
class Command:
    type: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type}
