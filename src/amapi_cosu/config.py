from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
import os

try:
    import tomllib  # py3.11+
except Exception:  # pragma: no cover
    tomllib = None  # type: ignore[assignment]


DEFAULT_API_BASE = "https://androidmanagement.googleapis.com/v1"
DEFAULT_CALLBACK_URL = "https://localhost:9999"
DEFAULT_POLICY_ID = "samplePolicy"
DEFAULT_APP_PACKAGE = "com.google.android.apps.youtube.gaming"


class ConfigError(ValueError):
    pass


@dataclass
class CosuConfig:
    project_id: str | None = None
    credentials_file: str | None = None
    policy_id: str = DEFAULT_POLICY_ID
    app_package: str = DEFAULT_APP_PACKAGE
    enterprise_name: str | None = None
    callback_url: str = DEFAULT_CALLBACK_URL
    api_base: str = DEFAULT_API_BASE
    timeout_s: float = 30.0
    list_retries: int = 0
    reboot: bool = True
    log_level: str = "warning"
    run_log: str | None = None

    def require_api(self) -> None:
        """Check the settings every remote call depends on."""
        if not self.credentials_file:
            raise ConfigError(
                "Credentials file required (set AMAPI_CREDENTIALS_FILE or --credentials)"
            )

    def require_signup(self) -> None:
        if not self.project_id:
            raise ConfigError("Project id required (set AMAPI_PROJECT_ID or --project-id)")


def default_config_path(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    raw = (env.get("AMAPI_CONFIG") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path.cwd() / "amapi-cosu.toml"


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    if tomllib is None:
        raise ConfigError("tomllib not available; use Python 3.11+ or switch config format.")

    # tolerate UTF-8 BOM
    text = path.read_text(encoding="utf-8-sig")

    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        return {}
    return data


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    v = (env.get(name) or "").strip()
    return v or None


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CosuConfig:
    """
    Precedence (lowest -> highest):
      defaults -> config file -> environment variables

    CLI overrides are applied by the caller after this returns.
    """
    env = os.environ if env is None else env
    path = config_path or default_config_path(env)

    raw = _read_toml(path)

    # Support either top-level keys or an [amapi] table
    section = raw.get("amapi")
    if isinstance(section, dict):
        raw = section

    cfg = CosuConfig()

    # File values
    for key in (
        "project_id",
        "credentials_file",
        "policy_id",
        "app_package",
        "enterprise_name",
        "callback_url",
        "api_base",
        "log_level",
        "run_log",
    ):
        if isinstance(raw.get(key), str) and raw[key].strip():
            setattr(cfg, key, raw[key].strip())
    if isinstance(raw.get("timeout_s"), (int, float)):
        cfg.timeout_s = float(raw["timeout_s"])
    if isinstance(raw.get("list_retries"), int):
        cfg.list_retries = max(0, raw["list_retries"])
    if isinstance(raw.get("reboot"), bool):
        cfg.reboot = raw["reboot"]

    # Env overrides (tolerant; ignore bad values rather than crash)
    cfg.project_id = _env_str(env, "AMAPI_PROJECT_ID") or cfg.project_id
    cfg.credentials_file = (
        _env_str(env, "AMAPI_CREDENTIALS_FILE")
        or cfg.credentials_file
        or _env_str(env, "GOOGLE_APPLICATION_CREDENTIALS")
    )
    cfg.policy_id = _env_str(env, "AMAPI_POLICY_ID") or cfg.policy_id
    cfg.app_package = _env_str(env, "AMAPI_APP_PACKAGE") or cfg.app_package
    cfg.enterprise_name = _env_str(env, "AMAPI_ENTERPRISE_NAME") or cfg.enterprise_name
    cfg.callback_url = _env_str(env, "AMAPI_CALLBACK_URL") or cfg.callback_url
    cfg.api_base = _env_str(env, "AMAPI_API_BASE") or cfg.api_base
    cfg.log_level = _env_str(env, "AMAPI_LOG_LEVEL") or cfg.log_level
    cfg.run_log = _env_str(env, "AMAPI_RUN_LOG") or cfg.run_log

    if env.get("AMAPI_TIMEOUT_SECONDS"):
        try:
            cfg.timeout_s = float(env["AMAPI_TIMEOUT_SECONDS"])
        except Exception:
            pass

    if env.get("AMAPI_LIST_RETRIES"):
        try:
            cfg.list_retries = max(0, int(env["AMAPI_LIST_RETRIES"]))
        except Exception:
            pass

    return cfg
