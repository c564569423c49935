from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

import yaml


class ConfigError(ValueError):
    pass


SUPPORTED_PROVIDER_TYPES = ("openai_compatible", "anthropic", "google")


@dataclass(frozen=True)
class AppConfig:
    name: str
    timezone: str


@dataclass(frozen=True)
class PathsConfig:
    data_dir: str
    state_db: str


@dataclass(frozen=True)
class JobsConfig:
    max_retries: int
    default_priority: int
    workers: int
    poll_interval_seconds: float
    error_interval_seconds: float


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    type: str
    model: str
    base_url: str
    api_key_env: str
    api_key: str | None


@dataclass(frozen=True)
class LlmConfig:
    max_tokens: int
    temperature: float
    request_timeout_seconds: int
    rate_limit_per_min: int
    providers: list[ProviderConfig]


@dataclass(frozen=True)
class Config:
    app: AppConfig
    paths: PathsConfig
    jobs: JobsConfig
    llm: LlmConfig


DEFAULT_CONFIG: dict[str, Any] = {
    "app": {
        "name": "summarist",
        "timezone": "UTC",
    },
    "paths": {
        "data_dir": "/data",
        "state_db": "/data/state.sqlite3",
    },
    "jobs": {
        "max_retries": 3,
        "default_priority": 5,
        "workers": 2,
        "poll_interval_seconds": 5.0,
        "error_interval_seconds": 1.0,
    },
    "llm": {
        "max_tokens": 500,
        "temperature": 0.3,
        "request_timeout_seconds": 30,
        # Read for visibility only; outbound calls are not throttled.
        "rate_limit_per_min": 100,
        "providers": [
            {
                "name": "groq",
                "type": "openai_compatible",
                "model": "llama3-8b-8192",
                "base_url": "https://api.groq.com/openai/v1",
                "api_key_env": "GROQ_API_KEY",
            },
            {
                "name": "claude",
                "type": "anthropic",
                "model": "claude-3-haiku-20240307",
                "base_url": "https://api.anthropic.com/v1",
                "api_key_env": "ANTHROPIC_API_KEY",
            },
        ],
    },
}


def get_state_db_path() -> str:
    data_dir = os.environ.get("SM_DATA_DIR", DEFAULT_CONFIG["paths"]["data_dir"])
    return os.path.join(data_dir, "state.sqlite3")


def load_config(path: str | None = None) -> Config:
    cfg_path = path or os.environ.get("SM_CONFIG_PATH", "").strip() or None
    overrides: dict[str, Any] = {}
    if cfg_path:
        overrides = _read_yaml(cfg_path)
    cfg = _merge(_deep_copy(DEFAULT_CONFIG), overrides)
    if "SM_DATA_DIR" in os.environ and "paths" not in overrides:
        cfg["paths"]["data_dir"] = os.environ["SM_DATA_DIR"]
        cfg["paths"]["state_db"] = get_state_db_path()
    errors = validate_config(cfg)
    if errors:
        raise ConfigError("Invalid config: " + "; ".join(errors))
    return _build_config(cfg)


def validate_config(cfg: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    _validate_dict(cfg, DEFAULT_CONFIG, "config", errors)
    if errors:
        return errors
    jobs = cfg["jobs"]
    if jobs["max_retries"] < 1:
        errors.append("config.jobs.max_retries must be at least 1")
    if jobs["workers"] < 1:
        errors.append("config.jobs.workers must be at least 1")
    providers = cfg["llm"]["providers"]
    if not providers:
        errors.append("config.llm.providers must not be empty")
    for idx, provider in enumerate(providers):
        prefix = f"config.llm.providers[{idx}]"
        for key in ("name", "type", "model"):
            if not str(provider.get(key) or "").strip():
                errors.append(f"{prefix}.{key} is required")
        if provider.get("type") and provider["type"] not in SUPPORTED_PROVIDER_TYPES:
            errors.append(f"{prefix}.type must be one of {', '.join(SUPPORTED_PROVIDER_TYPES)}")
    return errors


def _read_yaml(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping")
    return data


def _merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _merge(base[key], value)
        else:
            base[key] = value
    return base


def _validate_dict(value: dict[str, Any], schema: dict[str, Any], path: str, errors: list[str]) -> None:
    if not isinstance(value, dict):
        errors.append(f"{path} must be an object")
        return
    for key in schema.keys():
        if key not in value:
            errors.append(f"missing {path}.{key}")
    for key in value.keys():
        if key not in schema:
            errors.append(f"unknown {path}.{key}")
    for key, default in schema.items():
        if key not in value:
            continue
        _validate_value(value[key], default, f"{path}.{key}", errors)


def _validate_value(value: Any, default: Any, path: str, errors: list[str]) -> None:
    if isinstance(default, dict):
        if not isinstance(value, dict):
            errors.append(f"{path} must be an object")
            return
        _validate_dict(value, default, path, errors)
        return
    if isinstance(default, list):
        if not isinstance(value, list):
            errors.append(f"{path} must be a list")
            return
        if default:
            sample = default[0]
            for item in value:
                if not isinstance(item, type(sample)):
                    errors.append(f"{path} must be a list of {type(sample).__name__}")
                    break
        return
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{path} must be a boolean")
        return
    if isinstance(default, int) and not isinstance(default, bool):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"{path} must be an integer")
        return
    if isinstance(default, float):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            errors.append(f"{path} must be a number")
        return
    if isinstance(default, str):
        if not isinstance(value, str):
            errors.append(f"{path} must be a string")
        return


def _build_config(cfg: dict[str, Any]) -> Config:
    app_cfg = cfg.get("app") or {}
    paths_cfg = cfg.get("paths") or {}
    jobs_cfg = cfg.get("jobs") or {}
    llm_cfg = cfg.get("llm") or {}

    app = AppConfig(
        name=str(app_cfg.get("name")),
        timezone=str(app_cfg.get("timezone")),
    )

    paths = PathsConfig(
        data_dir=str(paths_cfg.get("data_dir")),
        state_db=str(paths_cfg.get("state_db")),
    )

    jobs = JobsConfig(
        max_retries=int(jobs_cfg.get("max_retries")),
        default_priority=int(jobs_cfg.get("default_priority")),
        workers=int(jobs_cfg.get("workers")),
        poll_interval_seconds=float(jobs_cfg.get("poll_interval_seconds")),
        error_interval_seconds=float(jobs_cfg.get("error_interval_seconds")),
    )

    providers = [_build_provider(item) for item in llm_cfg.get("providers") or []]
    llm = LlmConfig(
        max_tokens=int(llm_cfg.get("max_tokens")),
        temperature=float(llm_cfg.get("temperature")),
        request_timeout_seconds=int(llm_cfg.get("request_timeout_seconds")),
        rate_limit_per_min=int(llm_cfg.get("rate_limit_per_min")),
        providers=providers,
    )

    return Config(app=app, paths=paths, jobs=jobs, llm=llm)


def _build_provider(item: dict[str, Any]) -> ProviderConfig:
    provider_type = str(item.get("type"))
    api_key_env = str(item.get("api_key_env") or _default_key_env(provider_type))
    api_key = item.get("api_key") or os.environ.get(api_key_env, "").strip() or None
    return ProviderConfig(
        name=str(item.get("name")),
        type=provider_type,
        model=str(item.get("model")),
        base_url=str(item.get("base_url") or ""),
        api_key_env=api_key_env,
        api_key=api_key,
    )


def _default_key_env(provider_type: str) -> str:
    if provider_type == "anthropic":
        return "ANTHROPIC_API_KEY"
    if provider_type == "google":
        return "GOOGLE_API_KEY"
    return "OPENAI_API_KEY"


def _deep_copy(value: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(value))
