from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from rotation_tracker.fetcher import DEFAULT_MAX_REDIRECTS, DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT


DEFAULT_URL = "https://webgate.ec.europa.eu/cas/"
DEFAULT_HISTORY_FILE = "data/rotation-history.json"


def _env_str(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    s = str(raw).strip()
    return s if s else None


def _env_int(name: str) -> int | None:
    raw = _env_str(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _env_float(name: str) -> float | None:
    raw = _env_str(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class ProbeConfig:
    url: str = DEFAULT_URL
    history_file: Path = Path(DEFAULT_HISTORY_FILE)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    user_agent: str = DEFAULT_USER_AGENT


def load_yaml_config(path: Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")
    return data


def load_probe_config(
    path: Path | None = None,
    *,
    url: str | None = None,
    history_file: str | Path | None = None,
) -> ProbeConfig:
    """
    Precedence: explicit arguments > environment > YAML file > defaults.
    """
    file_cfg: dict[str, Any] = load_yaml_config(path) if path is not None else {}

    resolved_url = url or _env_str("EULOGIN_URL") or str(file_cfg.get("url") or DEFAULT_URL)
    resolved_history = (
        history_file
        or _env_str("ROTATION_HISTORY_FILE")
        or str(file_cfg.get("history_file") or DEFAULT_HISTORY_FILE)
    )

    timeout_seconds = _env_float("ROTATION_TIMEOUT_SECONDS")
    if timeout_seconds is None:
        timeout_seconds = float(file_cfg.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS))

    max_redirects = _env_int("ROTATION_MAX_REDIRECTS")
    if max_redirects is None:
        max_redirects = int(file_cfg.get("max_redirects", DEFAULT_MAX_REDIRECTS))

    user_agent = str(file_cfg.get("user_agent") or DEFAULT_USER_AGENT)

    return ProbeConfig(
        url=str(resolved_url).strip(),
        history_file=Path(resolved_history),
        timeout_seconds=max(0.1, float(timeout_seconds)),
        max_redirects=max(0, int(max_redirects)),
        user_agent=user_agent,
    )
