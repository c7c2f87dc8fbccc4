"""Config loading utilities for the client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from hlclient.data.clients import MAINNET_API_URL


@dataclass
class ApiConfig:
    base_url: str = MAINNET_API_URL
    timeout_seconds: float = 10.0


@dataclass
class BackoffSettings:
    initial_seconds: float = 1.0
    maximum_seconds: float = 60.0
    factor: float = 2.0
    jitter_seconds: float = 0.0


@dataclass
class WebsocketConfig:
    ping_interval_seconds: float = 50.0
    connect_timeout_seconds: float = 10.0
    close_timeout_seconds: float = 5.0
    backoff: BackoffSettings = field(default_factory=BackoffSettings)


@dataclass
class ClientConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    websocket: WebsocketConfig = field(default_factory=WebsocketConfig)
    vault_address: Optional[str] = None
    account_address: Optional[str] = None
    log_level: str = "INFO"
    emit_metrics: bool = False


def config_from_dict(raw: Optional[Dict[str, Any]]) -> ClientConfig:
    raw = raw or {}
    api = raw.get("api", {}) or {}
    ws = raw.get("websocket", {}) or {}
    backoff = ws.get("backoff", {}) or {}

    return ClientConfig(
        api=ApiConfig(
            base_url=env_or_default("HLCLIENT_BASE_URL", api.get("base_url", MAINNET_API_URL)),
            timeout_seconds=float(api.get("timeout_seconds", 10.0)),
        ),
        websocket=WebsocketConfig(
            ping_interval_seconds=float(ws.get("ping_interval_seconds", 50.0)),
            connect_timeout_seconds=float(ws.get("connect_timeout_seconds", 10.0)),
            close_timeout_seconds=float(ws.get("close_timeout_seconds", 5.0)),
            backoff=BackoffSettings(
                initial_seconds=float(backoff.get("initial_seconds", 1.0)),
                maximum_seconds=float(backoff.get("maximum_seconds", 60.0)),
                factor=float(backoff.get("factor", 2.0)),
                jitter_seconds=float(backoff.get("jitter_seconds", 0.0)),
            ),
        ),
        vault_address=raw.get("vault_address"),
        account_address=raw.get("account_address"),
        log_level=str(raw.get("log_level", "INFO")),
        emit_metrics=bool(raw.get("emit_metrics", False)),
    )


def load_config(path: str | Path) -> ClientConfig:
    resolved = Path(path).expanduser().resolve()
    with resolved.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return config_from_dict(raw)


def env_or_default(key: str, default: str) -> str:
    return os.getenv(key, default)


__all__ = [
    "load_config",
    "config_from_dict",
    "ApiConfig",
    "BackoffSettings",
    "ClientConfig",
    "WebsocketConfig",
]
