"""Wiring helpers that build clients from a :class:`ClientConfig`."""

from __future__ import annotations

import logging
from typing import Optional

from hlclient.data.api import API
from hlclient.data.info import AssetDirectory, Info
from hlclient.data.websocket import BackoffConfig, WebsocketClient
from hlclient.execution.exchange import Exchange
from hlclient.execution.signing import PrivateKeyLike
from hlclient.infra.config import BackoffSettings, ClientConfig
from hlclient.infra.logging import configure_logging
from hlclient.infra.metrics import MetricsSink


def _backoff_from_config(settings: BackoffSettings) -> BackoffConfig:
    return BackoffConfig(
        initial=settings.initial_seconds,
        maximum=settings.maximum_seconds,
        factor=settings.factor,
        jitter=settings.jitter_seconds,
    )


def setup_logging(cfg: ClientConfig) -> None:
    """Install the JSON log handler at the configured level; env vars still win."""

    configure_logging(cfg.log_level)


def build_api(cfg: ClientConfig) -> API:
    return API(cfg.api.base_url, timeout=cfg.api.timeout_seconds)


def build_websocket_client(
    cfg: ClientConfig,
    metrics: Optional[MetricsSink] = None,
    logger: Optional[logging.Logger] = None,
) -> WebsocketClient:
    """Instantiate the streaming client from configuration."""

    if metrics is None and cfg.emit_metrics:
        metrics = MetricsSink()
    ws = cfg.websocket
    return WebsocketClient(
        base_url=cfg.api.base_url,
        ping_interval=ws.ping_interval_seconds,
        connect_timeout=ws.connect_timeout_seconds,
        close_timeout=ws.close_timeout_seconds,
        backoff=_backoff_from_config(ws.backoff),
        metrics_callback=metrics.observe if metrics else None,
        logger=(logger or logging.getLogger("hlclient")).getChild("ws"),
    )


def build_exchange(
    cfg: ClientConfig,
    private_key: PrivateKeyLike,
    assets: Optional[AssetDirectory] = None,
    api: Optional[API] = None,
) -> Exchange:
    """Instantiate the exchange client; assets are fetched from ``/info`` when omitted."""

    api = api or build_api(cfg)
    return Exchange(
        private_key,
        base_url=cfg.api.base_url,
        assets=assets or Info(api).asset_directory(),
        vault_address=cfg.vault_address,
        account_address=cfg.account_address,
        api=api,
    )


__all__ = ["build_api", "build_exchange", "build_websocket_client", "setup_logging"]
