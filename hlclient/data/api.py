"""Minimal HTTP transport shared by the info and exchange clients."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from hlclient.data.clients import MAINNET_API_URL
from hlclient.errors import ApiError, TransportError

HTTP_ERROR_STATUS = 400


class API:
    """POSTs JSON payloads to the venue and decodes the JSON reply."""

    def __init__(
        self,
        base_url: str = MAINNET_API_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = (base_url or MAINNET_API_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def post(self, path: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            self.logger.warning("POST %s failed: %s", url, exc, extra={"event": "http_error", "path": path})
            raise TransportError(f"request failed: {exc}") from exc

        if response.status_code >= HTTP_ERROR_STATUS:
            raise self._api_error(response)
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"invalid JSON from {path}: {response.text[:200]}") from exc

    def _api_error(self, response: requests.Response) -> ApiError:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and "msg" in body:
            error = ApiError(response.status_code, body.get("code"), str(body["msg"]), body.get("data"))
        else:
            error = ApiError(response.status_code, None, f"status {response.status_code}: {response.text}")
        self.logger.warning(
            "Venue rejected request: %s", error,
            extra={"event": "api_error", "status": response.status_code, "code": error.code},
        )
        return error

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}


__all__ = ["API"]
