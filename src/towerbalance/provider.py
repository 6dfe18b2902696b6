"""HTTP client for the configuration provider that stores towers, enemies, settings and waves."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .models import GameConfig, ModelError, SettingsMode


logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_URL = "http://localhost:3001"
PROVIDER_URL_ENV = "TOWERBALANCE_URL"


class ProviderError(RuntimeError):
    """Raised when the configuration provider cannot be reached or rejects a request."""


def default_provider_url() -> str:
    return os.environ.get(PROVIDER_URL_ENV, "").strip() or DEFAULT_PROVIDER_URL


class ConfigProviderClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or default_provider_url()).rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ConfigProviderClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, body: Optional[Mapping[str, Any]] = None) -> Any:
        try:
            response = self._client.request(method, path, json=dict(body) if body is not None else None)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{method} {path} failed: {exc}") from exc
        if response.is_error:
            detail = response.text or response.reason_phrase
            raise ProviderError(f"{method} {path} failed ({response.status_code}): {detail}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"{method} {path} returned invalid JSON: {exc}") from exc

    def get_towers(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/config/towers") or []

    def get_enemies(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/config/enemies") or []

    def get_settings(self, mode: Optional[str] = None) -> List[Dict[str, Any]]:
        path = f"/api/config/settings/{mode}" if mode else "/api/config/settings"
        payload = self._request("GET", path)
        if isinstance(payload, list):
            return payload
        return [payload] if payload else []

    def get_waves(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/config/waves") or []

    def patch_tower(self, tower_id: int, body: Mapping[str, Any]) -> None:
        self._request("PATCH", f"/api/config/towers/{tower_id}", body)

    def patch_enemy(self, enemy_id: int, body: Mapping[str, Any]) -> None:
        self._request("PATCH", f"/api/config/enemies/{enemy_id}", body)

    def patch_settings(self, settings_id: int, body: Mapping[str, Any]) -> None:
        self._request("PATCH", f"/api/config/settings/{settings_id}", body)

    def put_tower_level(self, tower_id: int, level: int, body: Mapping[str, Any]) -> None:
        self._request("PUT", f"/api/config/towers/{tower_id}/levels/{level}", body)

    def send(self, method: str, url: str, body: Mapping[str, Any]) -> None:
        """Send a prepared patch descriptor as-is."""
        self._request(method, url, body)

    def health_check(self) -> bool:
        try:
            response = self._client.get("/health")
        except httpx.HTTPError as exc:
            logger.debug("health check against %s failed: %s", self.base_url, exc)
            return False
        return response.is_success

    def fetch_config(self, mode: str = SettingsMode.NORMAL.value) -> GameConfig:
        """Fetch one immutable configuration snapshot for ``mode``."""
        payload = {
            "towers": self.get_towers(),
            "enemies": self.get_enemies(),
            "settings": self.get_settings(mode),
            "waves": self.get_waves(),
        }
        logger.info(
            "fetched %d tower(s), %d enemy type(s), %d wave(s) from %s",
            len(payload["towers"]),
            len(payload["enemies"]),
            len(payload["waves"]),
            self.base_url,
        )
        try:
            return GameConfig.from_dict(payload, difficulty=mode)
        except ModelError as exc:
            raise ProviderError(f"Provider returned malformed configuration: {exc}") from exc
