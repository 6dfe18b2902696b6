"""HTTP client for a live game session on the game server."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Dict, Mapping, Optional

import httpx


logger = logging.getLogger(__name__)

DEFAULT_GAME_URL = "http://localhost:3001"
GAME_URL_ENV = "TOWERBALANCE_GAME_URL"
MAX_RETRIES = 3
RETRY_DELAY_S = 0.5


class GameSessionError(RuntimeError):
    """Raised when a game-session request still fails after the last retry."""


def default_game_url() -> str:
    return os.environ.get(GAME_URL_ENV, "").strip() or DEFAULT_GAME_URL


class GamePlayClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
        retries: int = MAX_RETRIES,
        retry_delay_s: float = RETRY_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = (base_url or default_game_url()).rstrip("/")
        self.retries = max(1, int(retries))
        self.retry_delay_s = retry_delay_s
        self._sleep = sleep
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GamePlayClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, body: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        last_error = ""
        for attempt in range(1, self.retries + 1):
            try:
                response = self._client.request(method, path, json=dict(body) if body is not None else None)
            except httpx.HTTPError as exc:
                last_error = f"{method} {path} failed: {exc}"
            else:
                if response.is_success:
                    try:
                        return response.json()
                    except ValueError as exc:
                        last_error = f"{method} {path} returned invalid JSON: {exc}"
                else:
                    detail = response.text or response.reason_phrase
                    last_error = f"{method} {path} failed ({response.status_code}): {detail}"
            logger.debug("attempt %d/%d: %s", attempt, self.retries, last_error)
            if attempt < self.retries:
                self._sleep(self.retry_delay_s)
        raise GameSessionError(last_error)

    def start_game(self, game_mode: str, difficulty: str) -> Dict[str, Any]:
        return self._request("POST", "/api/game/start", {"gameMode": game_mode, "difficulty": difficulty})

    def get_game_state(self, game_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/game/{game_id}/state")

    def build_tower(self, game_id: str, tower_id: int, grid_x: int, grid_y: int) -> Dict[str, Any]:
        body = {"towerId": tower_id, "gridX": grid_x, "gridY": grid_y}
        return self._request("POST", f"/api/game/{game_id}/tower", body)

    def upgrade_tower(self, game_id: str, tower_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/game/{game_id}/tower/{tower_id}/upgrade", {})

    def sell_tower(self, game_id: str, tower_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/game/{game_id}/tower/{tower_id}")

    def start_wave(self, game_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/game/{game_id}/wave", {})

    def add_coins(self, game_id: str, amount: int) -> Dict[str, Any]:
        return self._request("POST", f"/api/game/{game_id}/coins", {"amount": amount})

    def lose_life(self, game_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/game/{game_id}/life/lose", {})

    def end_game(self, game_id: str, final_wave: int, enemies_killed: int, outcome: str) -> Dict[str, Any]:
        body = {"finalWave": final_wave, "enemiesKilled": enemies_killed, "outcome": outcome}
        return self._request("POST", f"/api/game/{game_id}/end", body)
