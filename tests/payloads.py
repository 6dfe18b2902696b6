"""Inline configuration payloads shared by the test modules."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, Optional

from towerbalance.models import GameConfig


SAMPLE_CONFIG = Path(__file__).resolve().parents[1] / "data" / "sample_config.json"


def tower(
    tower_id: int,
    name: str,
    levels: List[Dict[str, Any]],
    max_level: Optional[int] = None,
) -> Dict[str, Any]:
    return {
        "id": tower_id,
        "name": name,
        "maxLevel": max_level if max_level is not None else len(levels),
        "levels": [dict(item, level=index) for index, item in enumerate(levels, start=1)],
    }


def gapped_tower(tower_id: int, name: str) -> Dict[str, Any]:
    """Declares three levels but only authors 1 and 3."""
    return {
        "id": tower_id,
        "name": name,
        "maxLevel": 3,
        "levels": [dict(level(30, 60, 300, 2.0), level=1), dict(level(90, 120, 300, 2.0), level=3)],
    }


def level(cost: float, damage: float, range_: float, fire_rate: float) -> Dict[str, Any]:
    return {"cost": cost, "damage": damage, "range": range_, "fireRate": fire_rate}


def enemy(enemy_id: int, name: str, health: float, speed: float, reward: float) -> Dict[str, Any]:
    return {"id": enemy_id, "name": name, "health": health, "speed": speed, "reward": reward}


def settings(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "id": 2,
        "mode": "normal",
        "initialCoins": 200,
        "initialLives": 10,
        "towerCostMultiplier": 1.0,
        "enemyHealthMultiplier": 1.0,
        "enemySpeedMultiplier": 1.0,
        "enemyRewardMultiplier": 1.0,
        "enemyHealthWaveMultiplier": 0.1,
        "enemyRewardWaveMultiplier": 0.1,
    }
    payload.update(overrides)
    return payload


def wave(number: int, *groups: Dict[str, Any]) -> Dict[str, Any]:
    return {"waveNumber": number, "enemies": list(groups)}


def group(enemy_id: int, count: int, delay_ms: float = 500) -> Dict[str, Any]:
    return {"enemyId": enemy_id, "count": count, "spawnDelayMs": delay_ms}


def basic_payload() -> Dict[str, Any]:
    """Two towers, two enemies, three authored waves."""
    return copy.deepcopy(
        {
            "towers": [
                tower(
                    1,
                    "Guard",
                    [level(50, 20, 120, 1.0), level(40, 28, 120, 1.1), level(60, 36, 130, 1.2)],
                ),
                tower(2, "Lancer", [level(80, 70, 250, 0.45), level(160, 90, 250, 0.5)]),
            ],
            "enemies": [
                enemy(1, "Pawn", 50, 60, 8),
                enemy(2, "Rook", 200, 50, 35),
            ],
            "settings": settings(),
            "waves": [
                wave(1, group(1, 6, 800)),
                wave(2, group(1, 4, 600), group(2, 1, 1000)),
                wave(3, group(2, 3, 800)),
            ],
        }
    )


def make_config(
    towers: List[Dict[str, Any]],
    enemies: List[Dict[str, Any]],
    waves: Optional[List[Dict[str, Any]]] = None,
    **settings_overrides: Any,
) -> GameConfig:
    return GameConfig.from_dict(
        {
            "towers": towers,
            "enemies": enemies,
            "settings": settings(**settings_overrides),
            "waves": waves if waves is not None else [],
        }
    )


def basic_config(**settings_overrides: Any) -> GameConfig:
    payload = basic_payload()
    payload["settings"] = settings(**settings_overrides)
    return GameConfig.from_dict(payload)
