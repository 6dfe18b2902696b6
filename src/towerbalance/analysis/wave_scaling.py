"""Wave economy projection.

For every wave the minimum DPS needed to clear it in time is compared with the
DPS a greedy buyer could afford from the running coin balance.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..models import (
    EnemyDefinition,
    GameSettings,
    TowerDefinition,
    WaveDefinition,
    _stabilize_numeric_payload,
    resolve_wave,
)
from ..rules import PATH_LENGTH, adjusted_cost, scaled_health, scaled_reward, scaled_speed
from .issues import BalanceIssue, DifficultySpike, EconomyStall, ImpossibleWave, Severity, TrivialWave


SPIKE_DROP_PERCENT = 50.0
TRIVIAL_SURPLUS = 5.0


@dataclass(slots=True, frozen=True)
class TowerDpsInfo:
    tower_id: int
    tower_name: str
    dps: float
    adjusted_cost: float
    dps_per_coin: float


@dataclass(slots=True, frozen=True)
class WaveAnalysis:
    wave: int
    difficulty: str
    total_scaled_hp: int
    total_reward: int
    min_dps_required: float
    affordable_dps: float
    surplus_ratio: float
    cumulative_coins: float
    net_flow: float


@dataclass(slots=True, frozen=True)
class Spike:
    from_wave: WaveAnalysis
    to_wave: WaveAnalysis
    drop_percent: float


@dataclass(slots=True, frozen=True)
class Tier2Result:
    wave_analyses: Tuple[WaveAnalysis, ...]
    impossible_waves: Tuple[WaveAnalysis, ...]
    difficulty_spikes: Tuple[Spike, ...]
    trivial_waves: Tuple[WaveAnalysis, ...]
    economy_stall_wave: Optional[int]
    issues: Tuple[BalanceIssue, ...]

    def to_dict(self) -> Dict[str, Any]:
        return _stabilize_numeric_payload(
            {
                "wave_analyses": [asdict(item) for item in self.wave_analyses],
                "impossible_waves": [item.wave for item in self.impossible_waves],
                "difficulty_spikes": [
                    {
                        "from_wave": spike.from_wave.wave,
                        "to_wave": spike.to_wave.wave,
                        "drop_percent": spike.drop_percent,
                    }
                    for spike in self.difficulty_spikes
                ],
                "trivial_waves": [item.wave for item in self.trivial_waves],
                "economy_stall_wave": self.economy_stall_wave,
                "issues": [issue.to_dict() for issue in self.issues],
            }
        )


def build_tower_dps_table(towers: Sequence[TowerDefinition], settings: GameSettings) -> List[TowerDpsInfo]:
    table: List[TowerDpsInfo] = []
    for tower in towers:
        if not tower.is_simulatable:
            continue
        base = tower.base_level
        cost = adjusted_cost(base.cost, settings)
        table.append(
            TowerDpsInfo(
                tower_id=tower.id,
                tower_name=tower.name,
                dps=base.dps,
                adjusted_cost=cost,
                dps_per_coin=base.dps / cost if cost > 0 else 0.0,
            )
        )
    table.sort(key=lambda item: item.dps_per_coin, reverse=True)
    return table


def affordable_dps(table: Sequence[TowerDpsInfo], coins: float) -> Tuple[float, float]:
    """Greedily buy the most efficient affordable tower until nothing fits.

    Returns ``(total_dps, spent)``.
    """
    total_dps = 0.0
    spent = 0.0
    bought = True
    while bought:
        bought = False
        for entry in table:
            if 0 < entry.adjusted_cost <= coins:
                coins -= entry.adjusted_cost
                spent += entry.adjusted_cost
                total_dps += entry.dps
                bought = True
                break
    return total_dps, spent


def analyze_tier2(
    towers: Sequence[TowerDefinition],
    enemies: Sequence[EnemyDefinition],
    settings: GameSettings,
    waves: Sequence[WaveDefinition],
    num_waves: int,
) -> Tier2Result:
    table = build_tower_dps_table(towers, settings)
    costs = [entry.adjusted_cost for entry in table if entry.adjusted_cost > 0]
    cheapest = min(costs) if costs else math.inf
    enemy_index: Mapping[int, EnemyDefinition] = {enemy.id: enemy for enemy in enemies}

    analyses: List[WaveAnalysis] = []
    coins = float(settings.initial_coins)
    stall_wave: Optional[int] = None

    for wave in range(1, num_waves + 1):
        composition = resolve_wave(waves, wave)
        total_hp = 0
        total_reward = 0
        slowest = math.inf
        spawn_ms = 0.0
        for group in composition.enemies if composition is not None else ():
            enemy = enemy_index.get(group.enemy_id)
            if enemy is None:
                continue
            speed = scaled_speed(enemy.speed, settings)
            total_hp += group.count * scaled_health(enemy.health, wave, settings)
            total_reward += group.count * scaled_reward(enemy.reward, wave, settings)
            spawn_ms += group.count * group.spawn_delay_ms
            if 0 < speed < slowest:
                slowest = speed

        travel = PATH_LENGTH / slowest if math.isfinite(slowest) else 0.0
        duration = max(travel, spawn_ms / 1000.0)
        min_dps = total_hp / duration if duration > 0 else 0.0
        dps, spent = affordable_dps(table, coins)
        surplus = dps / min_dps if min_dps > 0 else math.inf
        coins = coins - spent + total_reward

        analyses.append(
            WaveAnalysis(
                wave=wave,
                difficulty=settings.mode,
                total_scaled_hp=total_hp,
                total_reward=total_reward,
                min_dps_required=min_dps,
                affordable_dps=dps,
                surplus_ratio=surplus,
                cumulative_coins=coins,
                net_flow=total_reward - spent,
            )
        )
        if stall_wave is None and math.isfinite(cheapest) and coins < cheapest:
            stall_wave = wave

    impossible = [item for item in analyses if item.surplus_ratio < 1.0]
    trivial = [item for item in analyses if TRIVIAL_SURPLUS < item.surplus_ratio < math.inf]
    spikes: List[Spike] = []
    for prev, cur in zip(analyses, analyses[1:]):
        if 0 < prev.surplus_ratio < math.inf and cur.surplus_ratio < math.inf:
            drop = (prev.surplus_ratio - cur.surplus_ratio) / prev.surplus_ratio * 100.0
            if drop > SPIKE_DROP_PERCENT:
                spikes.append(Spike(from_wave=prev, to_wave=cur, drop_percent=drop))

    issues: List[BalanceIssue] = []
    for item in impossible:
        issues.append(
            BalanceIssue(
                severity=Severity.CRITICAL,
                description=(
                    f"Wave {item.wave} is impossible: need {item.min_dps_required:.1f} DPS but can only afford "
                    f"{item.affordable_dps:.1f} DPS (surplus ratio {item.surplus_ratio:.2f})"
                ),
                details=ImpossibleWave(
                    wave=item.wave,
                    min_dps_required=item.min_dps_required,
                    affordable_dps=item.affordable_dps,
                    surplus_ratio=item.surplus_ratio,
                ),
            )
        )
    for spike in spikes:
        issues.append(
            BalanceIssue(
                severity=Severity.HIGH,
                description=(
                    f"Difficulty spike from wave {spike.from_wave.wave} to {spike.to_wave.wave}: surplus drops "
                    f"{spike.drop_percent:.0f}% ({spike.from_wave.surplus_ratio:.2f} -> {spike.to_wave.surplus_ratio:.2f})"
                ),
                details=DifficultySpike(
                    from_wave=spike.from_wave.wave,
                    to_wave=spike.to_wave.wave,
                    from_surplus=spike.from_wave.surplus_ratio,
                    to_surplus=spike.to_wave.surplus_ratio,
                    drop_percent=spike.drop_percent,
                ),
            )
        )
    for item in trivial:
        issues.append(
            BalanceIssue(
                severity=Severity.LOW,
                description=f"Wave {item.wave} is trivially easy: surplus ratio {item.surplus_ratio:.2f}x",
                details=TrivialWave(
                    wave=item.wave,
                    surplus_ratio=item.surplus_ratio,
                    affordable_dps=item.affordable_dps,
                    min_dps_required=item.min_dps_required,
                ),
            )
        )
    if stall_wave is not None:
        issues.append(
            BalanceIssue(
                severity=Severity.HIGH,
                description=(
                    f"Economy stalls at wave {stall_wave}: cumulative coins drop below cheapest tower cost "
                    f"({cheapest:.0f})"
                ),
                details=EconomyStall(wave=stall_wave, cheapest_tower_cost=cheapest),
            )
        )

    return Tier2Result(
        wave_analyses=tuple(analyses),
        impossible_waves=tuple(impossible),
        difficulty_spikes=tuple(spikes),
        trivial_waves=tuple(trivial),
        economy_stall_wave=stall_wave,
        issues=tuple(issues),
    )
