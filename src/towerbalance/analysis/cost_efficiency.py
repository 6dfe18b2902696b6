"""Static cost-efficiency analysis: DPS per coin and time-to-kill before escape."""

from __future__ import annotations

from dataclasses import asdict, dataclass
import logging
import math
from typing import Any, Dict, List, Sequence, Tuple

from ..models import EnemyDefinition, GameSettings, TowerDefinition, _stabilize_numeric_payload
from ..rules import GRID_SIZE, adjusted_cost, scaled_health, scaled_speed
from .issues import BalanceIssue, CostDominance, DpsCostSpread, Overkill, Severity, Unkillable


logger = logging.getLogger(__name__)

ANALYSIS_WAVES: Tuple[int, ...] = (1, 5, 10)
SPREAD_THRESHOLD = 2.0
OVERKILL_THRESHOLD = 3.0


@dataclass(slots=True, frozen=True)
class TowerLevelMetrics:
    tower_id: int
    tower_name: str
    level: int
    dps: float
    cumulative_cost: float
    dps_per_coin: float


@dataclass(slots=True, frozen=True)
class TowerEnemyMatchup:
    tower_id: int
    tower_name: str
    tower_level: int
    enemy_id: int
    enemy_name: str
    wave: int
    scaled_health: int
    ttk: float
    shots_to_kill: float
    overkill_ratio: float
    range_coverage_time: float
    can_kill_before_escape: bool


@dataclass(slots=True, frozen=True)
class Tier1Result:
    tower_metrics: Tuple[TowerLevelMetrics, ...]
    matchups: Tuple[TowerEnemyMatchup, ...]
    dps_spread: float
    issues: Tuple[BalanceIssue, ...]

    def to_dict(self) -> Dict[str, Any]:
        return _stabilize_numeric_payload(
            {
                "tower_metrics": [asdict(item) for item in self.tower_metrics],
                "matchups": [asdict(item) for item in self.matchups],
                "dps_spread": self.dps_spread,
                "issues": [issue.to_dict() for issue in self.issues],
            }
        )


def horizontal_coverage(tower_range: float, row_offset: float = GRID_SIZE) -> float:
    """Length of the path row that lies inside a tower's circular range."""
    if tower_range <= row_offset:
        return 0.0
    return 2.0 * math.sqrt(tower_range**2 - row_offset**2)


def compute_tower_metrics(towers: Sequence[TowerDefinition], settings: GameSettings) -> List[TowerLevelMetrics]:
    metrics: List[TowerLevelMetrics] = []
    for tower in towers:
        cumulative = 0.0
        for level in tower.levels:
            cumulative += adjusted_cost(level.cost, settings)
            metrics.append(
                TowerLevelMetrics(
                    tower_id=tower.id,
                    tower_name=tower.name,
                    level=level.level,
                    dps=level.dps,
                    cumulative_cost=cumulative,
                    dps_per_coin=level.dps / cumulative if cumulative > 0 else 0.0,
                )
            )
    return metrics


def compute_matchups(
    towers: Sequence[TowerDefinition],
    enemies: Sequence[EnemyDefinition],
    settings: GameSettings,
    waves: Sequence[int] = ANALYSIS_WAVES,
) -> List[TowerEnemyMatchup]:
    matchups: List[TowerEnemyMatchup] = []
    for tower in towers:
        for level in tower.levels:
            coverage = horizontal_coverage(level.range)
            for enemy in enemies:
                speed = scaled_speed(enemy.speed, settings)
                crossing = coverage / speed if speed > 0 else math.inf
                for wave in waves:
                    health = scaled_health(enemy.health, wave, settings)
                    ttk = health / level.dps if level.dps > 0 else math.inf
                    if level.damage > 0:
                        shots = float(math.ceil(health / level.damage))
                        overkill = shots * level.damage / health if health > 0 else 1.0
                    else:
                        shots = math.inf
                        overkill = 0.0
                    matchups.append(
                        TowerEnemyMatchup(
                            tower_id=tower.id,
                            tower_name=tower.name,
                            tower_level=level.level,
                            enemy_id=enemy.id,
                            enemy_name=enemy.name,
                            wave=wave,
                            scaled_health=health,
                            ttk=ttk,
                            shots_to_kill=shots,
                            overkill_ratio=overkill,
                            range_coverage_time=crossing,
                            can_kill_before_escape=ttk < crossing,
                        )
                    )
    return matchups


def _best_at(metrics: Sequence[TowerLevelMetrics]) -> TowerLevelMetrics:
    return max(metrics, key=lambda item: item.dps_per_coin)


def detect_issues(
    metrics: Sequence[TowerLevelMetrics],
    matchups: Sequence[TowerEnemyMatchup],
    tower_count: int,
) -> List[BalanceIssue]:
    issues: List[BalanceIssue] = []
    levels = sorted({item.level for item in metrics})
    by_level = {level: [item for item in metrics if item.level == level] for level in levels}

    for level in levels:
        at_level = by_level[level]
        if len(at_level) < 2:
            continue
        positive = [item.dps_per_coin for item in at_level if item.dps_per_coin > 0]
        if not positive:
            continue
        max_dpc = max(item.dps_per_coin for item in at_level)
        min_dpc = min(positive)
        if max_dpc / min_dpc <= SPREAD_THRESHOLD:
            continue
        best = next(item for item in at_level if item.dps_per_coin == max_dpc)
        worst = next(item for item in at_level if item.dps_per_coin == min_dpc)
        issues.append(
            BalanceIssue(
                severity=Severity.HIGH,
                description=(
                    f"DPS/coin spread > 2x at level {level}: {best.tower_name} ({max_dpc:.3f}) "
                    f"vs {worst.tower_name} ({min_dpc:.3f})"
                ),
                details=DpsCostSpread(
                    level=level,
                    max_dpc=max_dpc,
                    min_dpc=min_dpc,
                    ratio=max_dpc / min_dpc,
                    best_tower_id=best.tower_id,
                    worst_tower_id=worst.tower_id,
                ),
            )
        )

    for matchup in matchups:
        # Ratios are >= 1 whenever damage is positive; inf never reaches here.
        if math.isfinite(matchup.overkill_ratio) and matchup.overkill_ratio > OVERKILL_THRESHOLD:
            issues.append(
                BalanceIssue(
                    severity=Severity.MEDIUM,
                    description=(
                        f"{matchup.tower_name} L{matchup.tower_level} has {matchup.overkill_ratio:.1f}x overkill "
                        f"vs {matchup.enemy_name} at wave {matchup.wave}"
                    ),
                    details=Overkill(
                        tower_id=matchup.tower_id,
                        tower_level=matchup.tower_level,
                        enemy_id=matchup.enemy_id,
                        wave=matchup.wave,
                        overkill_ratio=matchup.overkill_ratio,
                    ),
                )
            )

    pairs: List[Tuple[int, int]] = []
    for matchup in matchups:
        key = (matchup.enemy_id, matchup.wave)
        if key not in pairs:
            pairs.append(key)
    for enemy_id, wave in pairs:
        base = [m for m in matchups if m.enemy_id == enemy_id and m.wave == wave and m.tower_level == 1]
        if base and not any(m.can_kill_before_escape for m in base):
            issues.append(
                BalanceIssue(
                    severity=Severity.CRITICAL,
                    description=f"No tower can kill {base[0].enemy_name} before escape at wave {wave} (level 1)",
                    details=Unkillable(
                        enemy_id=enemy_id,
                        wave=wave,
                        towers_tested=tuple(m.tower_name for m in base),
                    ),
                )
            )

    if tower_count > 1 and levels and all(len(by_level[level]) >= 2 for level in levels):
        champion = _best_at(by_level[levels[0]])
        if all(_best_at(by_level[level]).tower_id == champion.tower_id for level in levels):
            issues.append(
                BalanceIssue(
                    severity=Severity.HIGH,
                    description=(
                        f"{champion.tower_name} has the best DPS/coin at every level, "
                        "making other towers suboptimal"
                    ),
                    details=CostDominance(tower_id=champion.tower_id, tower_name=champion.tower_name),
                )
            )

    return issues


def analyze_tier1(
    towers: Sequence[TowerDefinition],
    enemies: Sequence[EnemyDefinition],
    settings: GameSettings,
) -> Tier1Result:
    usable = [tower for tower in towers if tower.is_simulatable]
    if len(usable) != len(towers):
        logger.debug("tier1: skipped %d tower(s) with missing levels", len(towers) - len(usable))

    metrics = compute_tower_metrics(usable, settings)
    matchups = compute_matchups(usable, enemies, settings)

    level1 = [item.dps_per_coin for item in metrics if item.level == 1 and item.dps_per_coin > 0]
    spread = max(level1) / min(level1) if len(level1) >= 2 else 1.0

    return Tier1Result(
        tower_metrics=tuple(metrics),
        matchups=tuple(matchups),
        dps_spread=spread,
        issues=tuple(detect_issues(metrics, matchups, len(usable))),
    )
