"""Turns analysis issues into bounded, reversible parameter edits.

Every issue payload type maps to exactly one handler in ``_HANDLERS``; the
table is checked against :data:`DETAIL_TYPES` at import time so adding a new
issue category without a remediation rule fails loudly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..analysis.cost_efficiency import Tier1Result
from ..analysis.issues import (
    DETAIL_TYPES,
    BalanceIssue,
    CostDominance,
    DifficultySpike,
    DpsCostSpread,
    EconomyStall,
    EnemyLeak,
    ImpossibleWave,
    Overkill,
    Severity,
    StrategyVariance,
    TowerDominance,
    TowerUnderuse,
    TrivialWave,
    Unkillable,
)
from ..analysis.sensitivity import Tier3Result
from ..analysis.wave_scaling import Tier2Result
from ..models import GameConfig, TowerDefinition, _stabilize_numeric_payload
from ..rules import adjusted_cost, round_half_up, round_half_up_to
from .constraints import (
    DECIMAL_FIELDS,
    ENEMY_DEFINITIONS,
    GAME_SETTINGS,
    TOWER_LEVELS,
    clamp_to_constraint,
)


MAX_CHANGE_PERCENT = 30.0
_EPS = 1e-9


@dataclass(slots=True, frozen=True)
class SuggestionTarget:
    table: str
    id: int
    field: str
    level: Optional[int] = None

    @property
    def key(self) -> Tuple[str, int, str, Optional[int]]:
        return (self.table, self.id, self.field, self.level)

    def label(self) -> str:
        suffix = f", level={self.level}" if self.level is not None else ""
        return f"{self.table}.{self.field} (id={self.id}{suffix})"


@dataclass(slots=True, frozen=True)
class ApiPatch:
    method: str
    url: str
    body: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class BalanceSuggestion:
    priority: Severity
    description: str
    target: SuggestionTarget
    current_value: float
    suggested_value: float
    change_percent: float
    reasoning: str
    api_patch: ApiPatch
    rollback_sql: str

    def to_dict(self) -> Dict[str, Any]:
        target: Dict[str, Any] = {"table": self.target.table, "id": self.target.id, "field": self.target.field}
        if self.target.level is not None:
            target["level"] = self.target.level
        return _stabilize_numeric_payload(
            {
                "priority": self.priority,
                "description": self.description,
                "target": target,
                "current_value": self.current_value,
                "suggested_value": self.suggested_value,
                "change_percent": self.change_percent,
                "reasoning": self.reasoning,
                "api_patch": {
                    "method": self.api_patch.method,
                    "url": self.api_patch.url,
                    "body": dict(self.api_patch.body),
                },
                "rollback_sql": self.rollback_sql,
            }
        )


# ---------------------------------------------------------------------------
# Value bounding
# ---------------------------------------------------------------------------
def round_for_field(field_name: str, value: float) -> float:
    if field_name in DECIMAL_FIELDS:
        return round_half_up_to(value, 2)
    return round_half_up(value)


def _round_toward(field_name: str, value: float, anchor: float) -> float:
    # Used after capping: rounding must not push the value back past the cap.
    if field_name in DECIMAL_FIELDS:
        scaled = value * 100
        stepped = math.floor(scaled + _EPS) if value > anchor else math.ceil(scaled - _EPS)
        return round(stepped / 100, 2)
    return math.floor(value + _EPS) if value > anchor else math.ceil(value - _EPS)


def change_percent(current: float, suggested: float) -> float:
    if current == 0:
        return 0.0
    return (suggested - current) / current * 100.0


def bound_value(table: str, field_name: str, current: float, raw: float) -> float:
    """Round, clamp to the field domain and cap the change at +/-30%.

    When the domain and the cap cannot both hold (a current value already far
    outside the domain), ``current`` is returned so the edit reads as a no-op.
    """
    value = round_for_field(field_name, clamp_to_constraint(table, field_name, round_for_field(field_name, raw)))
    percent = change_percent(current, value)
    if abs(percent) > MAX_CHANGE_PERCENT:
        limit = current * (1 + math.copysign(MAX_CHANGE_PERCENT, percent) / 100.0)
        value = _round_toward(field_name, limit, current)
        value = round_for_field(field_name, clamp_to_constraint(table, field_name, value))
        if abs(change_percent(current, value)) > MAX_CHANGE_PERCENT + _EPS:
            return current
    return value


# ---------------------------------------------------------------------------
# Patch and rollback rendering
# ---------------------------------------------------------------------------
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def column_name(field_name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", field_name).lower()


def _literal(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value)


def build_api_patch(target: SuggestionTarget, value: float) -> ApiPatch:
    body = {target.field: value}
    if target.table == TOWER_LEVELS and target.level is not None:
        return ApiPatch("PUT", f"/api/config/towers/{target.id}/levels/{target.level}", body)
    if target.table == ENEMY_DEFINITIONS:
        return ApiPatch("PATCH", f"/api/config/enemies/{target.id}", body)
    if target.table == GAME_SETTINGS:
        return ApiPatch("PATCH", f"/api/config/settings/{target.id}", body)
    return ApiPatch("PATCH", f"/api/config/towers/{target.id}", body)


def build_rollback_sql(target: SuggestionTarget, current: float) -> str:
    column = column_name(target.field)
    if target.table == TOWER_LEVELS and target.level is not None:
        return (
            f"UPDATE tower_levels SET {column} = {_literal(current)} "
            f"WHERE tower_id = {target.id} AND level = {target.level}"
        )
    return f"UPDATE {target.table} SET {column} = {_literal(current)} WHERE id = {target.id}"


def make_suggestion(
    priority: Severity,
    description: str,
    target: SuggestionTarget,
    current: float,
    raw: float,
    reasoning: str,
) -> BalanceSuggestion:
    if target.field not in DECIMAL_FIELDS and float(current).is_integer():
        current = int(current)
    suggested = bound_value(target.table, target.field, current, raw)
    return BalanceSuggestion(
        priority=priority,
        description=description,
        target=target,
        current_value=current,
        suggested_value=suggested,
        change_percent=round(change_percent(current, suggested), 1),
        reasoning=reasoning,
        api_patch=build_api_patch(target, suggested),
        rollback_sql=build_rollback_sql(target, current),
    )


# ---------------------------------------------------------------------------
# Remediation rules, one per issue payload type
# ---------------------------------------------------------------------------
Handler = Callable[[BalanceIssue, GameConfig], List[BalanceSuggestion]]


def _level_cost_suggestion(
    tower: TowerDefinition,
    factor: float,
    priority: Severity,
    description: str,
    reasoning: str,
) -> List[BalanceSuggestion]:
    base = tower.base_level
    if base is None:
        return []
    return [
        make_suggestion(
            priority,
            description,
            SuggestionTarget(TOWER_LEVELS, tower.id, "cost", 1),
            base.cost,
            base.cost * factor,
            reasoning,
        )
    ]


def _on_dps_cost_spread(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    details: DpsCostSpread = issue.details
    tower = config.tower(details.worst_tower_id)
    level = tower.level(details.level) if tower is not None else None
    if tower is None or level is None:
        return []
    settings = config.settings
    multiplier = settings.tower_cost_multiplier
    mean_dpc = (details.max_dpc + details.min_dpc) / 2
    lower_levels = sum(adjusted_cost(item.cost, settings) for item in tower.levels if item.level < details.level)
    if multiplier > 0 and mean_dpc > 0:
        # Solve dps / (lower_levels + cost * multiplier) == mean_dpc for cost.
        raw = (level.dps / mean_dpc - lower_levels) / multiplier
    else:
        raw = level.cost
    return [
        make_suggestion(
            Severity.HIGH,
            f"Adjust {tower.name} level {details.level} cost to improve DPS/coin balance",
            SuggestionTarget(TOWER_LEVELS, tower.id, "cost", details.level),
            level.cost,
            raw,
            (
                f"DPS/coin spread is {details.ratio:.1f}x at level {details.level}. "
                "Adjusting cost toward the mean DPS/coin ratio to reduce imbalance."
            ),
        )
    ]


def _on_overkill(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    details: Overkill = issue.details
    enemy = config.enemy(details.enemy_id)
    if enemy is None:
        return []
    return [
        make_suggestion(
            Severity.MEDIUM,
            f"Increase {enemy.name} health to reduce overkill ratio",
            SuggestionTarget(ENEMY_DEFINITIONS, enemy.id, "health"),
            enemy.health,
            enemy.health * 1.15,
            (
                f"Overkill ratio of {details.overkill_ratio:.1f}x at wave {details.wave} wastes tower damage. "
                "Increasing health reduces waste."
            ),
        )
    ]


def _on_unkillable(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    details: Unkillable = issue.details
    enemy = config.enemy(details.enemy_id)
    if enemy is None:
        return []
    suggestions = [
        make_suggestion(
            Severity.CRITICAL,
            f"Reduce {enemy.name} speed so towers can kill it before escape",
            SuggestionTarget(ENEMY_DEFINITIONS, enemy.id, "speed"),
            enemy.speed,
            enemy.speed * 0.85,
            (
                f"No level-1 tower can kill {enemy.name} before it exits range at wave {details.wave}. "
                "Reducing speed gives towers more engagement time."
            ),
        )
    ]

    longest: Optional[TowerDefinition] = None
    for tower in config.towers:
        base = tower.base_level
        if base is None:
            continue
        if longest is None or base.range > longest.base_level.range:
            longest = tower
    if longest is not None:
        base = longest.base_level
        suggestions.append(
            make_suggestion(
                Severity.CRITICAL,
                f"Increase {longest.name} level 1 range to cover {enemy.name}",
                SuggestionTarget(TOWER_LEVELS, longest.id, "range", 1),
                base.range,
                base.range * 1.10,
                (
                    f"No level-1 tower can kill {enemy.name} before escape at wave {details.wave}. "
                    "Increasing range extends engagement window."
                ),
            )
        )
    return suggestions


def _on_cost_dominance(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    details: CostDominance = issue.details
    tower = config.tower(details.tower_id)
    if tower is None:
        return []
    return _level_cost_suggestion(
        tower,
        1.15,
        Severity.HIGH,
        f"Increase {tower.name} level 1 cost: best DPS/coin at every level",
        f"{tower.name} is the most cost-efficient tower at every level, leaving no reason to build alternatives.",
    )


def _on_impossible_wave(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    settings = config.settings
    return [
        make_suggestion(
            Severity.CRITICAL,
            "Reduce enemy health wave scaling to make waves achievable",
            SuggestionTarget(GAME_SETTINGS, settings.id, "enemyHealthWaveMultiplier"),
            settings.enemy_health_wave_multiplier,
            settings.enemy_health_wave_multiplier * 0.9,
            f"{issue.description}. Reducing health wave multiplier lowers enemy HP growth per wave.",
        ),
        make_suggestion(
            Severity.CRITICAL,
            "Increase enemy reward wave scaling to improve economy",
            SuggestionTarget(GAME_SETTINGS, settings.id, "enemyRewardWaveMultiplier"),
            settings.enemy_reward_wave_multiplier,
            settings.enemy_reward_wave_multiplier * 1.1,
            (
                f"{issue.description}. Increasing reward wave multiplier gives players more coins per wave "
                "to afford better defenses."
            ),
        ),
    ]


def _on_difficulty_spike(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    settings = config.settings
    return [
        make_suggestion(
            Severity.HIGH,
            "Reduce enemy health multiplier to smooth difficulty curve",
            SuggestionTarget(GAME_SETTINGS, settings.id, "enemyHealthMultiplier"),
            settings.enemy_health_multiplier,
            settings.enemy_health_multiplier * 0.95,
            f"{issue.description}. Reducing the base health multiplier smooths the difficulty progression.",
        )
    ]


def _on_economy_stall(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    details: EconomyStall = issue.details
    settings = config.settings
    return [
        make_suggestion(
            Severity.HIGH,
            "Increase enemy reward multiplier to keep the economy flowing",
            SuggestionTarget(GAME_SETTINGS, settings.id, "enemyRewardMultiplier"),
            settings.enemy_reward_multiplier,
            settings.enemy_reward_multiplier * 1.1,
            (
                f"Coins fall below the cheapest tower ({details.cheapest_tower_cost:.0f}) at wave {details.wave}. "
                "Higher rewards let players keep building."
            ),
        )
    ]


def _informational(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    return []


def _on_tower_dominance(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    details: TowerDominance = issue.details
    tower = config.tower(details.tower_id)
    if tower is None:
        return []
    pct = details.pick_rate * 100
    return _level_cost_suggestion(
        tower,
        1.15,
        Severity.HIGH,
        f"Increase {tower.name} level 1 cost to reduce dominance ({pct:.0f}% pick rate)",
        (
            f"{tower.name} has a {pct:.0f}% pick rate across simulations, "
            "indicating it is too cost-effective relative to alternatives."
        ),
    )


def _on_tower_underuse(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    details: TowerUnderuse = issue.details
    tower = config.tower(details.tower_id)
    if tower is None:
        return []
    pct = details.pick_rate * 100
    return _level_cost_suggestion(
        tower,
        0.85,
        Severity.MEDIUM,
        f"Decrease {tower.name} level 1 cost to improve viability ({pct:.0f}% pick rate)",
        (
            f"{tower.name} has only a {pct:.0f}% pick rate across simulations, "
            "suggesting it is too expensive or weak compared to alternatives."
        ),
    )


def _on_enemy_leak(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    details: EnemyLeak = issue.details
    enemy = config.enemy(details.enemy_id)
    if enemy is None:
        return []
    pct = details.leak_rate * 100
    return [
        make_suggestion(
            Severity.HIGH,
            f"Reduce {enemy.name} speed to lower leak rate ({pct:.0f}%)",
            SuggestionTarget(ENEMY_DEFINITIONS, enemy.id, "speed"),
            enemy.speed,
            enemy.speed * 0.9,
            (
                f"{enemy.name} escapes {pct:.0f}% of the time in simulations. "
                "Reducing speed gives towers more time to kill it."
            ),
        )
    ]


_HANDLERS: Dict[type, Handler] = {
    DpsCostSpread: _on_dps_cost_spread,
    Overkill: _on_overkill,
    Unkillable: _on_unkillable,
    CostDominance: _on_cost_dominance,
    ImpossibleWave: _on_impossible_wave,
    DifficultySpike: _on_difficulty_spike,
    TrivialWave: _informational,
    EconomyStall: _on_economy_stall,
    TowerDominance: _on_tower_dominance,
    TowerUnderuse: _on_tower_underuse,
    EnemyLeak: _on_enemy_leak,
    StrategyVariance: _informational,
}

_unhandled = [kind.__name__ for kind in DETAIL_TYPES if kind not in _HANDLERS]
if _unhandled:
    raise RuntimeError(f"No suggestion handler for issue type(s): {', '.join(_unhandled)}")


def suggestions_for_issue(issue: BalanceIssue, config: GameConfig) -> List[BalanceSuggestion]:
    return _HANDLERS[type(issue.details)](issue, config)


def deduplicate(suggestions: Iterable[BalanceSuggestion]) -> List[BalanceSuggestion]:
    """One suggestion per target, keeping the most severe (first wins ties)."""
    kept: Dict[Tuple[str, int, str, Optional[int]], BalanceSuggestion] = {}
    for suggestion in suggestions:
        key = suggestion.target.key
        existing = kept.get(key)
        if existing is None or suggestion.priority.ordinal < existing.priority.ordinal:
            kept[key] = suggestion
    return list(kept.values())


def generate_suggestions(
    tier1: Optional[Tier1Result],
    tier2: Optional[Tier2Result],
    tier3: Optional[Tier3Result],
    config: GameConfig,
) -> List[BalanceSuggestion]:
    issues: List[BalanceIssue] = []
    for result in (tier1, tier2, tier3):
        if result is not None:
            issues.extend(result.issues)

    candidates: List[BalanceSuggestion] = []
    for issue in issues:
        candidates.extend(suggestions_for_issue(issue, config))
    meaningful = [item for item in candidates if item.suggested_value != item.current_value]
    return deduplicate(meaningful)
