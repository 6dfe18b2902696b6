from __future__ import annotations

import json
import math
from typing import Iterable, List, Mapping, Optional, Sequence

from .analysis.classifier import ClassifiedEnemy, ClassifiedTower
from .analysis.cost_efficiency import Tier1Result
from .analysis.issues import BalanceIssue
from .analysis.sensitivity import Tier3Result
from .analysis.wave_scaling import Tier2Result
from .live.bot import BotRunResult
from .models import GameConfig
from .report import AnalysisReport
from .simulation.state import SimulationRunResult
from .suggestions.engine import BalanceSuggestion


def _header(title: str) -> List[str]:
    line = "=" * 60
    return ["", line, f"  {title}", line]


def _subheader(title: str) -> List[str]:
    return ["", f"--- {title} ---"]


def _fmt(value: float, digits: int = 2) -> str:
    return "inf" if math.isinf(value) else f"{value:.{digits}f}"


def format_issues(issues: Iterable[BalanceIssue]) -> List[str]:
    ordered = sorted(issues, key=lambda issue: issue.severity.ordinal)
    if not ordered:
        return ["  No balance issues detected."]
    return [f"  [{issue.severity.value.upper()}] {issue.description}" for issue in ordered]


def format_classification(towers: Sequence[ClassifiedTower], enemies: Sequence[ClassifiedEnemy]) -> List[str]:
    lines = _header("Classification")
    lines += _subheader("Towers")
    name_width = max([len(item.name) for item in towers] + [5])
    lines.append(f"  {'Name':<{name_width}}  {'Role':<8}  {'Range x':>8}  {'Rate x':>8}")
    lines.append("  " + "-" * (name_width + 30))
    for tower in towers:
        lines.append(
            f"  {tower.name:<{name_width}}  {tower.role.value:<8}  "
            f"{tower.range_ratio:>8.2f}  {tower.fire_rate_ratio:>8.2f}"
        )

    lines += _subheader("Enemies")
    name_width = max([len(item.name) for item in enemies] + [5])
    lines.append(f"  {'Name':<{name_width}}  {'Archetype':<9}  {'HP x':>6}  {'Speed x':>7}")
    lines.append("  " + "-" * (name_width + 28))
    for enemy in enemies:
        lines.append(
            f"  {enemy.name:<{name_width}}  {enemy.archetype.value:<9}  "
            f"{enemy.health_ratio:>6.2f}  {enemy.speed_ratio:>7.2f}"
        )
    return lines


def format_tier1(result: Tier1Result) -> List[str]:
    lines = _header("Tier 1: Cost Efficiency Analysis")
    lines += _subheader("Tower Metrics (per level)")
    name_width = max([len(item.tower_name) for item in result.tower_metrics] + [5])
    lines.append(f"  {'Tower':<{name_width}}  {'Lvl':>3}  {'DPS':>8}  {'Cost':>8}  {'DPS/Coin':>10}")
    lines.append("  " + "-" * (name_width + 35))
    for item in result.tower_metrics:
        lines.append(
            f"  {item.tower_name:<{name_width}}  {item.level:>3}  {item.dps:>8.1f}  "
            f"{item.cumulative_cost:>8.0f}  {item.dps_per_coin:>10.4f}"
        )
    lines.append("")
    lines.append(f"  DPS/Coin spread (level 1): {result.dps_spread:.2f}x")

    failures = [item for item in result.matchups if not item.can_kill_before_escape]
    if failures:
        lines += _subheader("Escape Failures (cannot kill before enemy exits range)")
        for item in failures:
            lines.append(
                f"  {item.tower_name} L{item.tower_level} vs {item.enemy_name} (wave {item.wave}): "
                f"ttk={_fmt(item.ttk)}s, in range {_fmt(item.range_coverage_time)}s"
            )

    lines += _subheader("Balance Issues")
    lines += format_issues(result.issues)
    return lines


def format_tier2(result: Tier2Result) -> List[str]:
    lines = _header("Tier 2: Wave Progression Analysis")
    lines += _subheader("Wave Analyses")
    lines.append(
        f"  {'Wave':>4}  {'TotalHP':>10}  {'Reward':>8}  {'MinDPS':>8}  {'AffDPS':>8}  {'Surplus':>8}  {'Coins':>8}"
    )
    lines.append("  " + "-" * 62)
    for item in result.wave_analyses:
        lines.append(
            f"  {item.wave:>4}  {item.total_scaled_hp:>10}  {item.total_reward:>8}  "
            f"{item.min_dps_required:>8.1f}  {item.affordable_dps:>8.1f}  "
            f"{_fmt(item.surplus_ratio):>8}  {item.cumulative_coins:>8.0f}"
        )

    if result.impossible_waves:
        lines += _subheader("Impossible Waves")
        for item in result.impossible_waves:
            lines.append(
                f"  Wave {item.wave}: need {item.min_dps_required:.1f} DPS, "
                f"can only afford {item.affordable_dps:.1f} DPS"
            )
    if result.difficulty_spikes:
        lines += _subheader("Difficulty Spikes")
        for spike in result.difficulty_spikes:
            lines.append(
                f"  Wave {spike.from_wave.wave} -> {spike.to_wave.wave}: surplus drops {spike.drop_percent:.0f}%"
            )
    if result.economy_stall_wave is not None:
        lines += _subheader("Economy")
        lines.append(f"  Economy stalls at wave {result.economy_stall_wave}")

    lines += _subheader("Balance Issues")
    lines += format_issues(result.issues)
    return lines


def _rate_lines(label: str, rates: Mapping[int, float], names: Mapping[int, str]) -> List[str]:
    return [f"  {names.get(key, f'{label} {key}'):<20}  {value * 100:5.1f}%" for key, value in rates.items()]


def format_tier3(result: Tier3Result, config: Optional[GameConfig] = None) -> List[str]:
    tower_names = {tower.id: tower.name for tower in config.towers} if config is not None else {}
    enemy_names = {enemy.id: enemy.name for enemy in config.enemies} if config is not None else {}

    lines = _header("Tier 3: Simulation Results")
    lines.append(f"  Runs: {len(result.runs)} (seed {result.seed}), baseline waves survived: {result.baseline_waves}")
    lines += _subheader("Win Rates by Strategy")
    for name, rate in result.win_rate_by_strategy.items():
        lines.append(f"  {name:<20}  {rate * 100:5.0f}%")
    lines += _subheader("Tower Pick Rates")
    lines += _rate_lines("Tower", result.tower_pick_rate, tower_names)
    lines += _subheader("Tower Damage Share")
    lines += _rate_lines("Tower", result.tower_damage_share, tower_names)
    lines += _subheader("Enemy Leak Rate")
    lines += _rate_lines("Enemy", result.enemy_leak_rate, enemy_names)

    if result.sensitivity:
        lines += _subheader("Sensitivity Analysis")
        param_width = max([len(item.parameter) for item in result.sensitivity] + [9])
        target_width = max([len(item.target) for item in result.sensitivity] + [6])
        lines.append(f"  {'Parameter':<{param_width}}  {'Target':<{target_width}}  {'Impact':>8}  Dir")
        lines.append("  " + "-" * (param_width + target_width + 18))
        for item in result.sensitivity:
            lines.append(
                f"  {item.parameter:<{param_width}}  {item.target:<{target_width}}  "
                f"{item.impact:>8.3f}  {item.direction}"
            )

    lines += _subheader("Balance Issues")
    lines += format_issues(result.issues)
    return lines


def format_suggestions(suggestions: Sequence[BalanceSuggestion]) -> List[str]:
    lines = _header("Balance Suggestions")
    if not suggestions:
        lines.append("  No suggestions -- balance looks good.")
        return lines
    for item in sorted(suggestions, key=lambda suggestion: suggestion.priority.ordinal):
        lines.append("")
        lines.append(f"  [{item.priority.value.upper()}] {item.description}")
        lines.append(f"    Target: {item.target.label()}")
        lines.append(
            f"    Current: {item.current_value} -> Suggested: {item.suggested_value} "
            f"({item.change_percent:+.1f}%)"
        )
        lines.append(f"    Reason: {item.reasoning}")
        patch = item.api_patch
        lines.append(f"    API: {patch.method} {patch.url} {json.dumps(patch.body)}")
        lines.append(f"    Rollback: {item.rollback_sql}")
    return lines


def format_report(report: AnalysisReport, config: Optional[GameConfig] = None) -> str:
    lines = format_classification(report.tower_classes, report.enemy_classes)
    if report.tier1 is not None:
        lines += format_tier1(report.tier1)
    if report.tier2 is not None:
        lines += format_tier2(report.tier2)
    if report.tier3 is not None:
        lines += format_tier3(report.tier3, config)
    lines += format_suggestions(report.suggestions)
    return "\n".join(lines)


def format_simulation(result: SimulationRunResult, config: Optional[GameConfig] = None, per_wave: bool = False) -> str:
    tower_names = {tower.id: tower.name for tower in config.towers} if config is not None else {}
    lines: List[str] = []
    if per_wave:
        lines += _subheader("Per-Wave Results")
        lines.append(
            f"  {'Wave':>4}  {'Spawned':>7}  {'Killed':>6}  {'Escaped':>7}  {'Damage':>8}  "
            f"{'Earned':>8}  {'Spent':>8}  {'Refund':>6}  {'Built':>5}  {'Upgr':>4}  {'Sold':>4}"
        )
        lines.append("  " + "-" * 90)
        for item in result.per_wave_metrics:
            lines.append(
                f"  {item.wave:>4}  {item.enemies_spawned:>7}  {item.enemies_killed:>6}  "
                f"{item.enemies_escaped:>7}  {item.damage_dealt:>8.0f}  {item.coins_earned:>8}  "
                f"{item.coins_spent:>8}  {item.coins_refunded:>6}  {item.towers_built:>5}  "
                f"{item.towers_upgraded:>4}  {item.towers_sold:>4}"
            )

    lines += [
        "",
        "=" * 50,
        "  Simulation Summary",
        "=" * 50,
        f"  Strategy:        {result.strategy}",
        f"  Difficulty:      {result.difficulty}",
        f"  Waves completed: {result.waves_completed} / {result.total_waves}",
        f"  Enemies killed:  {result.enemies_killed}",
        f"  Enemies escaped: {result.enemies_escaped}",
        f"  Lives remaining: {result.lives_remaining}",
        f"  Final coins:     {result.final_coins}",
        f"  Outcome:         {'WIN' if result.won else 'LOSS'}",
    ]
    if result.tower_usage:
        lines += ["", "  Tower Usage:"]
        for tower_id, count in result.tower_usage.items():
            lines.append(f"    {tower_names.get(tower_id, f'Tower {tower_id}')}: {count} placed")
    if result.tower_damage_share:
        lines += ["", "  Tower Damage Share:"]
        for tower_id, share in result.tower_damage_share.items():
            lines.append(f"    {tower_names.get(tower_id, f'Tower {tower_id}')}: {share * 100:.1f}%")
    return "\n".join(lines)


def format_bot_result(result: BotRunResult) -> str:
    return "\n".join(
        [
            "",
            "=" * 50,
            "  Live Game Summary",
            "=" * 50,
            f"  Game:            {result.game_id} ({result.game_mode}, {result.difficulty})",
            f"  Strategy:        {result.strategy}",
            f"  Waves completed: {result.waves_completed} / {result.total_waves}",
            f"  Enemies killed:  {result.enemies_killed}",
            f"  Enemies escaped: {result.enemies_escaped}",
            f"  Lives remaining: {result.lives_remaining}",
            f"  Final coins:     {result.final_coins}",
            f"  Outcome:         {result.outcome.upper()}",
        ]
    )
