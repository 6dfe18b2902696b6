"""Simulation-driven analysis: strategy sweeps plus +/-10% parameter perturbation."""

from __future__ import annotations

from concurrent.futures import ProcessPoolExecutor
from dataclasses import asdict, dataclass, replace
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models import EnemyDefinition, GameConfig, TowerDefinition, _stabilize_numeric_payload
from ..simulation.engine import SimulationEngine
from ..simulation.state import SimulationRunResult
from ..simulation.strategies import get_strategy, strategy_names
from .issues import BalanceIssue, EnemyLeak, Severity, StrategyVariance, TowerDominance, TowerUnderuse
from .metrics import MetricsCollector


logger = logging.getLogger(__name__)

PERTURBATION = 0.1
SENSITIVITY_STRATEGY = "balanced"
DOMINANCE_PICK_RATE = 0.6
UNDERUSE_PICK_RATE = 0.1
LEAK_RATE_LIMIT = 0.5
WIN_RATE_SPREAD_LIMIT = 0.4
DEFAULT_SEED = 0

# attribute name -> name used in reports and patch bodies
TOWER_PARAMETERS: Tuple[Tuple[str, str], ...] = (("damage", "damage"), ("fire_rate", "fireRate"), ("range", "range"))
ENEMY_PARAMETERS: Tuple[Tuple[str, str], ...] = (("health", "health"), ("speed", "speed"))

SimJob = Tuple[GameConfig, str, int, int]


@dataclass(slots=True, frozen=True)
class SensitivityResult:
    parameter: str
    target: str
    target_id: int
    baseline_value: float
    plus_waves: int
    minus_waves: int
    impact: float
    direction: str


@dataclass(slots=True, frozen=True)
class Tier3Result:
    runs: Tuple[SimulationRunResult, ...]
    seed: int
    win_rate_by_strategy: Dict[str, float]
    tower_pick_rate: Dict[int, float]
    tower_damage_share: Dict[int, float]
    enemy_leak_rate: Dict[int, float]
    baseline_waves: int
    sensitivity: Tuple[SensitivityResult, ...]
    issues: Tuple[BalanceIssue, ...]

    def to_dict(self, include_runs: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "run_count": len(self.runs),
            "seed": self.seed,
            "win_rate_by_strategy": self.win_rate_by_strategy,
            "tower_pick_rate": self.tower_pick_rate,
            "tower_damage_share": self.tower_damage_share,
            "enemy_leak_rate": self.enemy_leak_rate,
            "baseline_waves": self.baseline_waves,
            "sensitivity": [asdict(item) for item in self.sensitivity],
            "issues": [issue.to_dict() for issue in self.issues],
        }
        if include_runs:
            payload["runs"] = [run.to_dict() for run in self.runs]
        return _stabilize_numeric_payload(payload)


def _run_job(job: SimJob) -> SimulationRunResult:
    config, strategy_name, seed, num_waves = job
    return SimulationEngine(config, get_strategy(strategy_name, seed=seed), num_waves).run()


def run_jobs(jobs: Sequence[SimJob], workers: int = 1) -> List[SimulationRunResult]:
    """Run independent simulations, in parallel when ``workers > 1``.

    Results come back in job order either way.
    """
    if workers <= 1 or len(jobs) <= 1:
        return [_run_job(job) for job in jobs]
    with ProcessPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(_run_job, jobs))


def _scaled_tower(tower: TowerDefinition, attribute: str, factor: float) -> TowerDefinition:
    levels = tuple(
        replace(level, **{attribute: getattr(level, attribute) * factor}) if level.level == 1 else level
        for level in tower.levels
    )
    return replace(tower, levels=levels)


def _scaled_enemy(enemy: EnemyDefinition, attribute: str, factor: float) -> EnemyDefinition:
    return replace(enemy, **{attribute: getattr(enemy, attribute) * factor})


def perturbed_configs(config: GameConfig, factor: float) -> List[Tuple[str, str, int, float, GameConfig]]:
    """One cloned config per tunable parameter, that parameter scaled by ``factor``.

    Entries are ``(parameter, target name, target id, baseline value, config)``.
    """
    variants: List[Tuple[str, str, int, float, GameConfig]] = []
    for tower in config.towers:
        base = tower.base_level
        if base is None:
            continue
        for attribute, label in TOWER_PARAMETERS:
            towers = [_scaled_tower(item, attribute, factor) if item.id == tower.id else item for item in config.towers]
            variants.append(
                (f"tower.{label}", tower.name, tower.id, getattr(base, attribute), config.with_changes(towers=towers))
            )
    for enemy in config.enemies:
        for attribute, label in ENEMY_PARAMETERS:
            enemies = [_scaled_enemy(item, attribute, factor) if item.id == enemy.id else item for item in config.enemies]
            variants.append(
                (f"enemy.{label}", enemy.name, enemy.id, getattr(enemy, attribute), config.with_changes(enemies=enemies))
            )
    return variants


def sensitivity_analysis(
    config: GameConfig,
    num_waves: int,
    workers: int = 1,
) -> Tuple[int, List[SensitivityResult]]:
    baseline = _run_job((config, SENSITIVITY_STRATEGY, DEFAULT_SEED, num_waves)).waves_completed
    plus = perturbed_configs(config, 1 + PERTURBATION)
    minus = perturbed_configs(config, 1 - PERTURBATION)
    jobs: List[SimJob] = [(item[4], SENSITIVITY_STRATEGY, DEFAULT_SEED, num_waves) for item in plus + minus]
    outcomes = run_jobs(jobs, workers=workers)
    plus_runs, minus_runs = outcomes[: len(plus)], outcomes[len(plus):]

    results: List[SensitivityResult] = []
    for (parameter, target, target_id, value, _), up, down in zip(plus, plus_runs, minus_runs):
        impact = abs(up.waves_completed - down.waves_completed) / baseline if baseline > 0 else 0.0
        results.append(
            SensitivityResult(
                parameter=parameter,
                target=target,
                target_id=target_id,
                baseline_value=value,
                plus_waves=up.waves_completed,
                minus_waves=down.waves_completed,
                impact=impact,
                direction="buff" if up.waves_completed >= down.waves_completed else "nerf",
            )
        )
    return baseline, results


def detect_issues(
    config: GameConfig,
    run_count: int,
    win_rates: Dict[str, float],
    pick_rates: Dict[int, float],
    leak_rates: Dict[int, float],
) -> List[BalanceIssue]:
    issues: List[BalanceIssue] = []
    configured = [tower for tower in config.towers if tower.is_simulatable]

    def tower_label(tower_id: int) -> str:
        tower = config.tower(tower_id)
        return tower.name if tower is not None else f"Tower {tower_id}"

    for tower_id, rate in pick_rates.items():
        if rate > DOMINANCE_PICK_RATE:
            issues.append(
                BalanceIssue(
                    severity=Severity.HIGH,
                    description=(
                        f"{tower_label(tower_id)} has {rate * 100:.1f}% pick rate (>60%). One tower type dominates."
                    ),
                    details=TowerDominance(tower_id=tower_id, pick_rate=rate),
                )
            )
    if run_count > 0 and len(configured) > 1:
        for tower_id, rate in pick_rates.items():
            if rate < UNDERUSE_PICK_RATE:
                issues.append(
                    BalanceIssue(
                        severity=Severity.MEDIUM,
                        description=(
                            f"{tower_label(tower_id)} has only {rate * 100:.1f}% pick rate (<10%). "
                            "Tower may be underpowered or overpriced."
                        ),
                        details=TowerUnderuse(tower_id=tower_id, pick_rate=rate),
                    )
                )

    for enemy_id, rate in leak_rates.items():
        if rate > LEAK_RATE_LIMIT:
            enemy = config.enemy(enemy_id)
            name = enemy.name if enemy is not None else f"Enemy {enemy_id}"
            issues.append(
                BalanceIssue(
                    severity=Severity.HIGH,
                    description=f"{name} has {rate * 100:.1f}% leak rate (>50%). This enemy escapes too often.",
                    details=EnemyLeak(enemy_id=enemy_id, leak_rate=rate),
                )
            )

    if len(win_rates) > 1:
        highest = max(win_rates.values())
        lowest = min(win_rates.values())
        spread = highest - lowest
        if spread > WIN_RATE_SPREAD_LIMIT:
            issues.append(
                BalanceIssue(
                    severity=Severity.MEDIUM,
                    description=(
                        f"Strategy win rate variance is {spread * 100:.0f}% (>40%). "
                        "Balance may be too dependent on placement strategy."
                    ),
                    details=StrategyVariance(max_rate=highest, min_rate=lowest, variance=spread),
                )
            )
    return issues


def analyze_tier3(
    config: GameConfig,
    num_waves: int,
    sim_runs: int,
    seed: int = DEFAULT_SEED,
    workers: int = 1,
    strategies: Optional[Sequence[str]] = None,
) -> Tier3Result:
    names = list(strategies) if strategies is not None else strategy_names()
    for name in names:
        get_strategy(name)  # fail fast on unknown names

    jobs: List[SimJob] = [
        (config, name, seed + run, num_waves)
        for name in names
        for run in range(sim_runs)
    ]
    logger.info("tier3: %d baseline run(s) across %d strateg(ies)", len(jobs), len(names))
    collector = MetricsCollector(run_jobs(jobs, workers=workers))

    win_rates = collector.win_rate_by_strategy()
    pick_rates = collector.tower_pick_rate(tower.id for tower in config.towers if tower.is_simulatable)
    damage_share = collector.tower_damage_share()
    leak_rates = collector.enemy_leak_rate()

    baseline, sensitivity = sensitivity_analysis(config, num_waves, workers=workers)
    logger.info("tier3: %d sensitivity variant(s), baseline %d wave(s)", len(sensitivity), baseline)

    return Tier3Result(
        runs=tuple(collector.runs),
        seed=seed,
        win_rate_by_strategy=win_rates,
        tower_pick_rate=pick_rates,
        tower_damage_share=damage_share,
        enemy_leak_rate=leak_rates,
        baseline_waves=baseline,
        sensitivity=tuple(sensitivity),
        issues=tuple(detect_issues(config, len(collector), win_rates, pick_rates, leak_rates)),
    )
