from __future__ import annotations

import unittest

from payloads import SAMPLE_CONFIG, basic_config
from towerbalance.analysis import IssueCategory, MetricsCollector, analyze_tier3
from towerbalance.analysis.sensitivity import (
    DEFAULT_SEED,
    detect_issues,
    perturbed_configs,
    run_jobs,
)
from towerbalance.config import load_config
from towerbalance.simulation import SimulationRunResult, StrategyError


def _run(strategy, waves_completed, lives, usage, damage, leaks):
    return SimulationRunResult(
        strategy=strategy,
        difficulty="normal",
        waves_completed=waves_completed,
        total_waves=10,
        enemies_killed=0,
        enemies_escaped=0,
        lives_remaining=lives,
        final_coins=0,
        tower_usage=usage,
        tower_damage_share=damage,
        enemy_leak_rate=leaks,
        per_wave_metrics=(),
    )


class MetricsCollectorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.collector = MetricsCollector(
            [
                _run("balanced", 10, 5, {1: 3}, {1: 1.0}, {1: 0.5}),
                _run("balanced", 4, 0, {1: 1, 2: 4}, {1: 0.2, 2: 0.8}, {1: 0.0, 2: 1.0}),
                _run("random", 10, 1, {2: 2}, {2: 1.0}, {}),
            ]
        )

    def test_win_rates(self) -> None:
        self.assertEqual(self.collector.win_rate_by_strategy(), {"balanced": 0.5, "random": 1.0})

    def test_pick_rate_includes_unused_towers(self) -> None:
        rates = self.collector.tower_pick_rate([1, 2, 3])

        self.assertEqual(rates, {1: 0.4, 2: 0.6, 3: 0.0})

    def test_per_run_averages_count_missing_entries_as_zero(self) -> None:
        damage = self.collector.tower_damage_share()
        leaks = self.collector.enemy_leak_rate()

        self.assertAlmostEqual(damage[1], 0.4)
        self.assertAlmostEqual(damage[2], 0.6)
        self.assertAlmostEqual(leaks[1], 0.5 / 3)
        self.assertAlmostEqual(leaks[2], 1.0 / 3)

    def test_empty_collector(self) -> None:
        collector = MetricsCollector()

        self.assertEqual(len(collector), 0)
        self.assertEqual(collector.win_rate_by_strategy(), {})
        self.assertEqual(collector.tower_pick_rate([1]), {1: 0.0})
        self.assertEqual(collector.enemy_leak_rate(), {})


class Tier3IssueTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = load_config(SAMPLE_CONFIG)

    def test_thresholds(self) -> None:
        issues = detect_issues(
            self.config,
            run_count=5,
            win_rates={"balanced": 1.0, "random": 0.5, "rapid-fire": 0.2},
            pick_rates={1: 0.7, 2: 0.3, 3: 0.0},
            leak_rates={4: 0.6, 5: 0.5},
        )
        found = {(issue.category, getattr(issue.details, "tower_id", getattr(issue.details, "enemy_id", None))) for issue in issues}

        self.assertIn((IssueCategory.TOWER_DOMINANCE, 1), found)
        self.assertIn((IssueCategory.TOWER_UNDERUSE, 3), found)
        self.assertNotIn((IssueCategory.TOWER_UNDERUSE, 2), found)
        self.assertIn((IssueCategory.ENEMY_LEAK, 4), found)
        self.assertNotIn((IssueCategory.ENEMY_LEAK, 5), found)
        variance = [issue for issue in issues if issue.category is IssueCategory.STRATEGY_VARIANCE]
        self.assertEqual(len(variance), 1)
        self.assertAlmostEqual(variance[0].details.variance, 0.8)

    def test_no_underuse_without_runs(self) -> None:
        issues = detect_issues(self.config, run_count=0, win_rates={}, pick_rates={1: 0.0, 2: 0.0}, leak_rates={})

        self.assertEqual(issues, [])

    def test_no_underuse_with_single_tower_type(self) -> None:
        config = self.config.with_changes(towers=self.config.towers[:1])

        issues = detect_issues(config, run_count=3, win_rates={"balanced": 0.0}, pick_rates={1: 0.05}, leak_rates={})

        self.assertEqual(issues, [])


class Tier3RunTests(unittest.TestCase):
    def test_perturbed_configs_cover_every_parameter(self) -> None:
        config = basic_config()

        variants = perturbed_configs(config, 1.1)

        self.assertEqual(len(variants), 2 * 3 + 2 * 2)
        parameter, target, target_id, baseline, changed = variants[0]
        self.assertEqual((parameter, target, target_id, baseline), ("tower.damage", "Guard", 1, 20.0))
        self.assertAlmostEqual(changed.tower(1).base_level.damage, 22.0)
        self.assertEqual(changed.tower(1).level(2).damage, 28.0)
        self.assertEqual(config.tower(1).base_level.damage, 20.0)
        speed = next(item for item in variants if item[0] == "enemy.speed" and item[2] == 2)
        self.assertAlmostEqual(speed[4].enemy(2).speed, 55.0)

    def test_analyze_tier3_small_sweep(self) -> None:
        config = basic_config()

        result = analyze_tier3(config, num_waves=2, sim_runs=2, seed=4, strategies=["balanced", "random"])

        self.assertEqual([run.strategy for run in result.runs], ["balanced", "balanced", "random", "random"])
        self.assertEqual(set(result.win_rate_by_strategy), {"balanced", "random"})
        self.assertEqual(set(result.tower_pick_rate), {1, 2})
        self.assertEqual(len(result.sensitivity), 10)
        for item in result.sensitivity:
            self.assertGreaterEqual(item.impact, 0.0)
            self.assertIn(item.direction, {"buff", "nerf"})
        payload = result.to_dict()
        self.assertEqual(payload["run_count"], 4)
        self.assertNotIn("runs", payload)
        self.assertEqual(len(result.to_dict(include_runs=True)["runs"]), 4)

    def test_seeded_sweep_is_reproducible(self) -> None:
        config = basic_config()

        first = analyze_tier3(config, num_waves=2, sim_runs=2, seed=9, strategies=["random"])
        second = analyze_tier3(config, num_waves=2, sim_runs=2, seed=9, strategies=["random"])

        self.assertEqual(first.to_dict(include_runs=True), second.to_dict(include_runs=True))

    def test_default_seed_replays_and_is_recorded(self) -> None:
        config = basic_config()

        first = analyze_tier3(config, num_waves=2, sim_runs=3, strategies=["random"])
        second = analyze_tier3(config, num_waves=2, sim_runs=3, strategies=["random"])
        explicit = analyze_tier3(config, num_waves=2, sim_runs=3, seed=DEFAULT_SEED, strategies=["random"])

        self.assertEqual(first.seed, 0)
        self.assertEqual(first.to_dict()["seed"], 0)
        self.assertEqual(first.to_dict(include_runs=True), second.to_dict(include_runs=True))
        self.assertEqual(first.to_dict(include_runs=True), explicit.to_dict(include_runs=True))

    def test_unknown_strategy_fails_before_running(self) -> None:
        with self.assertRaises(StrategyError):
            analyze_tier3(basic_config(), num_waves=2, sim_runs=1, strategies=["turtle"])

    def test_parallel_jobs_keep_order(self) -> None:
        config = basic_config()
        jobs = [(config, name, 1, 2) for name in ("balanced", "sniper-heavy", "rapid-fire")]

        serial = run_jobs(jobs, workers=1)
        parallel = run_jobs(jobs, workers=2)

        self.assertEqual([run.to_dict() for run in serial], [run.to_dict() for run in parallel])


if __name__ == "__main__":
    unittest.main()
