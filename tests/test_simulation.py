from __future__ import annotations

import unittest

from payloads import (
    SAMPLE_CONFIG,
    basic_config,
    basic_payload,
    enemy,
    gapped_tower,
    group,
    level,
    make_config,
    tower,
    wave,
)
from towerbalance.config import load_config
from towerbalance.models import GameConfig
from towerbalance.rules import is_buildable_cell
from towerbalance.simulation import (
    ActionType,
    SimState,
    SimulationEngine,
    StrategyAction,
    StrategyError,
    apply_actions,
    get_strategy,
    simulate,
    strategy_names,
)


class ApplyActionsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = basic_config()
        self.state = SimState.initial(self.config.settings)

    def test_build_upgrade_and_sell_track_investment(self) -> None:
        built = apply_actions(self.state, self.config, [StrategyAction.build(1, 3, 3)])
        self.assertEqual(built.towers_built, 1)
        self.assertEqual(built.coins_spent, 50)
        self.assertEqual(self.state.coins, 150)
        tower = self.state.tower_at(3, 3)
        self.assertIsNotNone(tower)
        self.assertEqual(tower.total_invested, 50)

        upgraded = apply_actions(self.state, self.config, [StrategyAction.upgrade(tower.id)])
        self.assertEqual(upgraded.towers_upgraded, 1)
        self.assertEqual(tower.level, 2)
        self.assertEqual(tower.damage, 28)
        self.assertEqual(tower.total_invested, 90)
        self.assertEqual(self.state.coins, 110)

        sold = apply_actions(self.state, self.config, [StrategyAction.sell(tower.id)])
        self.assertEqual(sold.coins_refunded, 63)
        self.assertEqual(self.state.coins, 173)
        self.assertEqual(self.state.towers, [])

    def test_sell_refunds_seventy_percent_rounded_down(self) -> None:
        apply_actions(self.state, self.config, [StrategyAction.build(1, 8, 2)])
        tower = self.state.towers[0]

        outcome = apply_actions(self.state, self.config, [StrategyAction.sell(tower.id)])

        self.assertEqual(outcome.coins_refunded, 35)
        self.assertEqual(self.state.coins, 185)

    def test_invalid_builds_are_skipped(self) -> None:
        actions = [
            StrategyAction.build(1, 5, 4),
            StrategyAction.build(1, 5, 5),
            StrategyAction.build(1, 25, 0),
            StrategyAction.build(99, 1, 1),
            StrategyAction.build(1, 2, 2),
            StrategyAction.build(2, 2, 2),
        ]

        outcome = apply_actions(self.state, self.config, actions)

        self.assertEqual(outcome.towers_built, 1)
        self.assertEqual(len(self.state.towers), 1)
        self.assertEqual(self.state.coins, 150)

    def test_unaffordable_and_max_level_upgrades_are_skipped(self) -> None:
        apply_actions(self.state, self.config, [StrategyAction.build(2, 1, 1)])
        tower = self.state.towers[0]

        outcome = apply_actions(self.state, self.config, [StrategyAction.upgrade(tower.id)])
        self.assertEqual(outcome.towers_upgraded, 0)
        self.assertEqual(tower.level, 1)

        self.state.coins = 1000
        apply_actions(self.state, self.config, [StrategyAction.upgrade(tower.id)])
        capped = apply_actions(self.state, self.config, [StrategyAction.upgrade(tower.id)])
        self.assertEqual(tower.level, 2)
        self.assertEqual(capped.towers_upgraded, 0)

    def test_missing_targets_are_ignored(self) -> None:
        outcome = apply_actions(
            self.state,
            self.config,
            [StrategyAction.upgrade(42), StrategyAction.sell(42), StrategyAction(type=ActionType.NONE)],
        )
        self.assertEqual(outcome.coins_spent, 0)
        self.assertEqual(outcome.coins_refunded, 0)
        self.assertEqual(self.state.coins, 200)


class StrategyTests(unittest.TestCase):
    def test_registry_lists_all_strategies(self) -> None:
        self.assertEqual(
            sorted(strategy_names()),
            ["balanced", "path-adjacent", "random", "rapid-fire", "sniper-heavy"],
        )
        with self.assertRaises(StrategyError):
            get_strategy("turtle")

    def test_proposed_actions_respect_board_and_budget(self) -> None:
        config = load_config(SAMPLE_CONFIG)
        for name in strategy_names():
            with self.subTest(strategy=name):
                state = SimState.initial(config.settings)
                actions = get_strategy(name, seed=3).decide_actions(state, config.towers, config.settings)
                builds = [action for action in actions if action.type is ActionType.BUILD]
                self.assertGreater(len(builds), 0)

                cells = [(action.grid_x, action.grid_y) for action in builds]
                self.assertEqual(len(cells), len(set(cells)))
                for grid_x, grid_y in cells:
                    self.assertTrue(is_buildable_cell(grid_x, grid_y))

                outcome = apply_actions(state, config, actions)
                self.assertEqual(outcome.towers_built, len(builds))
                self.assertGreaterEqual(state.coins, 0)

    def test_sniper_and_rapid_fire_prefer_their_stat(self) -> None:
        config = load_config(SAMPLE_CONFIG)
        for name, expected in (("sniper-heavy", 2), ("rapid-fire", 3)):
            with self.subTest(strategy=name):
                state = SimState.initial(config.settings)
                actions = get_strategy(name).decide_actions(state, config.towers, config.settings)
                self.assertEqual(actions[0].tower_id, expected)

    def test_towers_with_missing_levels_are_never_built(self) -> None:
        config = make_config(
            [tower(1, "Guard", [level(50, 20, 120, 1.0)]), gapped_tower(2, "Broken")],
            [enemy(1, "Pawn", 50, 60, 8)],
        )
        for name in strategy_names():
            with self.subTest(strategy=name):
                state = SimState.initial(config.settings)
                actions = get_strategy(name, seed=2).decide_actions(state, config.towers, config.settings)
                self.assertGreater(len(actions), 0)
                self.assertEqual({action.tower_id for action in actions}, {1})

    def test_strategies_do_nothing_without_towers(self) -> None:
        payload = basic_payload()
        payload["towers"] = []
        config = GameConfig.from_dict(payload)
        state = SimState.initial(config.settings)
        for name in strategy_names():
            with self.subTest(strategy=name):
                self.assertEqual(get_strategy(name, seed=1).decide_actions(state, config.towers, config.settings), [])


class SimulationEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = load_config(SAMPLE_CONFIG)

    def test_deterministic_strategy_is_reproducible(self) -> None:
        first = simulate(self.config, get_strategy("balanced"), 10)
        second = simulate(self.config, get_strategy("balanced"), 10)

        self.assertEqual(first.to_dict(), second.to_dict())
        self.assertEqual(first.strategy, "balanced")
        self.assertEqual(first.difficulty, "normal")

    def test_seeded_random_strategy_is_reproducible(self) -> None:
        first = simulate(self.config, get_strategy("random", seed=11), 5)
        second = simulate(self.config, get_strategy("random", seed=11), 5)

        self.assertEqual(first.to_dict(), second.to_dict())

    def test_coins_are_conserved_across_waves(self) -> None:
        for name in strategy_names():
            with self.subTest(strategy=name):
                result = simulate(self.config, get_strategy(name, seed=5), 10)
                spent = sum(item.coins_spent for item in result.per_wave_metrics)
                refunded = sum(item.coins_refunded for item in result.per_wave_metrics)
                earned = sum(item.coins_earned for item in result.per_wave_metrics)

                self.assertEqual(
                    self.config.settings.initial_coins - spent + refunded + earned,
                    result.final_coins,
                )

    def test_lives_track_escapes_across_waves(self) -> None:
        waves = [wave(number, group(1, 3, 400)) for number in (1, 2, 3, 4)]
        for initial_lives in (30, 7):
            with self.subTest(initial_lives=initial_lives):
                config = make_config(
                    [tower(1, "Pebble", [level(50, 1, 120, 0.5)])],
                    [enemy(1, "Runner", 60, 200, 5)],
                    waves,
                    initialLives=initial_lives,
                )

                result = SimulationEngine(config, get_strategy("balanced"), 4).run()

                per_wave = [item.enemies_escaped for item in result.per_wave_metrics]
                self.assertGreater(result.enemies_escaped, 0)
                self.assertEqual(result.enemies_escaped, sum(per_wave))
                self.assertEqual(result.lives_remaining, max(0, initial_lives - result.enemies_escaped))

        self.assertEqual(result.lives_remaining, 0)
        self.assertLess(result.waves_completed, 4)
        self.assertFalse(result.won)

    def test_run_result_invariants(self) -> None:
        result = simulate(self.config, get_strategy("balanced"), 10)

        self.assertLessEqual(result.waves_completed, result.total_waves)
        self.assertEqual(len(result.per_wave_metrics), result.waves_completed)
        self.assertGreaterEqual(result.lives_remaining, 0)
        for item in result.per_wave_metrics:
            self.assertLessEqual(item.enemies_killed + item.enemies_escaped, item.enemies_spawned)
        if result.tower_damage_share:
            self.assertAlmostEqual(sum(result.tower_damage_share.values()), 1.0)
        for rate in result.enemy_leak_rate.values():
            self.assertGreaterEqual(rate, 0.0)
            self.assertLessEqual(rate, 1.0)
        self.assertEqual(result.won, result.waves_completed == 10 and result.lives_remaining > 0)

    def test_no_waves_produces_empty_run(self) -> None:
        payload = basic_payload()
        payload["waves"] = []
        config = GameConfig.from_dict(payload)

        result = simulate(config, get_strategy("balanced"), 10)

        self.assertEqual(result.waves_completed, 0)
        self.assertEqual(result.per_wave_metrics, ())
        self.assertEqual(result.final_coins, 200)
        self.assertEqual(result.lives_remaining, 10)
        self.assertFalse(result.won)

    def test_waves_beyond_authored_reuse_last_composition(self) -> None:
        result = simulate(basic_config(initialLives=100), get_strategy("balanced"), 5)

        spawned = [item.enemies_spawned for item in result.per_wave_metrics]
        self.assertEqual(spawned, [6, 5, 3, 3, 3])


if __name__ == "__main__":
    unittest.main()
