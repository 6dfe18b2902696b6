from __future__ import annotations

from dataclasses import replace
import unittest

from payloads import SAMPLE_CONFIG, enemy, group, level, make_config, tower, wave
from towerbalance.analysis import analyze_tier1, analyze_tier2, analyze_tier3
from towerbalance.analysis.cost_efficiency import Tier1Result
from towerbalance.analysis.issues import DETAIL_TYPES, BalanceIssue, EnemyLeak, Overkill, Severity, Unkillable
from towerbalance.config import load_config
from towerbalance.suggestions import generate_suggestions
from towerbalance.suggestions.constraints import (
    ENEMY_DEFINITIONS,
    GAME_SETTINGS,
    TOWER_LEVELS,
    clamp_to_constraint,
    is_within_constraint,
)
from towerbalance.suggestions.engine import (
    _HANDLERS,
    SuggestionTarget,
    bound_value,
    change_percent,
    column_name,
    deduplicate,
    make_suggestion,
    round_for_field,
)


def _by_field(suggestions):
    return {(item.target.table, item.target.id, item.target.field): item for item in suggestions}


class BoundValueTests(unittest.TestCase):
    def test_change_is_capped_at_thirty_percent(self) -> None:
        self.assertEqual(bound_value(ENEMY_DEFINITIONS, "health", 100, 200), 130)
        self.assertEqual(bound_value(ENEMY_DEFINITIONS, "speed", 100, 10), 70)
        self.assertEqual(bound_value(TOWER_LEVELS, "fireRate", 1.0, 2.0), 1.3)

    def test_small_changes_are_rounded_for_the_field(self) -> None:
        self.assertEqual(bound_value(TOWER_LEVELS, "cost", 100, 115.0), 115)
        self.assertEqual(bound_value(TOWER_LEVELS, "cost", 100, 85.0), 85)
        self.assertEqual(bound_value(TOWER_LEVELS, "cost", 10, 11.5), 12)
        self.assertEqual(bound_value(GAME_SETTINGS, "enemyHealthWaveMultiplier", 0.1, 0.1 * 0.9), 0.09)

    def test_values_are_clamped_to_field_domain(self) -> None:
        self.assertEqual(bound_value(TOWER_LEVELS, "range", 480, 480 * 1.1), 500)
        self.assertEqual(clamp_to_constraint(ENEMY_DEFINITIONS, "speed", 5), 10)
        self.assertEqual(clamp_to_constraint("unknown", "field", 5), 5)
        self.assertTrue(is_within_constraint(GAME_SETTINGS, "initialLives", 50))
        self.assertFalse(is_within_constraint(GAME_SETTINGS, "initialLives", 51))

    def test_current_value_outside_domain_is_left_alone(self) -> None:
        # Clamping 5 up to the speed minimum of 10 would be a +100% edit.
        self.assertEqual(bound_value(ENEMY_DEFINITIONS, "speed", 5, 4.5), 5)
        self.assertEqual(bound_value(GAME_SETTINGS, "initialCoins", 20, 18), 20)

    def test_decimal_fields_round_ties_upward(self) -> None:
        self.assertEqual(round_for_field("fireRate", 0.125), 0.13)
        self.assertEqual(round_for_field("fireRate", 2.675), 2.67)  # binary value sits below the tie
        self.assertEqual(bound_value(TOWER_LEVELS, "fireRate", 0.12, 0.125), 0.13)
        self.assertEqual(round_for_field("cost", 12.5), 13)

    def test_column_name(self) -> None:
        self.assertEqual(column_name("fireRate"), "fire_rate")
        self.assertEqual(column_name("enemyHealthWaveMultiplier"), "enemy_health_wave_multiplier")
        self.assertEqual(column_name("cost"), "cost")


class MakeSuggestionTests(unittest.TestCase):
    def test_tower_level_patch_and_rollback(self) -> None:
        suggestion = make_suggestion(
            Severity.HIGH,
            "Increase cost",
            SuggestionTarget(TOWER_LEVELS, 3, "cost", 1),
            100.0,
            115.0,
            "too efficient",
        )

        self.assertEqual(suggestion.current_value, 100)
        self.assertEqual(suggestion.suggested_value, 115)
        self.assertEqual(suggestion.change_percent, 15.0)
        self.assertEqual(suggestion.api_patch.method, "PUT")
        self.assertEqual(suggestion.api_patch.url, "/api/config/towers/3/levels/1")
        self.assertEqual(suggestion.api_patch.body, {"cost": 115})
        self.assertEqual(
            suggestion.rollback_sql,
            "UPDATE tower_levels SET cost = 100 WHERE tower_id = 3 AND level = 1",
        )
        self.assertEqual(suggestion.to_dict()["target"], {"table": "tower_levels", "id": 3, "field": "cost", "level": 1})

    def test_enemy_and_settings_patches(self) -> None:
        health = make_suggestion(
            Severity.MEDIUM, "", SuggestionTarget(ENEMY_DEFINITIONS, 1, "health"), 50.0, 57.5, ""
        )
        scaling = make_suggestion(
            Severity.CRITICAL, "", SuggestionTarget(GAME_SETTINGS, 2, "enemyHealthWaveMultiplier"), 0.1, 0.09, ""
        )

        self.assertEqual((health.api_patch.method, health.api_patch.url), ("PATCH", "/api/config/enemies/1"))
        self.assertEqual(health.suggested_value, 58)
        self.assertEqual(health.rollback_sql, "UPDATE enemy_definitions SET health = 50 WHERE id = 1")
        self.assertEqual((scaling.api_patch.method, scaling.api_patch.url), ("PATCH", "/api/config/settings/2"))
        self.assertEqual(scaling.api_patch.body, {"enemyHealthWaveMultiplier": 0.09})
        self.assertEqual(
            scaling.rollback_sql,
            "UPDATE game_settings SET enemy_health_wave_multiplier = 0.1 WHERE id = 2",
        )


class GenerateSuggestionsTests(unittest.TestCase):
    def test_every_issue_type_has_a_handler(self) -> None:
        self.assertEqual(set(DETAIL_TYPES), set(_HANDLERS))

    def test_impossible_wave_adjusts_wave_scaling(self) -> None:
        config = make_config(
            [tower(1, "Guard", [level(100, 10, 120, 1.0)])],
            [enemy(1, "Brute", 10000, 100, 5)],
            [wave(1, group(1, 1))],
        )
        tier2 = analyze_tier2(config.towers, config.enemies, config.settings, config.waves, 1)

        suggestions = _by_field(generate_suggestions(None, tier2, None, config))

        health = suggestions[(GAME_SETTINGS, 2, "enemyHealthWaveMultiplier")]
        reward = suggestions[(GAME_SETTINGS, 2, "enemyRewardWaveMultiplier")]
        self.assertEqual(health.suggested_value, 0.09)
        self.assertEqual(reward.suggested_value, 0.11)
        self.assertIs(health.priority, Severity.CRITICAL)
        stall = suggestions[(GAME_SETTINGS, 2, "enemyRewardMultiplier")]
        self.assertEqual(stall.suggested_value, 1.1)

    def test_trivial_wave_is_informational(self) -> None:
        config = make_config(
            [tower(1, "Guard", [level(10, 100, 120, 1.0)])],
            [enemy(1, "Gnat", 1, 10, 100)],
            [wave(1, group(1, 1))],
        )
        tier2 = analyze_tier2(config.towers, config.enemies, config.settings, config.waves, 1)

        self.assertEqual(len(tier2.issues), 1)
        self.assertEqual(generate_suggestions(None, tier2, None, config), [])

    def test_spread_and_dominance_target_tower_costs(self) -> None:
        config = make_config(
            [
                tower(1, "Cheap", [level(20, 10, 200, 1.0)]),
                tower(2, "Pricey", [level(100, 10, 200, 1.0)]),
            ],
            [enemy(1, "Pawn", 50, 60, 8)],
        )
        tier1 = analyze_tier1(config.towers, config.enemies, config.settings)

        suggestions = _by_field(generate_suggestions(tier1, None, None, config))

        self.assertEqual(suggestions[(TOWER_LEVELS, 2, "cost")].suggested_value, 70)
        self.assertEqual(suggestions[(TOWER_LEVELS, 1, "cost")].suggested_value, 23)
        for item in suggestions.values():
            self.assertLessEqual(abs(item.change_percent), 30.0)

    def test_unkillable_slows_enemy_and_extends_longest_range(self) -> None:
        config = make_config(
            [
                tower(1, "Short", [level(50, 20, 120, 1.0)]),
                tower(2, "Long", [level(80, 20, 250, 1.0)]),
            ],
            [enemy(1, "Blur", 50, 300, 8)],
        )
        tier1 = analyze_tier1(config.towers, config.enemies, config.settings)

        suggestions = _by_field(generate_suggestions(tier1, None, None, config))

        self.assertEqual(suggestions[(ENEMY_DEFINITIONS, 1, "speed")].suggested_value, 255)
        self.assertEqual(suggestions[(TOWER_LEVELS, 2, "range")].suggested_value, 275)
        self.assertNotIn((TOWER_LEVELS, 1, "range"), suggestions)

    def test_no_op_suggestions_are_dropped(self) -> None:
        config = make_config([tower(1, "Guard", [level(50, 20, 120, 1.0)])], [enemy(1, "Wall", 9999, 60, 8)])
        issue = BalanceIssue(
            severity=Severity.MEDIUM,
            description="overkill",
            details=Overkill(tower_id=1, tower_level=1, enemy_id=1, wave=1, overkill_ratio=4.0),
        )
        tier1 = Tier1Result(tower_metrics=(), matchups=(), dps_spread=1.0, issues=(issue,))

        self.assertEqual(generate_suggestions(tier1, None, None, config), [])

    def test_enemy_far_below_speed_domain_gets_no_speed_edit(self) -> None:
        config = make_config([tower(1, "Guard", [level(50, 20, 120, 1.0)])], [enemy(1, "Crawler", 50, 5, 8)])
        issues = (
            BalanceIssue(Severity.HIGH, "leak", EnemyLeak(enemy_id=1, leak_rate=0.8)),
            BalanceIssue(Severity.CRITICAL, "unkillable", Unkillable(enemy_id=1, wave=1, towers_tested=("Guard",))),
        )
        tier1 = Tier1Result(tower_metrics=(), matchups=(), dps_spread=1.0, issues=issues)

        suggestions = _by_field(generate_suggestions(tier1, None, None, config))

        self.assertNotIn((ENEMY_DEFINITIONS, 1, "speed"), suggestions)
        self.assertEqual(suggestions[(TOWER_LEVELS, 1, "range")].suggested_value, 132)

    def test_deduplicate_keeps_most_severe_and_is_idempotent(self) -> None:
        target = SuggestionTarget(ENEMY_DEFINITIONS, 1, "speed")
        medium = make_suggestion(Severity.MEDIUM, "a", target, 100, 90, "")
        critical = make_suggestion(Severity.CRITICAL, "b", target, 100, 85, "")
        high = make_suggestion(Severity.HIGH, "c", target, 100, 80, "")
        other = make_suggestion(Severity.LOW, "d", SuggestionTarget(ENEMY_DEFINITIONS, 2, "speed"), 100, 90, "")

        once = deduplicate([medium, critical, high, other])

        self.assertEqual(once, [critical, other])
        self.assertEqual(deduplicate(once), once)


class SuggestionBoundTests(unittest.TestCase):
    def _assert_bounded(self, suggestions) -> None:
        for item in suggestions:
            with self.subTest(target=item.target.key):
                self.assertNotEqual(item.suggested_value, item.current_value)
                self.assertLessEqual(abs(change_percent(item.current_value, item.suggested_value)), 30.0 + 1e-6)
                self.assertLessEqual(abs(item.change_percent), 30.0)
                self.assertTrue(is_within_constraint(item.target.table, item.target.field, item.suggested_value))

    def _all_tiers(self, config, num_waves):
        tier1 = analyze_tier1(config.towers, config.enemies, config.settings)
        tier2 = analyze_tier2(config.towers, config.enemies, config.settings, config.waves, num_waves)
        tier3 = analyze_tier3(config, num_waves, sim_runs=1, seed=0, strategies=["balanced", "random"])
        return tier1, tier2, tier3

    def test_sample_config_suggestions_stay_within_bounds(self) -> None:
        config = load_config(SAMPLE_CONFIG, difficulty="hard")

        suggestions = generate_suggestions(*self._all_tiers(config, 3), config)

        self._assert_bounded(suggestions)

    def test_skewed_config_suggestions_stay_within_bounds(self) -> None:
        config = make_config(
            [
                tower(1, "Cheap", [level(20, 10, 200, 1.0)]),
                tower(2, "Pricey", [level(100, 10, 60, 9.9)]),
                tower(3, "Gap", [level(40, 5, 120, 1.0), level(30, 8, 490, 0.12)]),
            ],
            [
                enemy(1, "Blur", 50, 490, 8),
                enemy(2, "Brute", 9000, 100, 1),
                enemy(3, "Crawler", 50, 5, 990),
            ],
            [wave(1, group(1, 2)), wave(2, group(2, 1), group(3, 1))],
            initialCoins=60,
        )
        tier1, tier2, tier3 = self._all_tiers(config, 2)
        extra = (
            BalanceIssue(Severity.HIGH, "leak", EnemyLeak(enemy_id=3, leak_rate=0.9)),
            BalanceIssue(Severity.CRITICAL, "unkillable", Unkillable(enemy_id=3, wave=2, towers_tested=("Cheap",))),
        )
        tier1 = replace(tier1, issues=tier1.issues + extra)

        suggestions = generate_suggestions(tier1, tier2, tier3, config)

        self.assertGreater(len(suggestions), 0)
        self._assert_bounded(suggestions)


if __name__ == "__main__":
    unittest.main()
