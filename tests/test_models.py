from __future__ import annotations

import json
import unittest

from payloads import SAMPLE_CONFIG, basic_config, basic_payload, enemy, gapped_tower, level, make_config, settings, tower
from towerbalance.models import GameConfig, ModelError, select_settings
from towerbalance.rules import (
    GRID_SIZE,
    build_price,
    cell_center,
    is_buildable_cell,
    round_half_up,
    scaled_health,
    scaled_reward,
    scaled_speed,
)


class GameConfigParsingTests(unittest.TestCase):
    def test_parses_camel_case_payload(self) -> None:
        config = basic_config()

        self.assertEqual([tower.name for tower in config.towers], ["Guard", "Lancer"])
        guard = config.tower(1)
        self.assertIsNotNone(guard)
        self.assertEqual(guard.max_level, 3)
        self.assertEqual(guard.base_level.cost, 50.0)
        self.assertAlmostEqual(guard.level(2).dps, 28 * 1.1)
        self.assertEqual(config.enemy(2).name, "Rook")
        self.assertEqual(config.settings.initial_coins, 200)
        self.assertEqual([wave.wave_number for wave in config.waves], [1, 2, 3])
        self.assertEqual(config.waves[1].enemies[1].enemy_id, 2)

    def test_settings_list_is_resolved_by_difficulty(self) -> None:
        payload = json.loads(SAMPLE_CONFIG.read_text(encoding="utf-8"))

        self.assertEqual(GameConfig.from_dict(payload, "hard").settings.initial_coins, 150)
        self.assertEqual(GameConfig.from_dict(payload, "easy").settings.initial_lives, 15)
        self.assertEqual(GameConfig.from_dict(payload).settings.mode, "normal")

    def test_missing_difficulty_in_settings_list_is_rejected(self) -> None:
        with self.assertRaises(ModelError):
            select_settings([settings(mode="easy"), settings(mode="hard")], "normal")

    def test_single_settings_entry_is_used_for_any_difficulty(self) -> None:
        chosen = select_settings([settings(mode="custom")], "hard")
        self.assertEqual(chosen["mode"], "custom")

    def test_negative_multiplier_is_rejected(self) -> None:
        payload = basic_payload()
        payload["settings"] = settings(towerCostMultiplier=-0.5)

        with self.assertRaises(ModelError) as ctx:
            GameConfig.from_dict(payload)
        self.assertIn("towerCostMultiplier", str(ctx.exception))

    def test_non_numeric_field_is_rejected(self) -> None:
        payload = basic_payload()
        payload["enemies"][0]["health"] = "lots"

        with self.assertRaises(ModelError):
            GameConfig.from_dict(payload)

    def test_missing_settings_is_rejected(self) -> None:
        payload = basic_payload()
        del payload["settings"]

        with self.assertRaises(ModelError):
            GameConfig.from_dict(payload)

    def test_wave_lookup_reuses_last_authored_wave(self) -> None:
        config = basic_config()

        self.assertEqual(config.wave_for(2).wave_number, 2)
        self.assertEqual(config.wave_for(7).wave_number, 3)
        self.assertIs(config.wave_for(7), config.waves[-1])

    def test_simulatable_needs_every_level_up_to_max(self) -> None:
        config = make_config(
            [
                tower(1, "Guard", [level(50, 20, 120, 1.0), level(40, 28, 120, 1.1)]),
                gapped_tower(2, "Broken"),
                tower(3, "Tall", [level(50, 20, 120, 1.0)], max_level=2),
            ],
            [enemy(1, "Pawn", 50, 60, 8)],
        )

        self.assertTrue(config.tower(1).is_simulatable)
        self.assertFalse(config.tower(2).is_simulatable)
        self.assertIsNotNone(config.tower(2).base_level)
        self.assertFalse(config.tower(3).is_simulatable)

    def test_with_changes_keeps_waves_and_rebuilds_index(self) -> None:
        config = basic_config()
        changed = config.with_changes(towers=config.towers[:1])

        self.assertEqual(changed.waves, config.waves)
        self.assertIsNone(changed.tower(2))
        self.assertIsNotNone(config.tower(2))


class RulesTests(unittest.TestCase):
    def test_round_half_up_rounds_halves_upward(self) -> None:
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(3.5), 4)
        self.assertEqual(round_half_up(2.49), 2)
        self.assertEqual(round_half_up(0.0), 0)

    def test_wave_scaling_formulas(self) -> None:
        config = basic_config()
        profile = config.settings

        self.assertEqual(scaled_health(50, 1, profile), 55)
        self.assertEqual(scaled_health(50, 10, profile), 100)
        self.assertEqual(scaled_reward(8, 5, profile), 12)
        self.assertEqual(scaled_speed(60, profile), 60.0)
        self.assertEqual(build_price(49.5, profile), 50)

    def test_buildable_cells_exclude_path_rows_and_out_of_bounds(self) -> None:
        self.assertTrue(is_buildable_cell(0, 0))
        self.assertTrue(is_buildable_cell(19, 9))
        self.assertFalse(is_buildable_cell(5, 4))
        self.assertFalse(is_buildable_cell(5, 5))
        self.assertFalse(is_buildable_cell(20, 0))
        self.assertFalse(is_buildable_cell(-1, 3))
        self.assertFalse(is_buildable_cell(0, 10))

    def test_cell_center(self) -> None:
        self.assertEqual(GRID_SIZE, 54.0)
        self.assertEqual(cell_center(0, 0), (27.0, 27.0))
        self.assertEqual(cell_center(2, 3), (135.0, 189.0))


if __name__ == "__main__":
    unittest.main()
