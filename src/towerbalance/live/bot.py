"""Plays a real game session with a strategy, scoring each wave locally."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..models import GameConfig, GameMode, ModelError, WaveDefinition
from ..rules import build_price, cell_center
from ..simulation.combat import WaveScaling, build_spawn_queue, run_wave
from ..simulation.state import ActionType, SimState, SimTower, StrategyAction
from ..simulation.strategies import Strategy
from .client import GamePlayClient, GameSessionError


logger = logging.getLogger(__name__)

GridKey = Tuple[int, int]


@dataclass(slots=True, frozen=True)
class BotRunResult:
    game_id: str
    strategy: str
    difficulty: str
    game_mode: str
    waves_completed: int
    total_waves: int
    enemies_killed: int
    enemies_escaped: int
    lives_remaining: int
    final_coins: int
    outcome: str

    @property
    def won(self) -> bool:
        return self.outcome == "win"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GameBot:
    """Drives one session on the game server.

    The server owns coins, lives and towers; combat is not simulated there,
    so every wave is played locally with the shared combat loop and the
    outcome is reported back as coin grants and lost lives.
    """

    def __init__(
        self,
        client: GamePlayClient,
        config: GameConfig,
        strategy: Strategy,
        num_waves: int,
        game_mode: str = GameMode.TEN_WAVES.value,
    ) -> None:
        self.client = client
        self.config = config
        self.strategy = strategy
        self.num_waves = num_waves
        self.game_mode = game_mode

    @property
    def difficulty(self) -> str:
        return self.config.settings.mode

    def play(self) -> BotRunResult:
        start = self.client.start_game(self.game_mode, self.difficulty)
        game_id = str(start["gameId"])
        logger.info("started game %s (%s, %s)", game_id, self.game_mode, self.difficulty)

        killed = 0
        escaped = 0
        waves_completed = 0
        state = self.to_sim_state(self.client.get_game_state(game_id))

        for wave_number in range(1, self.num_waves + 1):
            state.wave = wave_number
            actions = self.strategy.decide_actions(state, self.config.towers, self.config.settings)
            rejected = self.execute_actions(game_id, state, actions)
            if rejected:
                logger.info("wave %d: %d action(s) rejected by the server", wave_number, len(rejected))

            state = self.to_sim_state(self.client.get_game_state(game_id))
            state.wave = wave_number
            try:
                started = self.client.start_wave(game_id)
            except GameSessionError as exc:
                logger.warning("wave %d failed to start: %s", wave_number, exc)
                break

            server_wave = int(started.get("wave", wave_number))
            definition = self._wave_definition(started, server_wave)
            if definition is None:
                logger.warning("wave %d has no definition, stopping", server_wave)
                break

            settings = replace(
                self.config.settings,
                enemy_health_wave_multiplier=float(
                    started.get("enemyHealthWaveMultiplier", self.config.settings.enemy_health_wave_multiplier)
                ),
                enemy_reward_wave_multiplier=float(
                    started.get("enemyRewardWaveMultiplier", self.config.settings.enemy_reward_wave_multiplier)
                ),
            )
            source = WaveScaling(self.config.enemy_index, settings, server_wave)
            tally = run_wave(state, build_spawn_queue(definition), source)
            killed += tally.enemies_killed
            escaped += tally.enemies_escaped

            if tally.coins_earned > 0:
                self.client.add_coins(game_id, tally.coins_earned)
            game_over = False
            for _ in range(tally.enemies_escaped):
                if self.client.lose_life(game_id).get("gameOver"):
                    game_over = True
                    break

            logger.info(
                "wave %d: killed=%d escaped=%d reward=%d",
                wave_number,
                tally.enemies_killed,
                tally.enemies_escaped,
                tally.coins_earned,
            )
            waves_completed = wave_number

            snapshot = self.client.get_game_state(game_id)
            if game_over or snapshot.get("isOver") or int(snapshot.get("lives", 0)) <= 0:
                logger.info("game over after wave %d", wave_number)
                break
            state = self.to_sim_state(snapshot)

        final = self.client.get_game_state(game_id)
        lives = int(final.get("lives", 0))
        outcome = "win" if lives > 0 and waves_completed >= self.num_waves else "lose"
        self.client.end_game(game_id, waves_completed, killed, outcome)
        logger.info("game %s finished: %s after %d/%d waves", game_id, outcome, waves_completed, self.num_waves)

        return BotRunResult(
            game_id=game_id,
            strategy=self.strategy.name,
            difficulty=self.difficulty,
            game_mode=self.game_mode,
            waves_completed=waves_completed,
            total_waves=self.num_waves,
            enemies_killed=killed,
            enemies_escaped=escaped,
            lives_remaining=max(lives, 0),
            final_coins=int(final.get("coins", 0)),
            outcome=outcome,
        )

    def _wave_definition(self, started: Mapping[str, Any], wave_number: int) -> Optional[WaveDefinition]:
        groups = started.get("enemies")
        if groups:
            try:
                return WaveDefinition.from_dict({"waveNumber": wave_number, "enemies": groups})
            except ModelError as exc:
                logger.debug("server wave %d composition unusable (%s), using local waves", wave_number, exc)
        return self.config.wave_for(wave_number)

    def _invested(self, tower_id: int, level: int) -> int:
        definition = self.config.tower(tower_id)
        if definition is None:
            return 0
        settings = self.config.settings
        return sum(build_price(item.cost, settings) for item in definition.levels if item.level <= level)

    def to_sim_state(self, game_state: Mapping[str, Any]) -> SimState:
        """Rebuild a strategy-facing state from a server snapshot."""
        towers = []
        usage: Dict[int, int] = {}
        for index, item in enumerate(game_state.get("towers", []), start=1):
            tower_id = int(item["towerId"])
            grid_x = int(item["gridX"])
            grid_y = int(item["gridY"])
            level = int(item.get("level", 1))
            definition = self.config.tower(tower_id)
            stats = definition.level(level) if definition is not None else None
            x, y = cell_center(grid_x, grid_y)
            towers.append(
                SimTower(
                    id=index,
                    tower_id=tower_id,
                    grid_x=grid_x,
                    grid_y=grid_y,
                    x=x,
                    y=y,
                    level=level,
                    damage=stats.damage if stats is not None else 0.0,
                    range=stats.range if stats is not None else 0.0,
                    fire_rate=stats.fire_rate if stats is not None else 0.0,
                    total_invested=self._invested(tower_id, level),
                )
            )
            usage[tower_id] = usage.get(tower_id, 0) + 1

        return SimState(
            coins=int(game_state.get("coins", 0)),
            lives=int(game_state.get("lives", 0)),
            towers=towers,
            wave=int(game_state.get("wave", 0)),
            next_tower_id=len(towers) + 1,
            tower_usage=usage,
        )

    def execute_actions(
        self, game_id: str, state: SimState, actions: Sequence[StrategyAction]
    ) -> List[StrategyAction]:
        """Send strategy actions to the server, mapping instances to server ids by grid cell.

        Returns the actions the server rejected or answered without a usable result.
        """
        failed: List[StrategyAction] = []
        snapshot = self.client.get_game_state(game_id)
        server_ids: Dict[GridKey, str] = {
            (int(item["gridX"]), int(item["gridY"])): str(item["id"]) for item in snapshot.get("towers", [])
        }
        coins = int(snapshot.get("coins", 0))

        for action in actions:
            if action.type is ActionType.BUILD:
                if action.tower_id is None or action.grid_x is None or action.grid_y is None:
                    continue
                definition = self.config.tower(action.tower_id)
                base = definition.base_level if definition is not None else None
                if base is None or coins < build_price(base.cost, self.config.settings):
                    continue
                try:
                    response = self.client.build_tower(game_id, action.tower_id, action.grid_x, action.grid_y)
                except GameSessionError as exc:
                    logger.warning("build failed: %s", exc)
                    failed.append(action)
                    continue
                coins = int(response.get("coins", coins))
                placed = response.get("tower")
                server_id = placed.get("id") if isinstance(placed, dict) else None
                if server_id is None:
                    logger.warning("build at (%d, %d) returned no tower id", action.grid_x, action.grid_y)
                    failed.append(action)
                    continue
                server_ids[(action.grid_x, action.grid_y)] = str(server_id)
                logger.debug("built %s at (%d, %d)", definition.name, action.grid_x, action.grid_y)

            elif action.type in (ActionType.UPGRADE, ActionType.SELL):
                if action.target_instance_id is None:
                    continue
                tower = state.find_tower(action.target_instance_id)
                if tower is None:
                    continue
                key = (tower.grid_x, tower.grid_y)
                server_id = server_ids.get(key)
                if server_id is None:
                    continue
                try:
                    if action.type is ActionType.UPGRADE:
                        response = self.client.upgrade_tower(game_id, server_id)
                    else:
                        response = self.client.sell_tower(game_id, server_id)
                        server_ids.pop(key, None)
                except GameSessionError as exc:
                    logger.warning("%s failed: %s", action.type.value, exc)
                    failed.append(action)
                    continue
                coins = int(response.get("coins", coins))
                logger.debug("%s tower at (%d, %d)", action.type.value, tower.grid_x, tower.grid_y)
