"""Tick-based match simulator and the strategies that drive it."""

from .combat import CombatSink, SpawnEntry, WaveScaling, WaveTally, build_spawn_queue, run_wave
from .engine import SimulationEngine, apply_actions, simulate
from .state import (
    ActionType,
    SimEnemy,
    SimProjectile,
    SimState,
    SimTower,
    SimulationRunResult,
    StrategyAction,
    WaveSimMetrics,
)
from .strategies import Strategy, StrategyError, get_strategy, strategy_names

__all__ = [
    "CombatSink",
    "SpawnEntry",
    "WaveScaling",
    "WaveTally",
    "build_spawn_queue",
    "run_wave",
    "SimulationEngine",
    "apply_actions",
    "simulate",
    "ActionType",
    "SimEnemy",
    "SimProjectile",
    "SimState",
    "SimTower",
    "SimulationRunResult",
    "StrategyAction",
    "WaveSimMetrics",
    "Strategy",
    "StrategyError",
    "get_strategy",
    "strategy_names",
]
