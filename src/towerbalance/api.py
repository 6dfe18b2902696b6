from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .analysis.cost_efficiency import analyze_tier1
from .analysis.sensitivity import DEFAULT_SEED, analyze_tier3
from .analysis.wave_scaling import analyze_tier2
from .config import ConfigError, config_from_payload
from .models import GameConfig, SettingsMode
from .report import run_analysis
from .simulation.engine import simulate as run_simulation
from .simulation.strategies import StrategyError, get_strategy, strategy_names


app = FastAPI(
    title="Tower Balance API",
    description="Simulation, balance analysis and suggestions for tower-defense configurations.",
    version="1.0.0",
)


class ConfigSnapshot(BaseModel):
    towers: List[Dict[str, Any]] = Field(default_factory=list)
    enemies: List[Dict[str, Any]] = Field(default_factory=list)
    settings: Union[Dict[str, Any], List[Dict[str, Any]]] = Field(..., description="Settings object or list keyed by mode.")
    waves: List[Dict[str, Any]] = Field(default_factory=list)


class ConfigRequest(BaseModel):
    config: ConfigSnapshot
    difficulty: Literal["easy", "normal", "hard", "custom"] = SettingsMode.NORMAL.value


class WavesRequest(ConfigRequest):
    waves: int = Field(default=10, ge=1, le=200)


class SimulateRequest(WavesRequest):
    strategy: str = "balanced"
    seed: int = DEFAULT_SEED


class Tier3Request(WavesRequest):
    sim_runs: int = Field(default=10, ge=0, le=500)
    seed: int = DEFAULT_SEED
    strategies: Optional[List[str]] = None
    include_runs: bool = False


class SuggestionsRequest(WavesRequest):
    tiers: List[Literal[1, 2, 3]] = Field(default_factory=lambda: [1, 2, 3])
    sim_runs: int = Field(default=10, ge=0, le=500)
    seed: int = DEFAULT_SEED


def _config(payload: ConfigRequest) -> GameConfig:
    try:
        return config_from_payload(payload.config.model_dump(), difficulty=payload.difficulty)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid configuration: {exc}") from exc


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/v1/strategies")
def list_strategies() -> Dict[str, List[str]]:
    return {"strategies": strategy_names()}


@app.post("/api/v1/simulate")
def simulate(payload: SimulateRequest) -> Dict[str, Any]:
    config = _config(payload)
    try:
        strategy = get_strategy(payload.strategy, seed=payload.seed)
    except StrategyError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return run_simulation(config, strategy, payload.waves).to_dict()


@app.post("/api/v1/analysis/tier1")
def tier1(payload: ConfigRequest) -> Dict[str, Any]:
    config = _config(payload)
    return analyze_tier1(config.towers, config.enemies, config.settings).to_dict()


@app.post("/api/v1/analysis/tier2")
def tier2(payload: WavesRequest) -> Dict[str, Any]:
    config = _config(payload)
    return analyze_tier2(config.towers, config.enemies, config.settings, config.waves, payload.waves).to_dict()


@app.post("/api/v1/analysis/tier3")
def tier3(payload: Tier3Request) -> Dict[str, Any]:
    config = _config(payload)
    try:
        result = analyze_tier3(
            config,
            payload.waves,
            payload.sim_runs,
            seed=payload.seed,
            strategies=payload.strategies,
        )
    except StrategyError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return result.to_dict(include_runs=payload.include_runs)


@app.post("/api/v1/suggestions")
def suggestions(payload: SuggestionsRequest) -> Dict[str, Any]:
    config = _config(payload)
    report = run_analysis(
        config,
        tiers=payload.tiers,
        num_waves=payload.waves,
        sim_runs=payload.sim_runs,
        seed=payload.seed,
    )
    return {
        "issues": [issue.to_dict() for issue in report.issues],
        "suggestions": [item.to_dict() for item in report.suggestions],
    }
