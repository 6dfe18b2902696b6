"""Tower-defense balance analysis: simulation, analysis tiers and suggestions."""

from .analysis import (
    BalanceIssue,
    IssueCategory,
    MetricsCollector,
    Severity,
    analyze_tier1,
    analyze_tier2,
    analyze_tier3,
    classify_enemies,
    classify_towers,
)
from .config import ConfigError, load_config
from .models import (
    EnemyDefinition,
    GameConfig,
    GameMode,
    GameSettings,
    ModelError,
    SettingsMode,
    TowerDefinition,
    TowerLevel,
    WaveDefinition,
    WaveGroup,
)
from .provider import ConfigProviderClient, ProviderError
from .report import AnalysisReport, run_analysis
from .simulation import SimulationEngine, SimulationRunResult, get_strategy, simulate, strategy_names
from .suggestions import BalanceSuggestion, apply_suggestions, generate_suggestions

__all__ = [
    "BalanceIssue",
    "IssueCategory",
    "MetricsCollector",
    "Severity",
    "analyze_tier1",
    "analyze_tier2",
    "analyze_tier3",
    "classify_enemies",
    "classify_towers",
    "ConfigError",
    "load_config",
    "EnemyDefinition",
    "GameConfig",
    "GameMode",
    "GameSettings",
    "ModelError",
    "SettingsMode",
    "TowerDefinition",
    "TowerLevel",
    "WaveDefinition",
    "WaveGroup",
    "ConfigProviderClient",
    "ProviderError",
    "AnalysisReport",
    "run_analysis",
    "SimulationEngine",
    "SimulationRunResult",
    "get_strategy",
    "simulate",
    "strategy_names",
    "BalanceSuggestion",
    "apply_suggestions",
    "generate_suggestions",
]
