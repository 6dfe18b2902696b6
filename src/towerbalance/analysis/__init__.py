"""Static and simulation-backed balance analyses."""

from .classifier import EnemyArchetype, TowerRole, classify_enemies, classify_towers
from .cost_efficiency import Tier1Result, analyze_tier1
from .issues import BalanceIssue, IssueCategory, Severity
from .metrics import MetricsCollector
from .sensitivity import SensitivityResult, Tier3Result, analyze_tier3
from .wave_scaling import Tier2Result, WaveAnalysis, analyze_tier2

__all__ = [
    "EnemyArchetype",
    "TowerRole",
    "classify_enemies",
    "classify_towers",
    "Tier1Result",
    "analyze_tier1",
    "BalanceIssue",
    "IssueCategory",
    "Severity",
    "MetricsCollector",
    "SensitivityResult",
    "Tier3Result",
    "analyze_tier3",
    "Tier2Result",
    "WaveAnalysis",
    "analyze_tier2",
]
