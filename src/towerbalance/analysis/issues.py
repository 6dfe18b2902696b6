"""Balance issues reported by the analysis tiers.

Each category carries its own frozen payload type; :class:`BalanceIssue`
derives its category from the payload so the two can never disagree.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Tuple, Union

from ..models import _stabilize_numeric_payload


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def ordinal(self) -> int:
        return _SEVERITY_ORDER[self]


_SEVERITY_ORDER = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}


class IssueCategory(str, Enum):
    DPS_COST_SPREAD = "dps-cost-spread"
    OVERKILL = "overkill"
    UNKILLABLE = "unkillable"
    DOMINANCE = "dominance"
    IMPOSSIBLE_WAVE = "impossible-wave"
    DIFFICULTY_SPIKE = "difficulty-spike"
    TRIVIAL_WAVE = "trivial-wave"
    ECONOMY_STALL = "economy-stall"
    TOWER_DOMINANCE = "tower-dominance"
    TOWER_UNDERUSE = "tower-underuse"
    ENEMY_LEAK = "enemy-leak"
    STRATEGY_VARIANCE = "strategy-variance"


@dataclass(slots=True, frozen=True)
class DpsCostSpread:
    category: ClassVar[IssueCategory] = IssueCategory.DPS_COST_SPREAD
    level: int
    max_dpc: float
    min_dpc: float
    ratio: float
    best_tower_id: int
    worst_tower_id: int


@dataclass(slots=True, frozen=True)
class Overkill:
    category: ClassVar[IssueCategory] = IssueCategory.OVERKILL
    tower_id: int
    tower_level: int
    enemy_id: int
    wave: int
    overkill_ratio: float


@dataclass(slots=True, frozen=True)
class Unkillable:
    category: ClassVar[IssueCategory] = IssueCategory.UNKILLABLE
    enemy_id: int
    wave: int
    towers_tested: Tuple[str, ...]


@dataclass(slots=True, frozen=True)
class CostDominance:
    category: ClassVar[IssueCategory] = IssueCategory.DOMINANCE
    tower_id: int
    tower_name: str


@dataclass(slots=True, frozen=True)
class ImpossibleWave:
    category: ClassVar[IssueCategory] = IssueCategory.IMPOSSIBLE_WAVE
    wave: int
    min_dps_required: float
    affordable_dps: float
    surplus_ratio: float


@dataclass(slots=True, frozen=True)
class DifficultySpike:
    category: ClassVar[IssueCategory] = IssueCategory.DIFFICULTY_SPIKE
    from_wave: int
    to_wave: int
    from_surplus: float
    to_surplus: float
    drop_percent: float


@dataclass(slots=True, frozen=True)
class TrivialWave:
    category: ClassVar[IssueCategory] = IssueCategory.TRIVIAL_WAVE
    wave: int
    surplus_ratio: float
    affordable_dps: float
    min_dps_required: float


@dataclass(slots=True, frozen=True)
class EconomyStall:
    category: ClassVar[IssueCategory] = IssueCategory.ECONOMY_STALL
    wave: int
    cheapest_tower_cost: float


@dataclass(slots=True, frozen=True)
class TowerDominance:
    category: ClassVar[IssueCategory] = IssueCategory.TOWER_DOMINANCE
    tower_id: int
    pick_rate: float


@dataclass(slots=True, frozen=True)
class TowerUnderuse:
    category: ClassVar[IssueCategory] = IssueCategory.TOWER_UNDERUSE
    tower_id: int
    pick_rate: float


@dataclass(slots=True, frozen=True)
class EnemyLeak:
    category: ClassVar[IssueCategory] = IssueCategory.ENEMY_LEAK
    enemy_id: int
    leak_rate: float


@dataclass(slots=True, frozen=True)
class StrategyVariance:
    category: ClassVar[IssueCategory] = IssueCategory.STRATEGY_VARIANCE
    max_rate: float
    min_rate: float
    variance: float


IssueDetails = Union[
    DpsCostSpread,
    Overkill,
    Unkillable,
    CostDominance,
    ImpossibleWave,
    DifficultySpike,
    TrivialWave,
    EconomyStall,
    TowerDominance,
    TowerUnderuse,
    EnemyLeak,
    StrategyVariance,
]

DETAIL_TYPES: Tuple[type, ...] = IssueDetails.__args__  # type: ignore[attr-defined]


@dataclass(slots=True, frozen=True)
class BalanceIssue:
    severity: Severity
    description: str
    details: IssueDetails

    @property
    def category(self) -> IssueCategory:
        return self.details.category

    def to_dict(self) -> Dict[str, Any]:
        return _stabilize_numeric_payload(
            {
                "severity": self.severity,
                "category": self.category,
                "description": self.description,
                "details": asdict(self.details),
            }
        )
