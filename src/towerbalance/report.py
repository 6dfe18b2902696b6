from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .analysis.classifier import ClassifiedEnemy, ClassifiedTower, classify_enemies, classify_towers
from .analysis.cost_efficiency import Tier1Result, analyze_tier1
from .analysis.issues import BalanceIssue
from .analysis.sensitivity import DEFAULT_SEED, Tier3Result, analyze_tier3
from .analysis.wave_scaling import Tier2Result, analyze_tier2
from .models import GameConfig, _stabilize_numeric_payload
from .suggestions.engine import BalanceSuggestion, generate_suggestions


logger = logging.getLogger(__name__)

ALL_TIERS: Tuple[int, ...] = (1, 2, 3)


def parse_tiers(value: str) -> Tuple[int, ...]:
    """``"all"`` or a comma-separated subset of ``1,2,3``."""
    text = str(value).strip().lower()
    if text == "all":
        return ALL_TIERS
    tiers = set()
    for part in text.split(","):
        part = part.strip()
        if part not in {"1", "2", "3"}:
            raise ValueError(f"Unknown tier '{part}'. Use 1, 2, 3 or all.")
        tiers.add(int(part))
    return tuple(sorted(tiers))


@dataclass(slots=True, frozen=True)
class AnalysisReport:
    difficulty: str
    num_waves: int
    seed: int
    enemy_classes: Tuple[ClassifiedEnemy, ...]
    tower_classes: Tuple[ClassifiedTower, ...]
    tier1: Optional[Tier1Result]
    tier2: Optional[Tier2Result]
    tier3: Optional[Tier3Result]
    suggestions: Tuple[BalanceSuggestion, ...]

    @property
    def issues(self) -> List[BalanceIssue]:
        collected: List[BalanceIssue] = []
        for result in (self.tier1, self.tier2, self.tier3):
            if result is not None:
                collected.extend(result.issues)
        return collected

    def to_dict(self, include_runs: bool = False) -> Dict[str, Any]:
        return _stabilize_numeric_payload(
            {
                "difficulty": self.difficulty,
                "num_waves": self.num_waves,
                "seed": self.seed,
                "classification": {
                    "enemies": [item.to_dict() for item in self.enemy_classes],
                    "towers": [item.to_dict() for item in self.tower_classes],
                },
                "tier1": self.tier1.to_dict() if self.tier1 is not None else None,
                "tier2": self.tier2.to_dict() if self.tier2 is not None else None,
                "tier3": self.tier3.to_dict(include_runs=include_runs) if self.tier3 is not None else None,
                "suggestions": [item.to_dict() for item in self.suggestions],
            }
        )


def run_analysis(
    config: GameConfig,
    tiers: Iterable[int] = ALL_TIERS,
    num_waves: int = 10,
    sim_runs: int = 50,
    seed: int = DEFAULT_SEED,
    workers: int = 1,
) -> AnalysisReport:
    selected = set(tiers)
    tier1 = tier2 = tier3 = None

    if 1 in selected:
        logger.info("running tier 1 (static cost efficiency)")
        tier1 = analyze_tier1(config.towers, config.enemies, config.settings)
    if 2 in selected:
        logger.info("running tier 2 (wave scaling over %d waves)", num_waves)
        tier2 = analyze_tier2(config.towers, config.enemies, config.settings, config.waves, num_waves)
    if 3 in selected:
        logger.info("running tier 3 (%d simulation runs, %d worker(s))", sim_runs, workers)
        tier3 = analyze_tier3(config, num_waves, sim_runs, seed=seed, workers=workers)

    suggestions = generate_suggestions(tier1, tier2, tier3, config)
    return AnalysisReport(
        difficulty=config.settings.mode,
        num_waves=num_waves,
        seed=seed,
        enemy_classes=tuple(classify_enemies(config.enemies)),
        tower_classes=tuple(classify_towers(config.towers)),
        tier1=tier1,
        tier2=tier2,
        tier3=tier3,
        suggestions=tuple(suggestions),
    )
