from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence

from ..simulation.state import SimulationRunResult


def _per_run_average(samples: Sequence[Mapping[int, float]]) -> Dict[int, float]:
    # Every run counts equally; a type missing from a run contributes 0.
    if not samples:
        return {}
    keys = sorted({key for sample in samples for key in sample})
    return {key: sum(sample.get(key, 0.0) for sample in samples) / len(samples) for key in keys}


class MetricsCollector:
    """Aggregates completed simulation runs."""

    def __init__(self, runs: Iterable[SimulationRunResult] = ()) -> None:
        self._runs: List[SimulationRunResult] = list(runs)

    def add_run(self, result: SimulationRunResult) -> None:
        self._runs.append(result)

    @property
    def runs(self) -> List[SimulationRunResult]:
        return list(self._runs)

    def __len__(self) -> int:
        return len(self._runs)

    def win_rate_by_strategy(self) -> Dict[str, float]:
        totals: Dict[str, int] = {}
        wins: Dict[str, int] = {}
        for run in self._runs:
            totals[run.strategy] = totals.get(run.strategy, 0) + 1
            if run.won:
                wins[run.strategy] = wins.get(run.strategy, 0) + 1
        return {name: wins.get(name, 0) / count for name, count in totals.items()}

    def tower_pick_rate(self, tower_ids: Iterable[int] = ()) -> Dict[int, float]:
        """Share of all placements across all runs, per tower type.

        ``tower_ids`` adds zero entries for configured types that were never
        placed, so they still show up as underused.
        """
        counts: Dict[int, int] = {tower_id: 0 for tower_id in tower_ids}
        total = 0
        for run in self._runs:
            for tower_id, count in run.tower_usage.items():
                counts[tower_id] = counts.get(tower_id, 0) + count
                total += count
        return {
            tower_id: (count / total if total > 0 else 0.0)
            for tower_id, count in sorted(counts.items())
        }

    def tower_damage_share(self) -> Dict[int, float]:
        return _per_run_average([run.tower_damage_share for run in self._runs])

    def enemy_leak_rate(self) -> Dict[int, float]:
        return _per_run_average([run.enemy_leak_rate for run in self._runs])
