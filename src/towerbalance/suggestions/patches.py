from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import List, Sequence, Tuple

from ..provider import ConfigProviderClient, ProviderError
from .engine import BalanceSuggestion


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ApplyReport:
    applied: List[BalanceSuggestion] = field(default_factory=list)
    failed: List[Tuple[BalanceSuggestion, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.applied) + len(self.failed)

    def rollback_statements(self) -> List[str]:
        return [f"{suggestion.rollback_sql};" for suggestion, _ in self.failed]

    def summary_lines(self) -> List[str]:
        lines = [f"Applied: {len(self.applied)}, Failed: {len(self.failed)}, Total: {self.total}"]
        for suggestion, error in self.failed:
            lines.append(f"  [FAIL] {suggestion.target.label()}: {error}")
        if self.failed:
            lines.append("Rollback SQL for failed suggestions:")
            lines.extend(f"  {statement}" for statement in self.rollback_statements())
        return lines


def apply_suggestions(client: ConfigProviderClient, suggestions: Sequence[BalanceSuggestion]) -> ApplyReport:
    """Send every suggestion's patch to the provider; failures do not stop the batch."""
    report = ApplyReport()
    for suggestion in suggestions:
        patch = suggestion.api_patch
        label = suggestion.target.label()
        try:
            client.send(patch.method, patch.url, patch.body)
        except ProviderError as exc:
            logger.warning("failed to apply %s: %s", label, exc)
            report.failed.append((suggestion, str(exc)))
            continue
        logger.info("applied %s: %s -> %s", label, suggestion.current_value, suggestion.suggested_value)
        report.applied.append(suggestion)
    return report


def dry_run_lines(suggestions: Sequence[BalanceSuggestion]) -> List[str]:
    if not suggestions:
        return ["No API calls to make."]
    lines: List[str] = []
    for suggestion in suggestions:
        patch = suggestion.api_patch
        lines.append(f"{patch.method} {patch.url}")
        lines.append(f"  Body: {json.dumps(patch.body)}")
        lines.append(f"  Rollback: {suggestion.rollback_sql}")
    return lines
