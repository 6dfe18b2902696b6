"""Bounded, reversible parameter edits derived from balance issues."""

from .constraints import CONSTRAINTS, Constraint, clamp_to_constraint, get_constraint, is_within_constraint
from .engine import (
    MAX_CHANGE_PERCENT,
    ApiPatch,
    BalanceSuggestion,
    SuggestionTarget,
    bound_value,
    deduplicate,
    generate_suggestions,
    suggestions_for_issue,
)
from .patches import ApplyReport, apply_suggestions, dry_run_lines

__all__ = [
    "CONSTRAINTS",
    "Constraint",
    "clamp_to_constraint",
    "get_constraint",
    "is_within_constraint",
    "MAX_CHANGE_PERCENT",
    "ApiPatch",
    "BalanceSuggestion",
    "SuggestionTarget",
    "bound_value",
    "deduplicate",
    "generate_suggestions",
    "suggestions_for_issue",
    "ApplyReport",
    "apply_suggestions",
    "dry_run_lines",
]
