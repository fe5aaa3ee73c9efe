"""Per-user token filter evaluation."""

from mintsentry.services.filter.evaluator import PREDICATES, FilterEvaluator

__all__ = ["PREDICATES", "FilterEvaluator"]
