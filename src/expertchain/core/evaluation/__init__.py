from .base import EvaluationInput, EvaluationScore, Evaluator
from .relevance import RelevanceEvaluator

__all__ = ["EvaluationInput", "EvaluationScore", "Evaluator", "RelevanceEvaluator"]
