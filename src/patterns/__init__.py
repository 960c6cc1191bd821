"""Outcome feedback for recurring action patterns."""

from .learner import PatternLearner
from .models import LearningPattern, Recommendation

__all__ = ["PatternLearner", "LearningPattern", "Recommendation"]
