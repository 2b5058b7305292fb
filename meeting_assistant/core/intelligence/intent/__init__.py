"""Intent classification module."""

from .types import Intent, IntentHints, IntentResult
from .classifier import (
    IntentClassifier,
    get_intent_classifier,
    classify_intent,
)

__all__ = [
    # Types
    "Intent",
    "IntentHints",
    "IntentResult",
    # Classifier
    "IntentClassifier",
    "get_intent_classifier",
    "classify_intent",
]
