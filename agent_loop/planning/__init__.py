"""Planning components.

The planning subsystem produces the ordered reasoning steps recorded during
the think phase. Classifiers only describe intent; tool execution is left to
the act-phase collaborator.
"""

from .classifier import (
    DEFAULT_RULES,
    KeywordRule,
    KeywordTaskClassifier,
    ModelTaskClassifier,
    TaskClassifier,
)

__all__ = [
    "DEFAULT_RULES",
    "KeywordRule",
    "KeywordTaskClassifier",
    "ModelTaskClassifier",
    "TaskClassifier",
]
