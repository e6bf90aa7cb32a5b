"""
Natural-language question generation for query patterns.
"""

from querylearn.questions.generator import QuestionGenerator

__all__ = [
    "QuestionGenerator",
]
