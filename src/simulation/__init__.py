"""
Learner activity simulation.

Completes lessons and answers quizzes on discovered enrollments.
"""

from .lesson import LessonCompletionDriver
from .quiz import QuizAnsweringEngine
from .runner import PublishedSnapshot, SimulationRunner

__all__ = [
    "LessonCompletionDriver",
    "PublishedSnapshot",
    "QuizAnsweringEngine",
    "SimulationRunner",
]
