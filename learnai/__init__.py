from __future__ import annotations

from .errors import InputError, LearnAIError, MalformedContentError, PersistenceError, TransportError
from .exam_simulator import ExamSimulatorService
from .learning_road import LearningRoadService
from .solver import SolverService

__all__ = [
    "ExamSimulatorService",
    "InputError",
    "LearnAIError",
    "LearningRoadService",
    "MalformedContentError",
    "PersistenceError",
    "SolverService",
    "TransportError",
]
