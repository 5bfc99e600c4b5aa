from __future__ import annotations

import dataclasses
import datetime as dt
import typing as t

from bson import ObjectId

from .errors import InputError

JsonDict = dict[str, t.Any]

QUESTION_TYPES = ("multiple-choice", "true-false", "short-answer", "essay", "fill-blank", "matching")
QUESTION_DIFFICULTIES = ("Easy", "Medium", "Hard", "Very Hard", "Expert")
STEP_DIFFICULTIES = ("Beginner", "Intermediate", "Advanced")
PATH_DIFFICULTIES = STEP_DIFFICULTIES + ("Mixed",)
QUIZ_DIFFICULTIES = ("Easy", "Medium", "Hard")
PROBLEM_DIFFICULTIES = ("Easy", "Medium", "Hard")
DIFFICULTY_LABELS = ("Foundation", "Beginner", "Intermediate", "Advanced", "Expert", "Master", "Genius")


def utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def new_id(prefix: str, *suffix: t.Any) -> str:
    parts = [prefix, str(ObjectId())] + [str(s) for s in suffix]
    return "_".join(p for p in parts if p)


@dataclasses.dataclass(frozen=True)
class UploadedFile:
    filename: str
    data: bytes
    mime_type: str | None = None


@dataclasses.dataclass(frozen=True)
class Question:
    id: str
    question: str
    type: str
    correct_answer: int | str | None
    points: int
    explanation: str = ""
    difficulty: str = "Medium"
    options: list[str] | None = None

    def to_dict(self) -> JsonDict:
        out: JsonDict = {
            "id": self.id,
            "question": self.question,
            "type": self.type,
            "correctAnswer": self.correct_answer,
            "points": self.points,
            "explanation": self.explanation,
            "difficulty": self.difficulty,
        }
        if self.options is not None:
            out["options"] = list(self.options)
        return out

    @staticmethod
    def from_dict(data: JsonDict) -> "Question":
        options = data.get("options")
        return Question(
            id=str(data.get("id") or ""),
            question=str(data.get("question") or ""),
            type=str(data.get("type") or "short-answer"),
            correct_answer=data.get("correctAnswer"),
            points=int(data.get("points") or 0),
            explanation=str(data.get("explanation") or ""),
            difficulty=str(data.get("difficulty") or "Medium"),
            options=[str(o) for o in options] if isinstance(options, list) else None,
        )


@dataclasses.dataclass
class Exam:
    id: str
    series_id: str | None
    title: str
    description: str
    instructions: str
    questions: list[Question]
    total_points: int
    estimated_time: int
    difficulty_level: int
    difficulty_label: str
    created_at: str = dataclasses.field(default_factory=utc_now_iso)
    score: int | None = None
    completed_at: str | None = None
    time_taken: int | None = None

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "seriesId": self.series_id,
            "title": self.title,
            "description": self.description,
            "instructions": self.instructions,
            "questions": [q.to_dict() for q in self.questions],
            "totalPoints": self.total_points,
            "estimatedTime": self.estimated_time,
            "difficultyLevel": self.difficulty_level,
            "difficultyLabel": self.difficulty_label,
            "createdAt": self.created_at,
            "score": self.score,
            "completedAt": self.completed_at,
            "timeTaken": self.time_taken,
        }

    @staticmethod
    def from_dict(data: JsonDict) -> "Exam":
        return Exam(
            id=str(data.get("id") or ""),
            series_id=data.get("seriesId"),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            instructions=str(data.get("instructions") or ""),
            questions=[Question.from_dict(q) for q in data.get("questions") or []],
            total_points=int(data.get("totalPoints") or 0),
            estimated_time=int(data.get("estimatedTime") or 0),
            difficulty_level=int(data.get("difficultyLevel") or 0),
            difficulty_label=str(data.get("difficultyLabel") or ""),
            created_at=str(data.get("createdAt") or utc_now_iso()),
            score=data.get("score"),
            completed_at=data.get("completedAt"),
            time_taken=data.get("timeTaken"),
        )


@dataclasses.dataclass
class ExamSeries:
    id: str
    topic: str
    description: str
    exams: list[Exam]
    total_exams: int
    created_at: str = dataclasses.field(default_factory=utc_now_iso)

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "topic": self.topic,
            "description": self.description,
            "exams": [e.to_dict() for e in self.exams],
            "totalExams": self.total_exams,
            "createdAt": self.created_at,
        }


def _setting_int(data: JsonDict, key: str) -> int | None:
    # Form posts send every field as text, blank when unset.
    raw = data.get(key)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise InputError(f"Setting {key} must be a whole number, got {raw!r}.") from e


@dataclasses.dataclass(frozen=True)
class SimulatorSettings:
    number_of_exams: int
    questions_per_exam: int | None = None
    time_per_exam: int | None = None

    def to_dict(self) -> JsonDict:
        return {
            "numberOfExams": self.number_of_exams,
            "questionsPerExam": self.questions_per_exam,
            "timePerExam": self.time_per_exam,
        }

    @staticmethod
    def from_dict(data: JsonDict) -> "SimulatorSettings":
        return SimulatorSettings(
            number_of_exams=_setting_int(data, "numberOfExams") or 0,
            questions_per_exam=_setting_int(data, "questionsPerExam"),
            time_per_exam=_setting_int(data, "timePerExam"),
        )


@dataclasses.dataclass
class PracticeExam:
    id: str
    title: str
    description: str
    instructions: str
    questions: list[Question]
    total_points: int
    estimated_time: int
    difficulty: str
    settings: JsonDict = dataclasses.field(default_factory=dict)
    has_answer_key: bool = False
    created_at: str = dataclasses.field(default_factory=utc_now_iso)
    score: int | None = None
    completed_at: str | None = None
    time_taken: int | None = None

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "instructions": self.instructions,
            "questions": [q.to_dict() for q in self.questions],
            "totalPoints": self.total_points,
            "estimatedTime": self.estimated_time,
            "difficulty": self.difficulty,
            "settings": dict(self.settings),
            "hasAnswerKey": self.has_answer_key,
            "createdAt": self.created_at,
            "score": self.score,
            "completedAt": self.completed_at,
            "timeTaken": self.time_taken,
        }

    @staticmethod
    def from_dict(data: JsonDict) -> "PracticeExam":
        return PracticeExam(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            instructions=str(data.get("instructions") or ""),
            questions=[Question.from_dict(q) for q in data.get("questions") or []],
            total_points=int(data.get("totalPoints") or 0),
            estimated_time=int(data.get("estimatedTime") or 0),
            difficulty=str(data.get("difficulty") or ""),
            settings=t.cast(JsonDict, data.get("settings") or {}),
            has_answer_key=bool(data.get("hasAnswerKey")),
            created_at=str(data.get("createdAt") or utc_now_iso()),
            score=data.get("score"),
            completed_at=data.get("completedAt"),
            time_taken=data.get("timeTaken"),
        )


@dataclasses.dataclass
class LearningStep:
    step: int
    title: str
    description: str
    estimated_time: str
    difficulty: str
    key_topics: list[str]
    practice_exercises: list[str]
    prerequisites: list[str] | None = None
    # Tracked by the UI for the current session only; the store never writes it.
    completed: bool = False

    def to_dict(self, *, include_completed: bool = True) -> JsonDict:
        out: JsonDict = {
            "step": self.step,
            "title": self.title,
            "description": self.description,
            "estimatedTime": self.estimated_time,
            "difficulty": self.difficulty,
            "keyTopics": list(self.key_topics),
            "practiceExercises": list(self.practice_exercises),
        }
        if self.prerequisites is not None:
            out["prerequisites"] = list(self.prerequisites)
        if include_completed:
            out["completed"] = self.completed
        return out

    @staticmethod
    def from_dict(data: JsonDict) -> "LearningStep":
        prereq = data.get("prerequisites")
        return LearningStep(
            step=int(data.get("step") or 0),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            estimated_time=str(data.get("estimatedTime") or ""),
            difficulty=str(data.get("difficulty") or "Beginner"),
            key_topics=[str(x) for x in data.get("keyTopics") or []],
            practice_exercises=[str(x) for x in data.get("practiceExercises") or []],
            prerequisites=[str(x) for x in prereq] if isinstance(prereq, list) else None,
        )


@dataclasses.dataclass
class LearningPath:
    id: str
    topic: str
    total_estimated_time: str
    difficulty: str
    description: str
    steps: list[LearningStep]
    created_at: str = dataclasses.field(default_factory=utc_now_iso)

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "topic": self.topic,
            "totalEstimatedTime": self.total_estimated_time,
            "difficulty": self.difficulty,
            "description": self.description,
            "steps": [s.to_dict() for s in self.steps],
            "createdAt": self.created_at,
        }

    @staticmethod
    def from_dict(data: JsonDict) -> "LearningPath":
        return LearningPath(
            id=str(data.get("id") or ""),
            topic=str(data.get("topic") or ""),
            total_estimated_time=str(data.get("totalEstimatedTime") or ""),
            difficulty=str(data.get("difficulty") or "Mixed"),
            description=str(data.get("description") or ""),
            steps=[LearningStep.from_dict(s) for s in data.get("steps") or []],
            created_at=str(data.get("createdAt") or utc_now_iso()),
        )


@dataclasses.dataclass(frozen=True)
class StepExample:
    label: str
    detail: str

    def to_dict(self) -> JsonDict:
        return {"label": self.label, "detail": self.detail}


@dataclasses.dataclass(frozen=True)
class MaterialSection:
    title: str
    content: str
    examples: list[StepExample] = dataclasses.field(default_factory=list)
    key_points: list[str] = dataclasses.field(default_factory=list)

    def to_dict(self) -> JsonDict:
        return {
            "title": self.title,
            "content": self.content,
            "examples": [e.to_dict() for e in self.examples],
            "keyPoints": list(self.key_points),
        }


@dataclasses.dataclass(frozen=True)
class LearningMaterial:
    id: str
    step_title: str
    topic: str
    introduction: str
    sections: list[MaterialSection]
    summary: str
    next_steps: list[str]
    estimated_read_time: str

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "stepTitle": self.step_title,
            "topic": self.topic,
            "introduction": self.introduction,
            "sections": [s.to_dict() for s in self.sections],
            "summary": self.summary,
            "nextSteps": list(self.next_steps),
            "estimatedReadTime": self.estimated_read_time,
        }


@dataclasses.dataclass(frozen=True)
class QuizQuestion:
    id: str
    question: str
    options: list[str]
    correct_answer: int
    explanation: str
    difficulty: str

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "question": self.question,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
            "difficulty": self.difficulty,
        }


@dataclasses.dataclass(frozen=True)
class SolutionStep:
    step: int
    description: str
    equation: str
    explanation: str

    def to_dict(self) -> JsonDict:
        return {
            "step": self.step,
            "description": self.description,
            "equation": self.equation,
            "explanation": self.explanation,
        }


@dataclasses.dataclass(frozen=True)
class Problem:
    id: str
    question: str
    solution: str
    steps: list[SolutionStep]
    difficulty: str
    topic: str

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "question": self.question,
            "solution": self.solution,
            "steps": [s.to_dict() for s in self.steps],
            "difficulty": self.difficulty,
            "topic": self.topic,
        }
