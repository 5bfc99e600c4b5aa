"""Schema checks for parsed model output.

Each decoder takes whatever ``json.loads`` produced and either returns a typed
record or an error message. Callers treat an error exactly like a JSON parse
failure and fall back to placeholder content.
"""
from __future__ import annotations

import dataclasses
import typing as t

from .models import (
    PATH_DIFFICULTIES,
    PROBLEM_DIFFICULTIES,
    QUESTION_DIFFICULTIES,
    QUESTION_TYPES,
    QUIZ_DIFFICULTIES,
    STEP_DIFFICULTIES,
    JsonDict,
    LearningMaterial,
    LearningPath,
    LearningStep,
    MaterialSection,
    Problem,
    Question,
    QuizQuestion,
    SolutionStep,
    StepExample,
)

T = t.TypeVar("T")


@dataclasses.dataclass(frozen=True)
class Decoded(t.Generic[T]):
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @staticmethod
    def success(value: T) -> "Decoded[T]":
        return Decoded(value=value)

    @staticmethod
    def failure(error: str) -> "Decoded[T]":
        return Decoded(error=error)


@dataclasses.dataclass(frozen=True)
class ExamDraft:
    title: str | None
    description: str | None
    instructions: str | None
    questions: list[Question]
    total_points: int | None


def _text(value: t.Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _opt_text(value: t.Any) -> str | None:
    s = _text(value)
    return s or None


def _positive_int(value: t.Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        n = int(round(value))
        return n if n > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        n = int(value.strip())
        return n if n > 0 else None
    return None


def _str_list(value: t.Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [_text(v) for v in value if _text(v)]


def _choice(value: t.Any, allowed: tuple[str, ...], default: str) -> str:
    s = _text(value)
    for a in allowed:
        if s.lower() == a.lower():
            return a
    return default


def _answer_index(value: t.Any, n_options: int) -> int | None:
    if isinstance(value, bool):
        return None
    idx: int | None = None
    if isinstance(value, int):
        idx = value
    elif isinstance(value, str) and value.strip().isdigit():
        idx = int(value.strip())
    if idx is None or idx < 0 or idx >= n_options:
        return None
    return idx


def _dict_items(value: t.Any, key: str) -> list[JsonDict] | None:
    if isinstance(value, dict):
        value = value.get(key)
    if not isinstance(value, list):
        return None
    return [t.cast(JsonDict, v) for v in value if isinstance(v, dict)]


def decode_question(data: JsonDict, *, default_id: str, default_points: int) -> Question | None:
    text = _text(data.get("question"))
    if not text:
        return None
    options = _str_list(data.get("options"))
    qtype = _choice(data.get("type"), QUESTION_TYPES, "")
    if not qtype:
        qtype = "multiple-choice" if options else "short-answer"

    answer = data.get("correctAnswer")
    if qtype == "multiple-choice":
        idx = _answer_index(answer, len(options))
        answer = idx if idx is not None else answer
    elif answer is not None and not isinstance(answer, (str, int, float, bool)):
        answer = str(answer)

    return Question(
        id=_text(data.get("id")) or default_id,
        question=text,
        type=qtype,
        correct_answer=answer,
        points=_positive_int(data.get("points")) or default_points,
        explanation=_text(data.get("explanation")),
        difficulty=_choice(data.get("difficulty"), QUESTION_DIFFICULTIES, "Medium"),
        options=options if qtype == "multiple-choice" else None,
    )


def decode_exam_payload(data: t.Any, *, level: int, questions_per_exam: int | None = None) -> Decoded[ExamDraft]:
    if not isinstance(data, dict):
        return Decoded.failure("expected a JSON object for the exam")
    raw_questions = data.get("questions")
    if not isinstance(raw_questions, list) or not raw_questions:
        return Decoded.failure("exam has no questions array")

    per_exam = questions_per_exam or len(raw_questions)
    default_points = max(1, int(100 / per_exam + 0.5))
    questions: list[Question] = []
    for index, raw in enumerate(raw_questions):
        if not isinstance(raw, dict):
            continue
        q = decode_question(raw, default_id=f"q{level}_{index + 1}", default_points=default_points)
        if q is not None:
            questions.append(q)
    if not questions:
        return Decoded.failure("exam questions have no usable question text")

    return Decoded.success(
        ExamDraft(
            title=_opt_text(data.get("title")),
            description=_opt_text(data.get("description")),
            instructions=_opt_text(data.get("instructions")),
            questions=questions,
            total_points=_positive_int(data.get("totalPoints")),
        )
    )


def decode_learning_path(data: t.Any, *, path_id: str, topic: str) -> Decoded[LearningPath]:
    if not isinstance(data, dict):
        return Decoded.failure("expected a JSON object for the learning path")
    raw_steps = _dict_items(data.get("steps"), "steps")
    if not raw_steps:
        return Decoded.failure("learning path has no steps")

    steps: list[LearningStep] = []
    for raw in raw_steps:
        title = _text(raw.get("title"))
        if not title:
            continue
        prereq = raw.get("prerequisites")
        steps.append(
            LearningStep(
                step=len(steps) + 1,
                title=title,
                description=_text(raw.get("description")),
                estimated_time=_text(raw.get("estimatedTime")),
                difficulty=_choice(raw.get("difficulty"), STEP_DIFFICULTIES, "Beginner"),
                key_topics=_str_list(raw.get("keyTopics")),
                practice_exercises=_str_list(raw.get("practiceExercises")),
                prerequisites=_str_list(prereq) if isinstance(prereq, list) else None,
            )
        )
    if not steps:
        return Decoded.failure("learning path steps have no titles")

    return Decoded.success(
        LearningPath(
            id=path_id,
            topic=_text(data.get("topic")) or topic,
            total_estimated_time=_text(data.get("totalEstimatedTime")),
            difficulty=_choice(data.get("difficulty"), PATH_DIFFICULTIES, "Mixed"),
            description=_text(data.get("description")),
            steps=steps,
        )
    )


def decode_examples(value: t.Any) -> list[StepExample]:
    if not isinstance(value, list):
        return []
    out: list[StepExample] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            out.append(StepExample(label=f"Example {len(out) + 1}", detail=item.strip()))
        elif isinstance(item, dict):
            label = _text(item.get("label"))
            detail = _text(item.get("detail"))
            if label or detail:
                out.append(StepExample(label=label or f"Example {len(out) + 1}", detail=detail))
    return out


def decode_material(
    data: t.Any,
    *,
    material_id: str,
    topic: str,
    step_title: str,
) -> Decoded[LearningMaterial]:
    if not isinstance(data, dict):
        return Decoded.failure("expected a JSON object for the learning material")
    raw_sections = _dict_items(data.get("sections"), "sections")
    if not raw_sections:
        return Decoded.failure("learning material has no sections")

    sections = [
        MaterialSection(
            title=_text(s.get("title")),
            content=_text(s.get("content")),
            examples=decode_examples(s.get("examples")),
            key_points=_str_list(s.get("keyPoints")),
        )
        for s in raw_sections
        if _text(s.get("content"))
    ]
    if not sections:
        return Decoded.failure("learning material sections have no content")

    return Decoded.success(
        LearningMaterial(
            id=material_id,
            step_title=_text(data.get("stepTitle")) or step_title,
            topic=_text(data.get("topic")) or topic,
            introduction=_text(data.get("introduction")),
            sections=sections,
            summary=_text(data.get("summary")),
            next_steps=_str_list(data.get("nextSteps")),
            estimated_read_time=_text(data.get("estimatedReadTime")),
        )
    )


def decode_quiz(data: t.Any, *, id_for: t.Callable[[int], str]) -> Decoded[list[QuizQuestion]]:
    raw_questions = _dict_items(data, "questions")
    if not raw_questions:
        return Decoded.failure("quiz has no questions")

    out: list[QuizQuestion] = []
    for raw in raw_questions:
        text = _text(raw.get("question"))
        options = _str_list(raw.get("options"))
        if not text or len(options) < 2:
            continue
        idx = _answer_index(raw.get("correctAnswer"), len(options))
        if idx is None:
            continue
        out.append(
            QuizQuestion(
                id=id_for(len(out)),
                question=text,
                options=options,
                correct_answer=idx,
                explanation=_text(raw.get("explanation")),
                difficulty=_choice(raw.get("difficulty"), QUIZ_DIFFICULTIES, "Medium"),
            )
        )
    if not out:
        return Decoded.failure("quiz questions are missing text, options or a valid answer index")
    return Decoded.success(out)


def decode_problems(data: t.Any, *, id_for: t.Callable[[int], str]) -> Decoded[list[Problem]]:
    if isinstance(data, dict) and isinstance(data.get("problems"), list):
        data = data["problems"]
    if not isinstance(data, list):
        return Decoded.failure("expected a JSON array of problems")

    problems: list[Problem] = []
    for raw in data:
        if not isinstance(raw, dict):
            continue
        text = _text(raw.get("question"))
        if not text:
            continue
        steps: list[SolutionStep] = []
        for s in _dict_items(raw.get("steps"), "steps") or []:
            steps.append(
                SolutionStep(
                    step=len(steps) + 1,
                    description=_text(s.get("description")),
                    equation=_text(s.get("equation")),
                    explanation=_text(s.get("explanation")),
                )
            )
        problems.append(
            Problem(
                id=id_for(len(problems)),
                question=text,
                solution=_text(raw.get("solution")),
                steps=steps,
                difficulty=_choice(raw.get("difficulty"), PROBLEM_DIFFICULTIES, "Medium"),
                topic=_text(raw.get("topic")),
            )
        )
    if data and not problems:
        return Decoded.failure("problems are missing question text")
    return Decoded.success(problems)
