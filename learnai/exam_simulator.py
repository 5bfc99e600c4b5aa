from __future__ import annotations

import logging
import os
import time
import typing as t

from .decoding import Decoded, ExamDraft, decode_exam_payload
from .errors import InputError, MalformedContentError, TransportError
from .file_utils import FileUtils
from .json_utils import ResponseNormalizer
from .language import name_for
from .models import Exam, ExamSeries, Question, SimulatorSettings, UploadedFile, new_id, utc_now_iso
from .prompts import MAX_DIFFICULTY_LEVEL, build_exam_prompt, build_performance_analysis_prompt, difficulty_config

if t.TYPE_CHECKING:
    from backend.store import PersistenceStore

    from .llm_clients import TextCompleter

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_DELAY_S = 1.0


def _delay_from_env() -> float:
    raw = os.environ.get("EXAM_REQUEST_DELAY_S")
    if not raw:
        return DEFAULT_REQUEST_DELAY_S
    try:
        return max(0.0, float(raw))
    except ValueError:
        return DEFAULT_REQUEST_DELAY_S


class ExamSimulatorService:
    def __init__(
        self,
        completer: "TextCompleter",
        *,
        normalizer: ResponseNormalizer | None = None,
        file_utils: FileUtils | None = None,
        request_delay_s: float | None = None,
        sleep: t.Callable[[float], None] = time.sleep,
    ) -> None:
        self.completer = completer
        self.normalizer = normalizer or ResponseNormalizer()
        self.file_utils = file_utils or FileUtils()
        self.request_delay_s = _delay_from_env() if request_delay_s is None else request_delay_s
        self.sleep = sleep

    def generate_exam_series(
        self,
        series_topic: str,
        description: str,
        reference_files: list[UploadedFile],
        settings: SimulatorSettings,
        exam_time_minutes: int,
        *,
        language: str = "en",
    ) -> ExamSeries:
        if not (description or "").strip() and not reference_files:
            raise InputError("Please provide either an exam description or upload reference materials.")
        n = settings.number_of_exams
        if n < 1 or n > MAX_DIFFICULTY_LEVEL:
            raise InputError(f"Number of exams must be between 1 and {MAX_DIFFICULTY_LEVEL}, got {n}.")

        logger.info("Generating exam series %r with %d exams (%d files)", series_topic, n, len(reference_files))
        # Encoded parts are prepared but not sent; only the text prompt reaches the model.
        self.file_utils.encode_files(reference_files)

        language_name = name_for(language)
        exams: list[Exam] = []
        for level in range(1, n + 1):
            logger.info("Generating exam %d/%d", level, n)
            prompt = build_exam_prompt(description, n, bool(reference_files), level, language_name)
            try:
                text = self.completer.complete(prompt)
            except Exception:
                logger.exception("Exam series generation aborted at level %d", level)
                raise

            decoded = self._decode(text, level=level, settings=settings)
            if decoded.ok:
                exam = self._build_exam(t.cast(ExamDraft, decoded.value), level, series_topic, exam_time_minutes)
            else:
                logger.warning("Failed to parse exam %d response: %s", level, decoded.error)
                exam = self._fallback_exam(level, series_topic, settings.time_per_exam or exam_time_minutes)
            exams.append(exam)

            if level < n:
                self.sleep(self.request_delay_s)

        series_id = new_id("series")
        for exam in exams:
            exam.series_id = series_id
        series = ExamSeries(
            id=series_id,
            topic=series_topic,
            description=description or f"Progressive exam series with {n} levels of increasing difficulty",
            exams=exams,
            total_exams=n,
        )
        logger.info("Generated exam series %s (%d exams)", series.id, series.total_exams)
        return series

    def _decode(self, text: str, *, level: int, settings: SimulatorSettings) -> Decoded[ExamDraft]:
        try:
            data = self.normalizer.parse(text)
        except MalformedContentError as e:
            return Decoded.failure(str(e))
        return decode_exam_payload(data, level=level, questions_per_exam=settings.questions_per_exam)

    def _build_exam(self, draft: ExamDraft, level: int, topic: str, exam_time_minutes: int) -> Exam:
        cfg = difficulty_config(level)
        return Exam(
            id=new_id("exam", level),
            series_id=None,
            title=draft.title or f"Level {level}: {cfg.label} - {topic}",
            description=draft.description or cfg.description,
            instructions=draft.instructions or f"This is a Level {level} exam. {cfg.description}",
            questions=draft.questions,
            total_points=draft.total_points or 100,
            estimated_time=exam_time_minutes,
            difficulty_level=level,
            difficulty_label=cfg.label,
        )

    def _fallback_exam(self, level: int, topic: str, exam_time_minutes: int) -> Exam:
        cfg = difficulty_config(level)
        return Exam(
            id=new_id("fallback_exam", level),
            series_id=None,
            title=f"Level {level}: {cfg.label} - {topic}",
            description=cfg.description,
            instructions=f"This is a Level {level} practice exam.",
            questions=[
                Question(
                    id=f"fallback_q{level}_1",
                    question=f"Sample Level {level} question for {topic}",
                    type="multiple-choice",
                    options=["Option A", "Option B", "Option C", "Option D"],
                    correct_answer=0,
                    points=100,
                    explanation="This is a fallback question due to parsing error.",
                    difficulty="Medium",
                )
            ],
            total_points=100,
            estimated_time=exam_time_minutes,
            difficulty_level=level,
            difficulty_label=cfg.label,
        )

    def grade_exam(self, exam: Exam, answers: list[t.Any]) -> int:
        if not exam.questions:
            return 0
        correct = 0
        for index, question in enumerate(exam.questions):
            given = answers[index] if index < len(answers) else None
            if given is not None and _same_answer(given, question.correct_answer):
                correct += 1
        return int(correct / len(exam.questions) * 100 + 0.5)

    def submit_exam(
        self,
        store: "PersistenceStore",
        exam: Exam,
        answers: list[t.Any],
        time_taken_s: int,
    ) -> int:
        score = self.grade_exam(exam, answers)
        completed_at = utc_now_iso()
        store.update_exam_score(exam.id, score, time_taken_s, completed_at=completed_at)
        exam.score = score
        exam.completed_at = completed_at
        exam.time_taken = time_taken_s
        logger.info("Exam %s submitted with score %d%% in %ds", exam.id, score, time_taken_s)
        return score

    def render_exam_text(self, exam: Exam) -> str:
        lines = [
            exam.title,
            "=" * len(exam.title),
            "",
            f"Level: {exam.difficulty_level}/{MAX_DIFFICULTY_LEVEL} ({exam.difficulty_label})",
            f"Description: {exam.description}",
            "",
            f"Instructions: {exam.instructions}",
            "",
            f"Time Limit: {exam.estimated_time} minutes",
            f"Total Points: {exam.total_points}",
            "",
            "Questions:",
            "----------",
            "",
        ]
        for i, q in enumerate(exam.questions, start=1):
            lines.append(f"{i}. {q.question} ({q.points} points)")
            if q.type == "multiple-choice" and q.options:
                lines.extend(f"   {chr(65 + j)}. {opt}" for j, opt in enumerate(q.options))
            elif q.type == "true-false":
                lines.extend(["   A. True", "   B. False"])
            elif q.type in ("short-answer", "essay"):
                lines.append("   Answer: ________________________________")
            elif q.type == "fill-blank":
                lines.append("   Fill in the blank: ____________________")
            lines.append("")

        lines.extend(["Answer Key:", "-----------", ""])
        for i, q in enumerate(exam.questions, start=1):
            if q.type == "multiple-choice" and isinstance(q.correct_answer, int):
                answer = chr(65 + q.correct_answer)
            elif q.type == "true-false":
                answer = "True" if q.correct_answer in (0, "True", "true", True) else "False"
            else:
                answer = "" if q.correct_answer is None else str(q.correct_answer)
            lines.append(f"{i}. {answer} - {q.explanation}" if q.explanation else f"{i}. {answer}")
        return "\n".join(lines) + "\n"

    def analyze_user_performance(self, series: ExamSeries, completed_exams: list[Exam]) -> str:
        if not completed_exams:
            return (
                "No completed exams to analyze. Please complete at least one exam "
                "to receive personalized improvement suggestions."
            )
        prompt = build_performance_analysis_prompt(series, completed_exams)
        try:
            return self.completer.complete(prompt)
        except TransportError as e:
            logger.error("Performance analysis unavailable: %s", e)
            return _basic_summary(series, completed_exams)


def _same_answer(given: t.Any, expected: t.Any) -> bool:
    if isinstance(given, str) and isinstance(expected, str):
        return given.strip().lower() == expected.strip().lower()
    return given == expected and type(given) is type(expected)


def _basic_summary(series: ExamSeries, completed: list[Exam]) -> str:
    scores = [e.score or 0 for e in completed]
    avg = round(sum(scores) / len(scores))
    avg_time = round(sum(e.time_taken or 0 for e in completed) / len(completed))
    if avg >= 80:
        advice = ["Excellent performance! Continue with advanced levels."]
    elif avg >= 70:
        advice = ["Good progress! Focus on reviewing missed concepts."]
    else:
        advice = ["Consider reviewing fundamental concepts before advancing."]
    if min(scores) < 70:
        advice.append("Retake lower-scoring exams to reinforce learning.")
    if avg_time > 0 and avg_time > completed[0].estimated_time * 60:
        advice.append("Work on time management and question pacing.")

    out = [
        "Unable to generate AI analysis at this time. Please try again later.",
        "",
        "BASIC PERFORMANCE SUMMARY:",
        f"- Average Score: {avg}%",
        f"- Completed: {len(completed)}/{series.total_exams} exams",
        f"- Score Range: {min(scores)}% - {max(scores)}%",
        "",
        "GENERAL RECOMMENDATIONS:",
    ]
    out.extend(f"- {a}" for a in advice)
    return "\n".join(out)
