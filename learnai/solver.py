from __future__ import annotations

import logging
import typing as t

from .decoding import decode_problems
from .errors import InputError, MalformedContentError
from .file_utils import FileUtils
from .json_utils import ResponseNormalizer, escape_inch_quotes
from .language import name_for
from .models import Problem, SolutionStep, UploadedFile, new_id
from .prompts import build_solver_prompt

if t.TYPE_CHECKING:
    from .llm_clients import TextCompleter, TextExtractor

logger = logging.getLogger(__name__)


class SolverService:
    """Turns uploaded homework (or typed text) into worked, step-by-step solutions."""

    def __init__(
        self,
        completer: "TextCompleter",
        extractor: "TextExtractor | None" = None,
        *,
        file_utils: FileUtils | None = None,
        normalizer: ResponseNormalizer | None = None,
    ) -> None:
        self.completer = completer
        self.extractor = extractor
        self.file_utils = file_utils or FileUtils()
        self.normalizer = normalizer or ResponseNormalizer()

    def analyze_problems(self, files: list[UploadedFile], language: str = "en") -> list[Problem]:
        if not files:
            raise InputError("Please upload at least one file with problems to solve.")
        problems: list[Problem] = []
        for f in files:
            logger.info("Analyzing problems in %s", f.filename)
            text = self.file_utils.extract_text(f, self.extractor)
            problems.extend(self._solve(text, source=f.filename, language=language))
        return problems

    def analyze_problems_text(self, text: str, language: str = "en") -> list[Problem]:
        if not (text or "").strip():
            raise InputError("Please enter the problem text to solve.")
        return self._solve(text, source="text", language=language)

    def _solve(self, problem_text: str, *, source: str, language: str) -> list[Problem]:
        prompt = build_solver_prompt(problem_text, name_for(language))
        try:
            raw = self.completer.complete(prompt)
        except Exception:
            logger.exception("Solver request failed for %s", source)
            raise

        batch = new_id(source)
        try:
            data = self.normalizer.parse(escape_inch_quotes(raw))
        except MalformedContentError as e:
            logger.warning("Failed to parse solver response for %s: %s", source, e)
            return [_error_problem(batch, source)]

        decoded = decode_problems(data, id_for=lambda i: f"{batch}_{i}")
        if not decoded.ok:
            logger.warning("Failed to decode solver response for %s: %s", source, decoded.error)
            return [_error_problem(batch, source)]
        problems = t.cast(list[Problem], decoded.value)
        logger.info("Solved %d problems from %s", len(problems), source)
        return problems


def _error_problem(batch: str, source: str) -> Problem:
    return Problem(
        id=f"{batch}_error",
        question=f"Error processing {source}",
        solution="Error",
        steps=[
            SolutionStep(
                step=1,
                description="An error occurred",
                equation="",
                explanation="The problems in this input could not be analyzed. Please try again.",
            )
        ],
        difficulty="Hard",
        topic="Error",
    )
