from __future__ import annotations

import logging
import typing as t

from .decoding import Decoded, decode_learning_path, decode_material, decode_quiz
from .errors import InputError, MalformedContentError
from .json_utils import ResponseNormalizer
from .language import name_for
from .models import (
    LearningMaterial,
    LearningPath,
    LearningStep,
    MaterialSection,
    QuizQuestion,
    StepExample,
    new_id,
)
from .prompts import build_learning_material_prompt, build_learning_path_prompt, build_quiz_prompt

if t.TYPE_CHECKING:
    from .llm_clients import TextCompleter

logger = logging.getLogger(__name__)

T = t.TypeVar("T")


class LearningRoadService:
    def __init__(self, completer: "TextCompleter", *, normalizer: ResponseNormalizer | None = None) -> None:
        self.completer = completer
        self.normalizer = normalizer or ResponseNormalizer()

    def _complete_and_decode(
        self,
        *,
        what: str,
        prompt: str,
        decode: t.Callable[[t.Any], Decoded[T]],
    ) -> Decoded[T]:
        try:
            text = self.completer.complete(prompt)
        except Exception:
            logger.exception("Failed to generate %s", what)
            raise
        try:
            data = self.normalizer.parse(text)
        except MalformedContentError as e:
            decoded: Decoded[T] = Decoded.failure(str(e))
        else:
            decoded = decode(data)
        if not decoded.ok:
            logger.warning("Failed to parse %s response: %s", what, decoded.error)
            logger.debug("Raw %s response: %s", what, text)
        return decoded

    def generate_learning_path(self, topic: str, language: str = "en") -> LearningPath:
        topic = (topic or "").strip()
        if not topic:
            raise InputError("Please enter a topic to build a learning path for.")
        logger.info("Generating learning path for: %s", topic)

        path_id = new_id("path")
        decoded = self._complete_and_decode(
            what="learning path",
            prompt=build_learning_path_prompt(topic, name_for(language)),
            decode=lambda data: decode_learning_path(data, path_id=path_id, topic=topic),
        )
        if decoded.ok:
            return t.cast(LearningPath, decoded.value)
        return fallback_learning_path(topic)

    def generate_learning_material(
        self,
        topic: str,
        step_title: str,
        step_description: str,
        key_topics: list[str],
        language: str = "en",
    ) -> LearningMaterial:
        if not (topic or "").strip() or not (step_title or "").strip():
            raise InputError("A topic and a step title are required for learning material.")
        logger.info("Generating learning material for: %s - %s", topic, step_title)

        material_id = new_id("material")
        decoded = self._complete_and_decode(
            what="learning material",
            prompt=build_learning_material_prompt(topic, step_title, step_description, key_topics, name_for(language)),
            decode=lambda data: decode_material(data, material_id=material_id, topic=topic, step_title=step_title),
        )
        if decoded.ok:
            return t.cast(LearningMaterial, decoded.value)
        return fallback_learning_material(topic, step_title, step_description)

    def generate_quiz(self, topic: str, step_title: str, language: str = "en") -> list[QuizQuestion]:
        if not (topic or "").strip() or not (step_title or "").strip():
            raise InputError("A topic and a step title are required for a quiz.")
        logger.info("Generating quiz for: %s - %s", topic, step_title)

        batch = new_id("quiz")
        decoded = self._complete_and_decode(
            what="quiz",
            prompt=build_quiz_prompt(topic, step_title, name_for(language)),
            decode=lambda data: decode_quiz(data, id_for=lambda i: f"{batch}_{i}"),
        )
        if decoded.ok:
            return t.cast(list[QuizQuestion], decoded.value)
        return fallback_quiz(topic, step_title)


def fallback_learning_path(topic: str) -> LearningPath:
    intro = f"Introduction to {topic}"
    core = f"Core Principles of {topic}"
    return LearningPath(
        id=new_id("fallback"),
        topic=topic,
        total_estimated_time="3 hours",
        difficulty="Mixed",
        description=f"A comprehensive introduction to {topic} covering fundamental concepts and practical applications.",
        steps=[
            LearningStep(
                step=1,
                title=intro,
                description=f"Learn the fundamental concepts and basic principles of {topic}.",
                estimated_time="30 min",
                difficulty="Beginner",
                key_topics=["Basic concepts", "Key terminology", "Historical context"],
                practice_exercises=["Read introductory materials", "Complete vocabulary quiz", "Watch overview video"],
            ),
            LearningStep(
                step=2,
                title=core,
                description=f"Understand the main theories and principles that govern {topic}.",
                estimated_time="45 min",
                difficulty="Intermediate",
                prerequisites=[intro],
                key_topics=["Main theories", "Core principles", "Key relationships"],
                practice_exercises=["Solve practice problems", "Create concept map", "Explain principles"],
            ),
            LearningStep(
                step=3,
                title=f"Advanced Applications of {topic}",
                description=f"Explore real-world applications and advanced concepts in {topic}.",
                estimated_time="60 min",
                difficulty="Advanced",
                prerequisites=[core],
                key_topics=["Real-world applications", "Advanced concepts", "Current research"],
                practice_exercises=["Case study analysis", "Project work", "Research assignment"],
            ),
        ],
    )


def fallback_learning_material(topic: str, step_title: str, step_description: str) -> LearningMaterial:
    return LearningMaterial(
        id=new_id("fallback_material"),
        step_title=step_title,
        topic=topic,
        introduction=(
            f"Welcome to learning about {step_title}. This section will help you understand the fundamental "
            f"concepts and practical applications of this important topic in {topic}."
        ),
        sections=[
            MaterialSection(
                title="Introduction to the Concept",
                content=(
                    f"{step_description} This is a fundamental concept that forms the building blocks for more "
                    "advanced topics. Understanding this concept thoroughly will help you progress in your learning "
                    "journey and apply these principles in real-world scenarios."
                ),
                examples=[
                    StepExample(label="Example 1", detail="Basic example 1"),
                    StepExample(label="Example 2", detail="Basic example 2"),
                    StepExample(label="Example 3", detail="Basic example 3"),
                ],
                key_points=["Key concept 1", "Key concept 2", "Key concept 3"],
            ),
            MaterialSection(
                title="Practical Applications",
                content=(
                    "Now that you understand the basics, let's explore how this concept applies in practice. These "
                    "applications will help you see the relevance and importance of what you're learning, making it "
                    "easier to remember and apply in different contexts."
                ),
                examples=[
                    StepExample(label="Example 1", detail="Application example 1"),
                    StepExample(label="Example 2", detail="Application example 2"),
                ],
                key_points=["Practical point 1", "Practical point 2"],
            ),
        ],
        summary=(
            f"In this section, you learned about {step_title} and its importance in {topic}. You explored the "
            "fundamental concepts and saw practical applications that demonstrate the real-world relevance of this "
            "knowledge."
        ),
        next_steps=["Practice the concepts learned", "Review the key points", "Prepare for the quiz"],
        estimated_read_time="10 minutes",
    )


def fallback_quiz(topic: str, step_title: str) -> list[QuizQuestion]:
    return [
        QuizQuestion(
            id=new_id("fallback_quiz"),
            question=f'What is the most important concept to understand in "{step_title}"?',
            options=[
                "Understanding the basic definitions",
                "Memorizing all the details",
                "Practical application of concepts",
                "Historical background only",
            ],
            correct_answer=2,
            explanation=(
                "Practical application of concepts is typically the most important aspect of learning any topic, "
                "as it demonstrates true understanding and enables real-world use."
            ),
            difficulty="Medium",
        )
    ]
