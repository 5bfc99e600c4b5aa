"""Mongo-backed storage for exam series, practice exams and learning paths.

Each record lives in its own collection keyed by ``_id`` (the record id).
Simulator exams point back at their series through ``seriesId``; question and
step lists are kept as JSON text so score updates never touch them.
"""
from __future__ import annotations

import contextlib
import dataclasses
import json
import logging
import typing as t

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from learnai.errors import InputError, PersistenceError
from learnai.models import (
    Exam,
    ExamSeries,
    LearningPath,
    PracticeExam,
    Question,
    SimulatorSettings,
    utc_now_iso,
)

from .mongo import connect, transactions_enabled

logger = logging.getLogger(__name__)

JsonDict = dict[str, t.Any]

EXAM_SERIES = "examSeries"
SIMULATOR_EXAMS = "simulatorExams"
PRACTICE_EXAMS = "practiceExams"
LEARNING_PATHS = "learningPaths"
COLLECTIONS = (EXAM_SERIES, SIMULATOR_EXAMS, PRACTICE_EXAMS, LEARNING_PATHS)


def _with_id(doc: JsonDict) -> JsonDict:
    out = dict(doc)
    out["id"] = out.pop("_id")
    return out


def _questions_text(questions: list[Question]) -> str:
    return json.dumps([q.to_dict() for q in questions], ensure_ascii=False)


def _load_json_text(raw: t.Any, what: str, record_id: str) -> t.Any:
    try:
        return json.loads(raw or "[]")
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Stored {what} for {record_id} are corrupted") from e


def _check_score(score: int, time_taken_s: int) -> None:
    if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
        raise InputError(f"Score must be an integer between 0 and 100, got {score!r}.")
    if isinstance(time_taken_s, bool) or not isinstance(time_taken_s, int) or time_taken_s < 0:
        raise InputError(f"Time taken must be a non-negative number of seconds, got {time_taken_s!r}.")


class PersistenceStore:
    def __init__(
        self,
        uri: str | None = None,
        db_name: str | None = None,
        *,
        client: MongoClient | None = None,
        use_transactions: bool | None = None,
    ) -> None:
        self.uri = uri
        self.db_name = db_name
        self.use_transactions = transactions_enabled() if use_transactions is None else use_transactions
        self._client = client
        self._owns_client = client is None
        self._db: Database | None = None

    def open(self) -> "PersistenceStore":
        if self._db is not None:
            return self
        with self._mongo_errors("open the store"):
            if self._client is None:
                self._client, self._db = connect(self.uri, self.db_name)
            else:
                self._db = self._client[self.db_name or "learnai"]
            self._db[SIMULATOR_EXAMS].create_index([("seriesId", ASCENDING), ("difficultyLevel", ASCENDING)])
            for name in COLLECTIONS:
                self._db[name].create_index([("createdAt", DESCENDING)])
        return self

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None
        self._db = None

    def __enter__(self) -> "PersistenceStore":
        return self.open()

    def __exit__(self, *exc_info: t.Any) -> None:
        self.close()

    @property
    def db(self) -> Database:
        if self._db is None:
            raise PersistenceError("The store is not open.")
        return self._db

    @contextlib.contextmanager
    def _mongo_errors(self, action: str) -> t.Iterator[None]:
        try:
            yield
        except PyMongoError as e:
            logger.exception("Failed to %s", action)
            raise PersistenceError(f"Failed to {action}: {e}") from e

    def _run_transaction(self, fn: t.Callable[[t.Any], None]) -> None:
        if self._client is None:
            raise PersistenceError("The store is not open.")
        with self._client.start_session() as session:
            session.with_transaction(fn)

    # Exam series

    def save_exam_series(
        self,
        series: ExamSeries,
        settings: SimulatorSettings | None = None,
        time_minutes: int | None = None,
    ) -> None:
        db = self.db
        now = utc_now_iso()
        series_doc: JsonDict = {
            "_id": series.id,
            "topic": series.topic,
            "description": series.description,
            "totalExams": series.total_exams,
            "settings": settings.to_dict() if settings else None,
            "time": time_minutes,
            "createdAt": series.created_at,
            "updatedAt": now,
        }
        exam_docs = [
            {
                "_id": exam.id,
                "seriesId": series.id,
                "title": exam.title,
                "description": exam.description,
                "instructions": exam.instructions,
                "totalPoints": exam.total_points,
                "estimatedTime": exam.estimated_time,
                "difficultyLevel": exam.difficulty_level,
                "difficultyLabel": exam.difficulty_label,
                "questionsData": _questions_text(exam.questions),
                "score": None,
                "completedAt": None,
                "timeTaken": None,
                "createdAt": exam.created_at,
            }
            for exam in series.exams
        ]

        def write(session: t.Any = None) -> None:
            for doc in exam_docs:
                db[SIMULATOR_EXAMS].replace_one({"_id": doc["_id"]}, doc, upsert=True, session=session)
            db[EXAM_SERIES].replace_one({"_id": series.id}, series_doc, upsert=True, session=session)

        with self._mongo_errors(f"save exam series {series.id}"):
            if self.use_transactions:
                self._run_transaction(write)
            else:
                self._write_or_undo(series.id, [d["_id"] for d in exam_docs], write)
        logger.info("Saved exam series %s with %d exams", series.id, len(exam_docs))

    def _write_or_undo(self, series_id: str, exam_ids: list[str], write: t.Callable[[], None]) -> None:
        # The series row goes in last, so readers never see a series before its exams.
        db = self.db
        previous_series = db[EXAM_SERIES].find_one({"_id": series_id})
        previous_exams = list(db[SIMULATOR_EXAMS].find({"_id": {"$in": exam_ids}}))
        try:
            write()
        except PyMongoError:
            logger.error("Rolling back partial write of exam series %s", series_id)
            try:
                self._restore_series(series_id, exam_ids, previous_series, previous_exams)
            except PyMongoError:
                logger.exception("Rollback of exam series %s failed", series_id)
            raise

    def _restore_series(
        self,
        series_id: str,
        exam_ids: list[str],
        previous_series: JsonDict | None,
        previous_exams: list[JsonDict],
    ) -> None:
        db = self.db
        existed = {doc["_id"] for doc in previous_exams}
        db[SIMULATOR_EXAMS].delete_many({"_id": {"$in": [i for i in exam_ids if i not in existed]}})
        for doc in previous_exams:
            db[SIMULATOR_EXAMS].replace_one({"_id": doc["_id"]}, doc, upsert=True)
        if previous_series is None:
            db[EXAM_SERIES].delete_one({"_id": series_id})
        else:
            db[EXAM_SERIES].replace_one({"_id": series_id}, previous_series, upsert=True)

    def get_exam_series(self, series_id: str) -> ExamSeries | None:
        db = self.db
        with self._mongo_errors(f"load exam series {series_id}"):
            doc = db[EXAM_SERIES].find_one({"_id": series_id})
            if doc is None:
                return None
            exam_docs = list(db[SIMULATOR_EXAMS].find({"seriesId": series_id}).sort("difficultyLevel", ASCENDING))
        return ExamSeries(
            id=doc["_id"],
            topic=doc.get("topic", ""),
            description=doc.get("description", ""),
            exams=[self._exam_from_doc(d) for d in exam_docs],
            total_exams=int(doc.get("totalExams") or len(exam_docs)),
            created_at=doc.get("createdAt") or utc_now_iso(),
        )

    def _exam_from_doc(self, doc: JsonDict) -> Exam:
        data = _with_id(doc)
        data["questions"] = _load_json_text(data.pop("questionsData", None), "questions", data["id"])
        return Exam.from_dict(data)

    def get_all_exam_series(self) -> list[JsonDict]:
        with self._mongo_errors("list exam series"):
            return [_with_id(d) for d in self.db[EXAM_SERIES].find().sort("createdAt", DESCENDING)]

    def delete_exam_series(self, series_id: str) -> bool:
        db = self.db
        deleted: list[int] = []

        def remove(session: t.Any = None) -> None:
            db[SIMULATOR_EXAMS].delete_many({"seriesId": series_id}, session=session)
            deleted.append(db[EXAM_SERIES].delete_one({"_id": series_id}, session=session).deleted_count)

        with self._mongo_errors(f"delete exam series {series_id}"):
            if self.use_transactions:
                self._run_transaction(remove)
            else:
                remove()
        logger.info("Deleted exam series %s", series_id)
        return bool(deleted and deleted[-1])

    # Simulator exams

    def get_exam(self, exam_id: str) -> Exam | None:
        with self._mongo_errors(f"load exam {exam_id}"):
            doc = self.db[SIMULATOR_EXAMS].find_one({"_id": exam_id})
        return self._exam_from_doc(doc) if doc else None

    def update_exam_score(self, exam_id: str, score: int, time_taken_s: int, completed_at: str | None = None) -> None:
        self._update_score(SIMULATOR_EXAMS, exam_id, score, time_taken_s, completed_at)

    def _update_score(
        self, collection: str, record_id: str, score: int, time_taken_s: int, completed_at: str | None
    ) -> None:
        _check_score(score, time_taken_s)
        update = {"score": score, "completedAt": completed_at or utc_now_iso(), "timeTaken": time_taken_s}
        with self._mongo_errors(f"update score of {record_id}"):
            result = self.db[collection].update_one({"_id": record_id}, {"$set": update})
        if result.matched_count == 0:
            raise PersistenceError(f"No exam with id {record_id} in {collection}")
        logger.info("Updated exam %s with score %d%% and time %ds", record_id, score, time_taken_s)

    # Practice exams

    def save_practice_exam(self, exam: PracticeExam, settings: JsonDict | None = None) -> None:
        doc = {
            "_id": exam.id,
            "title": exam.title,
            "description": exam.description,
            "instructions": exam.instructions,
            "totalPoints": exam.total_points,
            "estimatedTime": exam.estimated_time,
            "difficulty": exam.difficulty,
            "questionsData": _questions_text(exam.questions),
            "settings": json.dumps(settings if settings is not None else exam.settings, ensure_ascii=False),
            "hasAnswerKey": exam.has_answer_key,
            "score": None,
            "completedAt": None,
            "timeTaken": None,
            "createdAt": exam.created_at,
        }
        with self._mongo_errors(f"save practice exam {exam.id}"):
            self.db[PRACTICE_EXAMS].replace_one({"_id": exam.id}, doc, upsert=True)

    def get_practice_exam(self, exam_id: str) -> PracticeExam | None:
        with self._mongo_errors(f"load practice exam {exam_id}"):
            doc = self.db[PRACTICE_EXAMS].find_one({"_id": exam_id})
        if doc is None:
            return None
        data = _with_id(doc)
        data["questions"] = _load_json_text(data.pop("questionsData", None), "questions", exam_id)
        data["settings"] = _load_json_text(data.get("settings") or "{}", "settings", exam_id)
        return PracticeExam.from_dict(data)

    def get_all_practice_exams(self) -> list[JsonDict]:
        with self._mongo_errors("list practice exams"):
            docs = self.db[PRACTICE_EXAMS].find({}, {"questionsData": 0}).sort("createdAt", DESCENDING)
            return [_with_id(d) for d in docs]

    def delete_practice_exam(self, exam_id: str) -> bool:
        with self._mongo_errors(f"delete practice exam {exam_id}"):
            return self.db[PRACTICE_EXAMS].delete_one({"_id": exam_id}).deleted_count > 0

    def update_practice_exam_score(
        self, exam_id: str, score: int, time_taken_s: int, completed_at: str | None = None
    ) -> None:
        self._update_score(PRACTICE_EXAMS, exam_id, score, time_taken_s, completed_at)

    # Learning paths

    def save_learning_path(self, path: LearningPath) -> None:
        steps = [
            dataclasses.replace(s, step=i).to_dict(include_completed=False)
            for i, s in enumerate(path.steps, start=1)
        ]
        doc = {
            "_id": path.id,
            "topic": path.topic,
            "description": path.description,
            "totalEstimatedTime": path.total_estimated_time,
            "difficulty": path.difficulty,
            "stepsData": json.dumps(steps, ensure_ascii=False),
            "createdAt": path.created_at or utc_now_iso(),
        }
        with self._mongo_errors(f"save learning path {path.id}"):
            self.db[LEARNING_PATHS].replace_one({"_id": path.id}, doc, upsert=True)
        logger.info("Saved learning path %s (%d steps)", path.id, len(steps))

    def get_learning_path(self, path_id: str) -> LearningPath | None:
        with self._mongo_errors(f"load learning path {path_id}"):
            doc = self.db[LEARNING_PATHS].find_one({"_id": path_id})
        if doc is None:
            return None
        data = _with_id(doc)
        data["steps"] = _load_json_text(data.pop("stepsData", None), "steps", path_id)
        return LearningPath.from_dict(data)

    def get_all_learning_paths(self) -> list[JsonDict]:
        with self._mongo_errors("list learning paths"):
            docs = self.db[LEARNING_PATHS].find({}, {"stepsData": 0}).sort("createdAt", DESCENDING)
            return [_with_id(d) for d in docs]

    def delete_learning_path(self, path_id: str) -> bool:
        with self._mongo_errors(f"delete learning path {path_id}"):
            return self.db[LEARNING_PATHS].delete_one({"_id": path_id}).deleted_count > 0

    # Utilities

    def get_storage_stats(self) -> dict[str, int]:
        with self._mongo_errors("count stored records"):
            return {name: self.db[name].count_documents({}) for name in COLLECTIONS}

    def clear_all_data(self) -> None:
        with self._mongo_errors("clear stored data"):
            for name in COLLECTIONS:
                self.db[name].delete_many({})
        logger.info("Cleared all stored data")
