import unittest
from unittest.mock import MagicMock, patch

import mongomock
from pymongo.errors import OperationFailure

from backend.store import EXAM_SERIES, SIMULATOR_EXAMS, PersistenceStore
from learnai.errors import InputError, PersistenceError
from learnai.models import (
    DIFFICULTY_LABELS,
    Exam,
    ExamSeries,
    LearningPath,
    LearningStep,
    PracticeExam,
    Question,
    SimulatorSettings,
)


def make_exam(series_id, level):
    return Exam(
        id=f"exam_{series_id}_{level}",
        series_id=series_id,
        title=f"Level {level}",
        description="d",
        instructions="i",
        questions=[
            Question(
                id=f"q{level}_1",
                question="Pick one",
                type="multiple-choice",
                options=["a", "b", "c"],
                correct_answer=2,
                points=60,
                explanation="c is right",
                difficulty="Hard",
            ),
            Question(id=f"q{level}_2", question="Explain", type="essay", correct_answer="anything", points=40),
        ],
        total_points=100,
        estimated_time=30,
        difficulty_level=level,
        difficulty_label=DIFFICULTY_LABELS[level - 1],
        created_at=f"2026-01-0{level}T00:00:00+00:00",
    )


def make_series(series_id="series_1", levels=3, created_at="2026-01-01T00:00:00+00:00"):
    return ExamSeries(
        id=series_id,
        topic="Algebra",
        description="linear equations",
        exams=[make_exam(series_id, level) for level in range(1, levels + 1)],
        total_exams=levels,
        created_at=created_at,
    )


def make_path(path_id="path_1", created_at="2026-01-01T00:00:00+00:00"):
    return LearningPath(
        id=path_id,
        topic="Graphs",
        total_estimated_time="2 hours",
        difficulty="Beginner",
        description="From nodes to shortest paths",
        steps=[
            LearningStep(4, "Nodes", "", "30 min", "Beginner", ["vertex"], ["draw one"], completed=True),
            LearningStep(4, "Edges", "", "30 min", "Beginner", [], [], prerequisites=["Nodes"]),
            LearningStep(1, "Paths", "", "60 min", "Intermediate", [], []),
        ],
        created_at=created_at,
    )


class StoreTestCase(unittest.TestCase):
    def setUp(self):
        self.client = mongomock.MongoClient()
        self.store = PersistenceStore(db_name="learnai_test", client=self.client, use_transactions=False).open()

    def tearDown(self):
        self.store.close()


class TestExamSeriesStorage(StoreTestCase):
    def test_round_trip(self):
        series = make_series()
        self.store.save_exam_series(series, SimulatorSettings(number_of_exams=3), 30)
        self.assertEqual(self.store.get_exam_series("series_1"), series)

    def test_exams_come_back_sorted_by_level(self):
        series = make_series()
        series.exams.reverse()
        self.store.save_exam_series(series)
        loaded = self.store.get_exam_series("series_1")
        self.assertEqual([e.difficulty_level for e in loaded.exams], [1, 2, 3])
        self.assertEqual(loaded.exams[0].questions, make_exam("series_1", 1).questions)

    def test_missing_series(self):
        self.assertIsNone(self.store.get_exam_series("nope"))

    def test_questions_stored_as_text(self):
        self.store.save_exam_series(make_series(levels=1))
        doc = self.client["learnai_test"][SIMULATOR_EXAMS].find_one({"_id": "exam_series_1_1"})
        self.assertIsInstance(doc["questionsData"], str)
        self.assertEqual(doc["seriesId"], "series_1")
        self.assertIsNone(doc["score"])

    def test_get_all_newest_first(self):
        self.store.save_exam_series(make_series("old", 1, "2026-01-01T00:00:00+00:00"))
        self.store.save_exam_series(make_series("new", 1, "2026-03-01T00:00:00+00:00"))
        rows = self.store.get_all_exam_series()
        self.assertEqual([r["id"] for r in rows], ["new", "old"])
        self.assertNotIn("exams", rows[0])

    def test_delete_cascades(self):
        self.store.save_exam_series(make_series("keep", 2))
        self.store.save_exam_series(make_series("drop", 3))
        self.assertTrue(self.store.delete_exam_series("drop"))
        self.assertEqual([r["id"] for r in self.store.get_all_exam_series()], ["keep"])
        self.assertIsNone(self.store.get_exam_series("drop"))
        self.assertIsNone(self.store.get_exam("exam_drop_1"))
        self.assertEqual(self.client["learnai_test"][SIMULATOR_EXAMS].count_documents({"seriesId": "drop"}), 0)
        self.assertEqual(len(self.store.get_exam_series("keep").exams), 2)
        self.assertFalse(self.store.delete_exam_series("drop"))

    def test_failed_save_leaves_nothing_behind(self):
        original = mongomock.collection.Collection.replace_one

        def failing(coll, filter, *args, **kwargs):
            if coll.name == EXAM_SERIES:
                raise OperationFailure("disk full")
            return original(coll, filter, *args, **kwargs)

        with patch.object(mongomock.collection.Collection, "replace_one", autospec=True, side_effect=failing):
            with self.assertRaises(PersistenceError):
                self.store.save_exam_series(make_series())
        self.assertIsNone(self.store.get_exam_series("series_1"))
        self.assertEqual(self.client["learnai_test"][SIMULATOR_EXAMS].count_documents({}), 0)

    def test_failed_resave_keeps_previous_series(self):
        self.store.save_exam_series(make_series())
        self.store.update_exam_score("exam_series_1_2", 75, 600)
        original = mongomock.collection.Collection.replace_one
        calls = []

        def fail_second_write(coll, filter, *args, **kwargs):
            calls.append(filter)
            if len(calls) == 2:
                raise OperationFailure("primary stepped down")
            return original(coll, filter, *args, **kwargs)

        resaved = make_series()
        resaved.topic = "Geometry"
        with patch.object(mongomock.collection.Collection, "replace_one", autospec=True, side_effect=fail_second_write):
            with self.assertRaises(PersistenceError):
                self.store.save_exam_series(resaved)

        loaded = self.store.get_exam_series("series_1")
        self.assertIsNotNone(loaded)
        self.assertEqual(loaded.topic, "Algebra")
        self.assertEqual([e.score for e in loaded.exams], [None, 75, None])

    def test_failed_rollback_reports_the_write_error(self):
        original = mongomock.collection.Collection.replace_one

        def failing(coll, filter, *args, **kwargs):
            if coll.name == EXAM_SERIES:
                raise OperationFailure("disk full")
            return original(coll, filter, *args, **kwargs)

        with patch.object(mongomock.collection.Collection, "replace_one", autospec=True, side_effect=failing), \
                patch.object(mongomock.collection.Collection, "delete_many", side_effect=OperationFailure("gone")):
            with self.assertLogs("backend.store", level="ERROR") as logs:
                with self.assertRaises(PersistenceError) as ctx:
                    self.store.save_exam_series(make_series())
        self.assertIn("disk full", str(ctx.exception))
        self.assertTrue(any("Rollback of exam series series_1 failed" in line for line in logs.output))


class TestScores(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.store.save_exam_series(make_series(levels=2))

    def test_retake_overwrites(self):
        self.store.update_exam_score("exam_series_1_1", 40, 900, completed_at="2026-02-01T00:00:00+00:00")
        self.store.update_exam_score("exam_series_1_1", 85, 700, completed_at="2026-02-02T00:00:00+00:00")
        exam = self.store.get_exam("exam_series_1_1")
        self.assertEqual((exam.score, exam.time_taken, exam.completed_at), (85, 700, "2026-02-02T00:00:00+00:00"))
        self.assertEqual(exam.questions, make_exam("series_1", 1).questions)
        self.assertIsNone(self.store.get_exam("exam_series_1_2").score)

    def test_score_fields_visible_through_series(self):
        self.store.update_exam_score("exam_series_1_2", 70, 1200)
        loaded = self.store.get_exam_series("series_1")
        self.assertEqual([e.score for e in loaded.exams], [None, 70])
        self.assertIsNotNone(loaded.exams[1].completed_at)

    def test_invalid_scores(self):
        for score in (-1, 101, 50.5, True):
            with self.subTest(score=score):
                with self.assertRaises(InputError):
                    self.store.update_exam_score("exam_series_1_1", score, 10)
        with self.assertRaises(InputError):
            self.store.update_exam_score("exam_series_1_1", 10, -5)

    def test_unknown_exam(self):
        with self.assertRaises(PersistenceError):
            self.store.update_exam_score("missing", 50, 10)


class TestPracticeExams(StoreTestCase):
    def make_practice(self, exam_id="practice_1", created_at="2026-01-01T00:00:00+00:00"):
        return PracticeExam(
            id=exam_id,
            title="Midterm practice",
            description="d",
            instructions="i",
            questions=[Question(id="q1", question="1+1?", type="short-answer", correct_answer="2", points=100)],
            total_points=100,
            estimated_time=45,
            difficulty="Medium",
            has_answer_key=True,
            created_at=created_at,
        )

    def test_practice_exam_lifecycle(self):
        exam = self.make_practice()
        self.store.save_practice_exam(exam, {"questionCount": 1})
        loaded = self.store.get_practice_exam("practice_1")
        self.assertEqual(loaded.questions, exam.questions)
        self.assertEqual(loaded.settings, {"questionCount": 1})
        self.assertTrue(loaded.has_answer_key)

        self.store.update_practice_exam_score("practice_1", 90, 300)
        self.assertEqual(self.store.get_practice_exam("practice_1").score, 90)

        self.assertTrue(self.store.delete_practice_exam("practice_1"))
        self.assertIsNone(self.store.get_practice_exam("practice_1"))
        with self.assertRaises(PersistenceError):
            self.store.update_practice_exam_score("practice_1", 90, 300)

    def test_list_omits_questions(self):
        self.store.save_practice_exam(self.make_practice("a", "2026-01-01T00:00:00+00:00"))
        self.store.save_practice_exam(self.make_practice("b", "2026-02-01T00:00:00+00:00"))
        rows = self.store.get_all_practice_exams()
        self.assertEqual([r["id"] for r in rows], ["b", "a"])
        self.assertNotIn("questionsData", rows[0])


class TestLearningPaths(StoreTestCase):
    def test_steps_renumbered_and_completed_dropped(self):
        self.store.save_learning_path(make_path())
        loaded = self.store.get_learning_path("path_1")
        self.assertEqual([s.step for s in loaded.steps], [1, 2, 3])
        self.assertEqual([s.title for s in loaded.steps], ["Nodes", "Edges", "Paths"])
        self.assertFalse(loaded.steps[0].completed)
        self.assertEqual(loaded.steps[1].prerequisites, ["Nodes"])
        self.assertEqual(loaded.steps[0].key_topics, ["vertex"])
        raw = self.client["learnai_test"]["learningPaths"].find_one({"_id": "path_1"})
        self.assertNotIn("completed", raw["stepsData"])

    def test_list_and_delete(self):
        self.store.save_learning_path(make_path("p1", "2026-01-01T00:00:00+00:00"))
        self.store.save_learning_path(make_path("p2", "2026-01-02T00:00:00+00:00"))
        self.assertEqual([r["id"] for r in self.store.get_all_learning_paths()], ["p2", "p1"])
        self.assertTrue(self.store.delete_learning_path("p1"))
        self.assertIsNone(self.store.get_learning_path("p1"))


class TestStoreUtilities(StoreTestCase):
    def test_stats_and_clear(self):
        self.store.save_exam_series(make_series(levels=2))
        self.store.save_learning_path(make_path())
        self.assertEqual(
            self.store.get_storage_stats(),
            {"examSeries": 1, "simulatorExams": 2, "practiceExams": 0, "learningPaths": 1},
        )
        self.store.clear_all_data()
        self.assertEqual(set(self.store.get_storage_stats().values()), {0})

    def test_closed_store_raises(self):
        self.store.close()
        with self.assertRaises(PersistenceError):
            self.store.get_all_exam_series()

    def test_context_manager_keeps_injected_client(self):
        with PersistenceStore(db_name="learnai_test", client=self.client, use_transactions=False) as store:
            store.save_learning_path(make_path())
        self.assertEqual(self.client["learnai_test"]["learningPaths"].count_documents({}), 1)

    def test_transaction_on_closed_store_raises(self):
        store = PersistenceStore(db_name="x", use_transactions=True)
        with self.assertRaises(PersistenceError):
            store._run_transaction(MagicMock())

    def test_transactions_wrap_series_writes(self):
        client = MagicMock()
        store = PersistenceStore(db_name="x", client=client, use_transactions=True).open()
        store.save_exam_series(make_series(levels=1))
        store.delete_exam_series("series_1")
        session = client.start_session.return_value.__enter__.return_value
        self.assertEqual(session.with_transaction.call_count, 2)


if __name__ == "__main__":
    unittest.main()
