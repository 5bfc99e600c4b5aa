import io
import json
import unittest
from unittest.mock import MagicMock

import mongomock

import main
from backend.store import PersistenceStore
from learnai.errors import InputError, PersistenceError, TransportError
from learnai.models import (
    Exam,
    ExamSeries,
    LearningPath,
    LearningStep,
    Problem,
    Question,
    QuizQuestion,
    SimulatorSettings,
)


def sample_series():
    exam = Exam(
        id="exam_abc_1",
        series_id="series_abc",
        title="Level 1: Foundation - Algebra",
        description="d",
        instructions="i",
        questions=[Question(id="q1", question="2+2?", type="multiple-choice", options=["3", "4"], correct_answer=1, points=100)],
        total_points=100,
        estimated_time=30,
        difficulty_level=1,
        difficulty_label="Foundation",
    )
    return ExamSeries(id="series_abc", topic="Algebra", description="linear", exams=[exam], total_exams=1)


class TestServer(unittest.TestCase):
    def setUp(self):
        self.store = PersistenceStore(db_name="learnai_test", client=mongomock.MongoClient(), use_transactions=False).open()
        self.exam_service = MagicMock()
        self.road_service = MagicMock()
        self.solver_service = MagicMock()
        server = main.create_server(self.store, self.exam_service, self.road_service, self.solver_service)
        server.testing = True
        self.app = server.test_client()

    def tearDown(self):
        self.store.close()

    def test_hello(self):
        response = self.app.get("/api/hello")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data), {"message": "API Working!"})

    def test_generate_exam_series_saves_result(self):
        self.exam_service.generate_exam_series.return_value = sample_series()
        response = self.app.post(
            "/api/examSeries",
            json={
                "seriesTopic": "Algebra",
                "description": "linear",
                "settings": {"numberOfExams": 1, "timePerExam": 30},
                "language": "es",
            },
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(json.loads(response.data)["id"], "series_abc")
        kwargs = self.exam_service.generate_exam_series.call_args.kwargs
        self.assertEqual(kwargs["settings"], SimulatorSettings(number_of_exams=1, time_per_exam=30))
        self.assertEqual(kwargs["exam_time_minutes"], 30)
        self.assertEqual(kwargs["language"], "es")
        self.assertIsNotNone(self.store.get_exam_series("series_abc"))

    def test_generate_exam_series_with_files(self):
        self.exam_service.generate_exam_series.return_value = sample_series()
        response = self.app.post(
            "/api/examSeries",
            data={
                "seriesTopic": "Algebra",
                "numberOfExams": "1",
                "examTime": "45",
                "referenceFiles": (io.BytesIO(b"%PDF-1.4"), "midterm.pdf"),
            },
            content_type="multipart/form-data",
        )
        self.assertEqual(response.status_code, 201)
        kwargs = self.exam_service.generate_exam_series.call_args.kwargs
        self.assertEqual(kwargs["reference_files"][0].filename, "midterm.pdf")
        self.assertEqual(kwargs["reference_files"][0].data, b"%PDF-1.4")
        self.assertEqual(kwargs["exam_time_minutes"], 45)

    def test_error_mapping(self):
        cases = [
            (InputError("Please provide either an exam description or upload reference materials."), 400),
            (TransportError("Groq HTTPError 503", status=503), 502),
            (PersistenceError("Failed to save"), 500),
        ]
        for error, status in cases:
            with self.subTest(status=status):
                self.exam_service.generate_exam_series.side_effect = error
                response = self.app.post("/api/examSeries", json={"settings": {"numberOfExams": 1}})
                self.assertEqual(response.status_code, status)
                self.assertEqual(json.loads(response.data), {"error": str(error)})

    def test_missing_settings_is_bad_request(self):
        response = self.app.post("/api/examSeries", json={"description": "x"})
        self.assertEqual(response.status_code, 400)

    def test_non_numeric_settings_are_bad_requests(self):
        response = self.app.post("/api/examSeries", json={"description": "x", "settings": {"numberOfExams": "three"}})
        self.assertEqual(response.status_code, 400)
        self.assertIn("numberOfExams", json.loads(response.data)["error"])

        response = self.app.post(
            "/api/examSeries",
            data={
                "numberOfExams": "2",
                "timePerExam": "half an hour",
                "referenceFiles": (io.BytesIO(b"%PDF-1.4"), "midterm.pdf"),
            },
            content_type="multipart/form-data",
        )
        self.assertEqual(response.status_code, 400)
        self.exam_service.generate_exam_series.assert_not_called()

    def test_series_read_delete_and_not_found(self):
        self.store.save_exam_series(sample_series())
        self.assertEqual(json.loads(self.app.get("/api/examSeries").data)[0]["id"], "series_abc")
        self.assertEqual(json.loads(self.app.get("/api/examSeries/series_abc").data)["exams"][0]["id"], "exam_abc_1")
        self.assertEqual(self.app.delete("/api/examSeries/series_abc").status_code, 200)
        self.assertEqual(self.app.get("/api/examSeries/series_abc").status_code, 404)
        self.assertEqual(self.app.delete("/api/examSeries/series_abc").status_code, 404)

    def test_submit_exam(self):
        self.store.save_exam_series(sample_series())
        self.exam_service.submit_exam.return_value = 100
        response = self.app.post("/api/exams/exam_abc_1/submit", json={"answers": [1], "timeTaken": 120})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data)["score"], 100)
        store, exam, answers, taken = self.exam_service.submit_exam.call_args.args
        self.assertIs(store, self.store)
        self.assertEqual((exam.id, answers, taken), ("exam_abc_1", [1], 120))
        self.assertEqual(self.app.post("/api/exams/missing/submit", json={"answers": [], "timeTaken": 1}).status_code, 404)

    def test_score_update_and_validation(self):
        self.store.save_exam_series(sample_series())
        self.assertEqual(self.app.post("/api/exams/exam_abc_1/score", json={"score": 80, "timeTaken": 60}).status_code, 200)
        self.assertEqual(self.store.get_exam("exam_abc_1").score, 80)
        self.assertEqual(self.app.post("/api/exams/exam_abc_1/score", json={"score": 180, "timeTaken": 60}).status_code, 400)
        self.assertEqual(self.app.post("/api/exams/exam_abc_1/score", json={"timeTaken": 60}).status_code, 400)

    def test_exam_text_and_analysis(self):
        self.store.save_exam_series(sample_series())
        self.store.update_exam_score("exam_abc_1", 100, 60)
        self.exam_service.render_exam_text.return_value = "Level 1\n"
        self.exam_service.analyze_user_performance.return_value = "Great work"
        text = self.app.get("/api/exams/exam_abc_1/text")
        self.assertEqual(text.mimetype, "text/plain")
        self.assertEqual(text.data, b"Level 1\n")
        analysis = self.app.get("/api/examSeries/series_abc/analysis")
        self.assertEqual(json.loads(analysis.data), {"analysis": "Great work"})
        completed = self.exam_service.analyze_user_performance.call_args.args[1]
        self.assertEqual([e.score for e in completed], [100])

    def test_learning_path_generate_and_read(self):
        path = LearningPath(
            id="path_1",
            topic="Graphs",
            total_estimated_time="1 hour",
            difficulty="Beginner",
            description="d",
            steps=[LearningStep(7, "Nodes", "", "30 min", "Beginner", [], [])],
        )
        self.road_service.generate_learning_path.return_value = path
        response = self.app.post("/api/learningPaths", json={"topic": "Graphs"})
        self.assertEqual(response.status_code, 201)
        stored = json.loads(self.app.get("/api/learningPaths/path_1").data)
        self.assertEqual(stored["steps"][0]["step"], 1)
        self.assertEqual(len(json.loads(self.app.get("/api/learningPaths").data)), 1)
        self.assertEqual(self.app.delete("/api/learningPaths/path_1").status_code, 200)
        self.assertEqual(self.app.get("/api/learningPaths/path_1").status_code, 404)

    def test_quiz_and_material(self):
        self.road_service.generate_quiz.return_value = [
            QuizQuestion(id="quiz_1_0", question="Q", options=["a", "b"], correct_answer=0, explanation="", difficulty="Easy")
        ]
        quiz = json.loads(self.app.post("/api/quiz", json={"topic": "Graphs", "stepTitle": "Nodes"}).data)
        self.assertEqual(quiz[0]["id"], "quiz_1_0")
        self.road_service.generate_quiz.assert_called_once_with("Graphs", "Nodes", "en")

        self.road_service.generate_learning_material.side_effect = InputError("A topic and a step title are required")
        self.assertEqual(self.app.post("/api/learningMaterial", json={"topic": "Graphs"}).status_code, 400)

    def test_solver_text_and_files(self):
        self.solver_service.analyze_problems_text.return_value = []
        response = self.app.post("/api/solve", json={"text": "hello", "language": "de"})
        self.assertEqual(json.loads(response.data), {"problems": [], "found": 0})
        self.solver_service.analyze_problems_text.assert_called_once_with("hello", "de")

        self.solver_service.analyze_problems.return_value = [
            Problem(id="hw.png_1_0", question="2x=4", solution="x=2", steps=[], difficulty="Easy", topic="Algebra")
        ]
        response = self.app.post(
            "/api/solve",
            data={"files": (io.BytesIO(b"\x89PNG"), "hw.png"), "language": "en"},
            content_type="multipart/form-data",
        )
        self.assertEqual(json.loads(response.data)["found"], 1)
        files, language = self.solver_service.analyze_problems.call_args.args
        self.assertEqual(files[0].filename, "hw.png")
        self.assertEqual(language, "en")

    def test_storage_routes(self):
        self.store.save_exam_series(sample_series())
        stats = json.loads(self.app.get("/api/storage/stats").data)
        self.assertEqual(stats["examSeries"], 1)
        self.assertEqual(self.app.post("/api/storage/clear").status_code, 200)
        self.assertEqual(json.loads(self.app.get("/api/storage/stats").data)["simulatorExams"], 0)

    def test_practice_exam_not_found(self):
        self.assertEqual(self.app.get("/api/practiceExams/nope").status_code, 404)
        self.assertEqual(json.loads(self.app.get("/api/practiceExams").data), [])

    def test_unknown_api_route(self):
        self.assertEqual(self.app.get("/api/doesNotExist").status_code, 404)


if __name__ == "__main__":
    unittest.main()
