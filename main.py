import logging
import os
import sys
from typing import Any, Dict, List, Optional

from flask import Flask, Response, jsonify, request

from backend.store import PersistenceStore
from learnai import ExamSimulatorService, LearningRoadService, SolverService
from learnai.errors import InputError, PersistenceError, TransportError
from learnai.models import SimulatorSettings, UploadedFile

logger = logging.getLogger("learnai.server")


def _uploads(field: str) -> List[UploadedFile]:
    files = []
    for f in request.files.getlist(field):
        if f and f.filename:
            mime = f.mimetype if f.mimetype and f.mimetype != "application/octet-stream" else None
            files.append(UploadedFile(filename=f.filename, data=f.read(), mime_type=mime))
    return files


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InputError("Expected a JSON object body")
    return body


def _int_field(body: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    raw = body.get(key, default)
    if raw is None or raw == "":
        raise InputError(f"Missing field: {key}")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InputError(f"Field {key} must be an integer")


def _not_found(what: str):
    return jsonify({"error": f"{what} not found"}), 404


def create_server(
    store: PersistenceStore,
    exam_service: ExamSimulatorService,
    road_service: LearningRoadService,
    solver_service: SolverService,
) -> Flask:
    server = Flask(__name__)

    @server.errorhandler(InputError)
    def on_input_error(e):
        return jsonify({"error": str(e)}), 400

    @server.errorhandler(TransportError)
    def on_transport_error(e):
        return jsonify({"error": str(e)}), 502

    @server.errorhandler(PersistenceError)
    def on_persistence_error(e):
        return jsonify({"error": str(e)}), 500

    @server.route("/api/hello")
    def hello():
        return jsonify({"message": "API Working!"})

    # Exam simulator

    @server.route("/api/examSeries", methods=["POST"])
    def generate_exam_series():
        # multipart/form-data when reference files are attached, JSON otherwise
        if request.files:
            body: Dict[str, Any] = request.form.to_dict()
            settings = SimulatorSettings.from_dict(body)
        else:
            body = _json_body()
            raw_settings = body.get("settings")
            if not isinstance(raw_settings, dict):
                raise InputError("Missing field: settings")
            settings = SimulatorSettings.from_dict(raw_settings)

        exam_time = _int_field(body, "examTime", settings.time_per_exam or 60)
        series = exam_service.generate_exam_series(
            series_topic=str(body.get("seriesTopic") or "Exam Series"),
            description=str(body.get("description") or ""),
            reference_files=_uploads("referenceFiles"),
            settings=settings,
            exam_time_minutes=exam_time,
            language=str(body.get("language") or "en"),
        )
        store.save_exam_series(series, settings, exam_time)
        return jsonify(series.to_dict()), 201

    @server.route("/api/examSeries", methods=["GET"])
    def list_exam_series():
        return jsonify(store.get_all_exam_series())

    @server.route("/api/examSeries/<series_id>", methods=["GET"])
    def get_exam_series(series_id):
        series = store.get_exam_series(series_id)
        if series is None:
            return _not_found("Exam series")
        return jsonify(series.to_dict())

    @server.route("/api/examSeries/<series_id>", methods=["DELETE"])
    def delete_exam_series(series_id):
        if not store.delete_exam_series(series_id):
            return _not_found("Exam series")
        return jsonify({"deleted": series_id})

    @server.route("/api/examSeries/<series_id>/analysis", methods=["GET"])
    def analyze_exam_series(series_id):
        series = store.get_exam_series(series_id)
        if series is None:
            return _not_found("Exam series")
        completed = [e for e in series.exams if e.score is not None]
        return jsonify({"analysis": exam_service.analyze_user_performance(series, completed)})

    @server.route("/api/exams/<exam_id>/submit", methods=["POST"])
    def submit_exam(exam_id):
        body = _json_body()
        exam = store.get_exam(exam_id)
        if exam is None:
            return _not_found("Exam")
        answers = body.get("answers")
        if not isinstance(answers, list):
            raise InputError("Field answers must be a list")
        score = exam_service.submit_exam(store, exam, answers, _int_field(body, "timeTaken"))
        return jsonify({"examId": exam_id, "score": score, "completedAt": exam.completed_at})

    @server.route("/api/exams/<exam_id>/score", methods=["POST"])
    def update_exam_score(exam_id):
        body = _json_body()
        if store.get_exam(exam_id) is None:
            return _not_found("Exam")
        store.update_exam_score(exam_id, _int_field(body, "score"), _int_field(body, "timeTaken"))
        return jsonify({"examId": exam_id})

    @server.route("/api/exams/<exam_id>/text", methods=["GET"])
    def exam_text(exam_id):
        exam = store.get_exam(exam_id)
        if exam is None:
            return _not_found("Exam")
        return Response(exam_service.render_exam_text(exam), mimetype="text/plain")

    # Practice exams

    @server.route("/api/practiceExams", methods=["GET"])
    def list_practice_exams():
        return jsonify(store.get_all_practice_exams())

    @server.route("/api/practiceExams/<exam_id>", methods=["GET"])
    def get_practice_exam(exam_id):
        exam = store.get_practice_exam(exam_id)
        if exam is None:
            return _not_found("Practice exam")
        return jsonify(exam.to_dict())

    @server.route("/api/practiceExams/<exam_id>", methods=["DELETE"])
    def delete_practice_exam(exam_id):
        if not store.delete_practice_exam(exam_id):
            return _not_found("Practice exam")
        return jsonify({"deleted": exam_id})

    @server.route("/api/practiceExams/<exam_id>/score", methods=["POST"])
    def update_practice_exam_score(exam_id):
        body = _json_body()
        if store.get_practice_exam(exam_id) is None:
            return _not_found("Practice exam")
        store.update_practice_exam_score(exam_id, _int_field(body, "score"), _int_field(body, "timeTaken"))
        return jsonify({"examId": exam_id})

    # Learning road

    @server.route("/api/learningPaths", methods=["POST"])
    def generate_learning_path():
        body = _json_body()
        path = road_service.generate_learning_path(str(body.get("topic") or ""), str(body.get("language") or "en"))
        store.save_learning_path(path)
        return jsonify(path.to_dict()), 201

    @server.route("/api/learningPaths", methods=["GET"])
    def list_learning_paths():
        return jsonify(store.get_all_learning_paths())

    @server.route("/api/learningPaths/<path_id>", methods=["GET"])
    def get_learning_path(path_id):
        path = store.get_learning_path(path_id)
        if path is None:
            return _not_found("Learning path")
        return jsonify(path.to_dict())

    @server.route("/api/learningPaths/<path_id>", methods=["DELETE"])
    def delete_learning_path(path_id):
        if not store.delete_learning_path(path_id):
            return _not_found("Learning path")
        return jsonify({"deleted": path_id})

    @server.route("/api/learningMaterial", methods=["POST"])
    def learning_material():
        body = _json_body()
        key_topics = body.get("keyTopics") or []
        material = road_service.generate_learning_material(
            topic=str(body.get("topic") or ""),
            step_title=str(body.get("stepTitle") or ""),
            step_description=str(body.get("stepDescription") or ""),
            key_topics=[str(k) for k in key_topics] if isinstance(key_topics, list) else [],
            language=str(body.get("language") or "en"),
        )
        return jsonify(material.to_dict())

    @server.route("/api/quiz", methods=["POST"])
    def quiz():
        body = _json_body()
        questions = road_service.generate_quiz(
            str(body.get("topic") or ""),
            str(body.get("stepTitle") or ""),
            str(body.get("language") or "en"),
        )
        return jsonify([q.to_dict() for q in questions])

    # Solver

    @server.route("/api/solve", methods=["POST"])
    def solve():
        if request.files:
            language = request.form.get("language", "en")
            problems = solver_service.analyze_problems(_uploads("files"), language)
        else:
            body = _json_body()
            problems = solver_service.analyze_problems_text(
                str(body.get("text") or ""), str(body.get("language") or "en")
            )
        return jsonify({"problems": [p.to_dict() for p in problems], "found": len(problems)})

    # Storage

    @server.route("/api/storage/stats", methods=["GET"])
    def storage_stats():
        return jsonify(store.get_storage_stats())

    @server.route("/api/storage/clear", methods=["POST"])
    def clear_storage():
        store.clear_all_data()
        return jsonify({"cleared": True})

    @server.route("/api/<path:path>")
    def unknown_api(path):
        return jsonify({"error": "API route not found"}), 404

    return server


def _configure_logging() -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(handler)


if __name__ == '__main__':
    from learnai.llm_clients import GeminiClient, build_completer
    from learnai.set_env_vars import initialize_env_vars

    initialize_env_vars()
    _configure_logging()

    completer = build_completer()
    extractor = completer if isinstance(completer, GeminiClient) else None
    if extractor is None and (os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")):
        extractor = GeminiClient()

    store = PersistenceStore().open()
    server = create_server(
        store,
        ExamSimulatorService(completer),
        LearningRoadService(completer),
        SolverService(completer, extractor),
    )
    try:
        server.run(port=8080)
    finally:
        store.close()
