import logging
from flask import Blueprint, request, jsonify
from sqlalchemy.exc import SQLAlchemyError
from exam_control import db
from exam_control.errors import ExamControlError
from exam_control.messages import translate
from exam_control.store import get_store

api = Blueprint("api", __name__, url_prefix="/api")

logger = logging.getLogger(__name__)


def _json_object():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@api.errorhandler(ExamControlError)
def handle_domain_error(err):
    return jsonify(err.to_dict()), err.status_code


@api.errorhandler(SQLAlchemyError)
def handle_store_error(err):
    db.session.rollback()
    logger.exception("Database error on %s %s", request.method, request.path)
    return jsonify({"error": translate("database_error")}), 500


@api.route("/stats")
def stats():
    return jsonify(get_store().stats())


# ----------------- ROOMS -----------------
@api.route("/rooms", methods=["GET"])
def list_rooms():
    return jsonify(get_store().list_rooms())


@api.route("/rooms", methods=["POST"])
def create_room():
    return jsonify(get_store().create_room(_json_object()))


@api.route("/rooms/<int:room_id>", methods=["PUT"])
def update_room(room_id):
    get_store().update_room(room_id, _json_object())
    return jsonify({"success": True})


@api.route("/rooms/<int:room_id>", methods=["DELETE"])
def delete_room(room_id):
    get_store().delete_room(room_id)
    return jsonify({"success": True})


@api.route("/rooms/occupancy")
def room_occupancy():
    return jsonify(get_store().room_occupancy())


@api.route("/rooms/bulk", methods=["POST"])
def bulk_rooms():
    count = get_store().bulk_upsert_rooms(request.get_json(silent=True))
    return jsonify({"success": True, "count": count})


# ----------------- STUDENTS -----------------
@api.route("/students", methods=["GET"])
def list_students():
    return jsonify(get_store().list_students())


@api.route("/students", methods=["POST"])
def create_student():
    return jsonify(get_store().create_student(_json_object()))


@api.route("/students/<int:student_id>", methods=["PUT"])
def update_student(student_id):
    get_store().update_student(student_id, _json_object())
    return jsonify({"success": True})


@api.route("/students/<int:student_id>", methods=["DELETE"])
def delete_student(student_id):
    get_store().delete_student(student_id)
    return jsonify({"success": True})


@api.route("/students/bulk", methods=["POST"])
def bulk_students():
    count = get_store().bulk_upsert_students(request.get_json(silent=True))
    return jsonify({"success": True, "count": count})


# ----------------- USERS -----------------
@api.route("/users", methods=["GET"])
def list_users():
    return jsonify(get_store().list_users())


@api.route("/users", methods=["POST"])
def create_user():
    return jsonify(get_store().create_user(_json_object()))


@api.route("/users/<int:user_id>", methods=["PUT"])
def update_user(user_id):
    get_store().update_user(user_id, _json_object())
    return jsonify({"success": True})


@api.route("/users/<int:user_id>", methods=["DELETE"])
def delete_user(user_id):
    get_store().delete_user(user_id)
    return jsonify({"success": True})


@api.route("/login", methods=["POST"])
def login():
    data = _json_object()
    return jsonify(get_store().authenticate(data.get("username"), data.get("password")))


# ----------------- ATTENDANCE & LOGISTICS -----------------
@api.route("/attendance/mark", methods=["POST"])
def mark_attendance():
    get_store().mark_attendance(_json_object())
    return jsonify({"success": True})


@api.route("/logistics/deliver", methods=["POST"])
def deliver():
    return jsonify(get_store().record_delivery(_json_object()))
