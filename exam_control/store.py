import logging
from datetime import datetime, time, timedelta
from flask import current_app
from sqlalchemy import func, distinct
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import generate_password_hash, check_password_hash
from exam_control.errors import (ValidationError, DuplicateKeyError, AuthenticationError,
                                 ForbiddenError, NotFoundError)
from exam_control.models import (User, Room, Student, Exam, Distribution, ProctorAssignment,
                                 Attendance, ROLES, ATTENDANCE_STATUSES, normalize_role)

logger = logging.getLogger(__name__)


def get_store():
    return current_app.extensions["exam_store"]


def _text(data, field, required=True):
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError()
        return None
    value = str(value).strip()
    if required and not value:
        raise ValidationError()
    return value or None


def _integer(data, field):
    value = data.get(field)
    if isinstance(value, bool) or value is None:
        raise ValidationError()
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError()
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError()


def _room_fields(data):
    return {
        "name": _text(data, "name"),
        "capacity": _integer(data, "capacity"),
        "location": _text(data, "location", required=False),
    }


def _student_fields(data):
    return {
        "name": _text(data, "name"),
        "academic_id": _text(data, "academic_id"),
        "grade": _text(data, "grade"),
    }


def _role(data):
    role = normalize_role(_text(data, "role"))
    if role not in ROLES:
        raise ValidationError("invalid_role")
    return role


def _validate_batch(rows, extract):
    if not isinstance(rows, list):
        raise ValidationError("invalid_bulk_payload")
    cleaned = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValidationError("invalid_bulk_row", index=index)
        try:
            cleaned.append(extract(row))
        except ValidationError:
            raise ValidationError("invalid_bulk_row", index=index) from None
    return cleaned


class ExamStore:
    """Store access for the API handlers, built once per app by create_app()."""

    def __init__(self, db, super_admin_username="1027594579", default_password="123456",
                 utc_offset_minutes=0):
        self.db = db
        self.super_admin_username = super_admin_username
        self.default_password = default_password
        self.utc_offset = timedelta(minutes=utc_offset_minutes)

    @property
    def session(self):
        return self.db.session

    def _get(self, model, pk):
        obj = self.session.get(model, pk)
        if obj is None:
            raise NotFoundError()
        return obj

    def _commit(self, duplicate_key=None):
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            if duplicate_key:
                raise DuplicateKeyError(duplicate_key)
            raise
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def academic_id_taken(self, academic_id, exclude_id=None):
        query = Student.query.filter(Student.academic_id == academic_id)
        if exclude_id is not None:
            query = query.filter(Student.id != exclude_id)
        return query.first() is not None

    def username_taken(self, username, exclude_id=None):
        query = User.query.filter(User.username == username)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        return query.first() is not None

    # ----------------- ROOMS -----------------
    def list_rooms(self):
        return [r.to_dict() for r in Room.query.order_by(Room.id).all()]

    def create_room(self, data):
        room = Room(**_room_fields(data))
        self.session.add(room)
        self._commit()
        return room.to_dict()

    def update_room(self, room_id, data):
        room = self._get(Room, room_id)
        for key, value in _room_fields(data).items():
            setattr(room, key, value)
        self._commit()
        return room.to_dict()

    def delete_room(self, room_id):
        room = self._get(Room, room_id)
        Distribution.query.filter_by(room_id=room.id).delete()
        ProctorAssignment.query.filter_by(room_id=room.id).delete()
        self.session.delete(room)
        self._commit()

    def bulk_upsert_rooms(self, rows):
        """Insert or update rooms keyed on name; one malformed row rejects the whole batch."""
        cleaned = _validate_batch(rows, _room_fields)
        try:
            for fields in cleaned:
                room = Room.query.filter_by(name=fields["name"]).order_by(Room.id).first()
                if room is None:
                    self.session.add(Room(**fields))
                else:
                    room.capacity = fields["capacity"]
                    room.location = fields["location"]
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        logger.info("Bulk upserted %d rooms", len(cleaned))
        return len(cleaned)

    def room_occupancy(self):
        rows = (
            self.session.query(
                Room.id, Room.name, Room.capacity,
                func.count(Distribution.student_id).label("current_occupancy"),
            )
            .outerjoin(Distribution, Distribution.room_id == Room.id)
            .group_by(Room.id, Room.name, Room.capacity)
            .order_by(Room.id)
            .all()
        )
        return [
            {"id": r.id, "name": r.name, "capacity": r.capacity,
             "current_occupancy": r.current_occupancy}
            for r in rows
        ]

    # ----------------- STUDENTS -----------------
    def list_students(self):
        return [s.to_dict() for s in Student.query.order_by(Student.id).all()]

    def create_student(self, data):
        fields = _student_fields(data)
        if self.academic_id_taken(fields["academic_id"]):
            raise DuplicateKeyError("duplicate_academic_id")
        student = Student(**fields)
        self.session.add(student)
        self._commit("duplicate_academic_id")
        return student.to_dict()

    def update_student(self, student_id, data):
        student = self._get(Student, student_id)
        fields = _student_fields(data)
        if self.academic_id_taken(fields["academic_id"], exclude_id=student.id):
            raise DuplicateKeyError("duplicate_academic_id")
        for key, value in fields.items():
            setattr(student, key, value)
        self._commit("duplicate_academic_id")
        return student.to_dict()

    def delete_student(self, student_id):
        student = self._get(Student, student_id)
        Distribution.query.filter_by(student_id=student.id).delete()
        Attendance.query.filter_by(student_id=student.id).delete()
        self.session.delete(student)
        self._commit()

    def bulk_upsert_students(self, rows):
        """Insert or update students keyed on academic_id, all-or-nothing."""
        cleaned = _validate_batch(rows, _student_fields)
        try:
            for fields in cleaned:
                student = Student.query.filter_by(academic_id=fields["academic_id"]).first()
                if student is None:
                    self.session.add(Student(**fields))
                else:
                    student.name = fields["name"]
                    student.grade = fields["grade"]
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        logger.info("Bulk upserted %d students", len(cleaned))
        return len(cleaned)

    # ----------------- USERS -----------------
    def list_users(self):
        return [u.to_dict() for u in User.query.order_by(User.id).all()]

    def create_user(self, data):
        name = _text(data, "name")
        username = _text(data, "username")
        role = _role(data)
        password = _text(data, "password", required=False) or self.default_password
        if self.username_taken(username):
            raise DuplicateKeyError("duplicate_username")
        user = User(name=name, role=role, username=username,
                    password_hash=generate_password_hash(password))
        self.session.add(user)
        self._commit("duplicate_username")
        return user.to_dict()

    def update_user(self, user_id, data):
        user = self._get(User, user_id)
        name = _text(data, "name")
        username = _text(data, "username")
        role = _role(data)
        password = _text(data, "password", required=False)
        if user.username == self.super_admin_username and username != user.username:
            raise ForbiddenError("super_admin_rename")
        if self.username_taken(username, exclude_id=user.id):
            raise DuplicateKeyError("duplicate_username")
        user.name = name
        user.username = username
        user.role = role
        # an omitted password keeps the stored one
        if password:
            user.password_hash = generate_password_hash(password)
        self._commit("duplicate_username")
        return user.to_dict()

    def delete_user(self, user_id):
        user = self._get(User, user_id)
        if user.username == self.super_admin_username:
            raise ForbiddenError("super_admin_delete")
        self.session.delete(user)
        self._commit()

    def authenticate(self, username, password):
        logger.info("Login attempt: %s", username)
        user = None
        if username and password:
            user = User.query.filter_by(username=str(username)).first()
        if user is None or not check_password_hash(user.password_hash, str(password)):
            logger.info("Login failed: invalid credentials for %s", username)
            raise AuthenticationError()
        logger.info("Login success: %s", username)
        return user.to_dict()

    # ----------------- DASHBOARD -----------------
    def stats(self, now=None):
        total_students = Student.query.count()
        total_rooms = Room.query.count()
        # timestamps are stored in UTC; "today" is the school's local day
        now = now or datetime.utcnow()
        local_day = (now + self.utc_offset).date()
        day_start = datetime.combine(local_day, time.min) - self.utc_offset
        present = (
            self.session.query(func.count(distinct(Attendance.student_id)))
            .filter(Attendance.status == "present",
                    Attendance.timestamp >= day_start,
                    Attendance.timestamp < day_start + timedelta(days=1))
            .scalar()
        )
        return {
            "totalStudents": total_students,
            "totalRooms": total_rooms,
            "presentToday": present,
            "absentToday": max(total_students - present, 0),
        }

    # ----------------- ATTENDANCE & LOGISTICS -----------------
    def mark_attendance(self, data):
        student_id = _integer(data, "student_id")
        exam_id = _integer(data, "exam_id")
        status = _text(data, "status", required=False) or "absent"
        if status not in ATTENDANCE_STATUSES:
            raise ValidationError("invalid_status")
        self._get(Student, student_id)
        self._get(Exam, exam_id)
        record = Attendance.query.filter_by(student_id=student_id, exam_id=exam_id).first()
        if record is None:
            record = Attendance(student_id=student_id, exam_id=exam_id)
            self.session.add(record)
        record.status = status
        record.timestamp = datetime.utcnow()
        self._commit()
        return record.to_dict()

    def record_delivery(self, data):
        room_id = data.get("room_id")
        receiver_name = data.get("receiver_name")
        delivered_at = datetime.now().strftime("%H:%M")
        logger.info("Envelope for room %s delivered to %s at %s", room_id, receiver_name, delivered_at)
        return {"success": True, "room_id": room_id, "receiver_name": receiver_name,
                "time": delivered_at}
