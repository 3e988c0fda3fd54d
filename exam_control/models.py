from datetime import datetime
from exam_control import db

ROLE_ADMIN = "admin"
ROLE_CONTROLLER = "controller"
ROLE_PROCTOR = "proctor"
ROLES = (ROLE_ADMIN, ROLE_CONTROLLER, ROLE_PROCTOR)

# Arabic labels stored by older databases
ROLE_LABELS = {
    "مدير": ROLE_ADMIN,
    "عضو كنترول": ROLE_CONTROLLER,
    "مراقب": ROLE_PROCTOR,
}

ATTENDANCE_STATUSES = ("present", "absent", "late", "excused")


def normalize_role(value):
    if value is None:
        return None
    return ROLE_LABELS.get(value, value)


class User(db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    role = db.Column(db.String(50), nullable=False)
    username = db.Column(db.String(120), unique=True, nullable=False)
    # werkzeug hash; the column keeps its legacy name
    password_hash = db.Column("password", db.String(300), nullable=False)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "role": self.role, "username": self.username}


class Room(db.Model):
    __tablename__ = "rooms"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    capacity = db.Column(db.Integer, nullable=False)
    location = db.Column(db.String(200), nullable=True)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "capacity": self.capacity, "location": self.location}


class Student(db.Model):
    __tablename__ = "students"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    academic_id = db.Column(db.String(100), unique=True, nullable=False)
    grade = db.Column(db.String(50), nullable=False)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "academic_id": self.academic_id, "grade": self.grade}


class Teacher(db.Model):
    __tablename__ = "teachers"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    subject = db.Column(db.String(150), nullable=False)
    quota = db.Column(db.Integer, default=0)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "subject": self.subject, "quota": self.quota}


class Exam(db.Model):
    __tablename__ = "exams"
    id = db.Column(db.Integer, primary_key=True)
    subject = db.Column(db.String(150), nullable=False)
    date = db.Column(db.String(20), nullable=False)
    start_time = db.Column(db.String(10), nullable=False)

    def to_dict(self):
        return {"id": self.id, "subject": self.subject, "date": self.date, "start_time": self.start_time}


class Distribution(db.Model):
    __tablename__ = "distributions"
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"))
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"))
    exam_id = db.Column(db.Integer, db.ForeignKey("exams.id"))


class ProctorAssignment(db.Model):
    __tablename__ = "proctor_assignments"
    id = db.Column(db.Integer, primary_key=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey("teachers.id"))
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"))
    exam_id = db.Column(db.Integer, db.ForeignKey("exams.id"))


class Attendance(db.Model):
    __tablename__ = "attendance"
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"))
    exam_id = db.Column(db.Integer, db.ForeignKey("exams.id"))
    status = db.Column(db.String(20), default="absent")
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("student_id", "exam_id", name="uq_attendance_student_exam"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "exam_id": self.exam_id,
            "status": self.status,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class SchemaMigration(db.Model):
    __tablename__ = "schema_migrations"
    version = db.Column(db.Integer, primary_key=True, autoincrement=False)
    name = db.Column(db.String(150), nullable=False)
    applied_at = db.Column(db.DateTime, default=datetime.utcnow)
