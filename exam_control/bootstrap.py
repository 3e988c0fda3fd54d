"""
Startup schema management and seed data.

Tables are created with ``db.create_all()``. Columns added after the first
release are handled by the ordered ``MIGRATIONS`` list; each applied version
is recorded in ``schema_migrations`` so it runs at most once. Every migration
also inspects the live schema first, so it is a no-op on a freshly created
database that already has the column.
"""

import logging
from datetime import datetime
from flask import current_app
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash, check_password_hash
from exam_control import db
from exam_control.errors import MigrationError
from exam_control.models import (User, Room, Student, Teacher, Exam, SchemaMigration,
                                 ROLE_ADMIN, ROLE_CONTROLLER, ROLE_PROCTOR, ROLE_LABELS)

logger = logging.getLogger(__name__)

HASH_PREFIXES = ("scrypt:", "pbkdf2:")

SEED_ROOMS = [
    ("القاعة الكبرى", 30),
    ("مختبر الحاسب", 20),
    ("القاعة 101", 15),
]
SEED_STUDENTS = [
    ("أحمد محمد", "1001", "العاشر"),
    ("سارة أحمد", "1002", "العاشر"),
    ("خالد وليد", "1003", "العاشر"),
]
SEED_TEACHERS = [
    ("أ. عبدالله", "الرياضيات"),
    ("أ. ليلى", "اللغة العربية"),
]
SEED_EXAM = ("الرياضيات", "2026-02-25", "08:00")
SUPER_ADMIN_NAME = "المدير العام"
SEED_STAFF = [
    ("سارة الكنترول", ROLE_CONTROLLER, "control1"),
    ("أ. محمد المراقب", ROLE_PROCTOR, "proctor1"),
]


def _columns(conn, table):
    insp = inspect(conn)
    if not insp.has_table(table):
        return None
    return [col["name"] for col in insp.get_columns(table)]


def is_password_hash(value):
    return bool(value) and value.startswith(HASH_PREFIXES)


# ----------------- MIGRATIONS -----------------
def add_users_password(conn):
    cols = _columns(conn, "users")
    if cols is None or "password" in cols:
        return False
    conn.execute(text("ALTER TABLE users ADD COLUMN password TEXT NOT NULL DEFAULT '123456'"))
    return True


def add_rooms_location(conn):
    cols = _columns(conn, "rooms")
    if cols is None or "location" in cols:
        return False
    conn.execute(text("ALTER TABLE rooms ADD COLUMN location TEXT"))
    return True


def hash_plaintext_passwords(conn):
    rows = conn.execute(text("SELECT id, password FROM users")).fetchall()
    changed = 0
    for user_id, password in rows:
        if password is None or is_password_hash(password):
            continue
        conn.execute(text("UPDATE users SET password = :pw WHERE id = :id"),
                     {"pw": generate_password_hash(password), "id": user_id})
        changed += 1
    return changed > 0


def normalize_role_labels(conn):
    changed = 0
    for label, code in ROLE_LABELS.items():
        result = conn.execute(text("UPDATE users SET role = :code WHERE role = :label"),
                              {"code": code, "label": label})
        changed += result.rowcount or 0
    return changed > 0


MIGRATIONS = [
    (1, "add users.password", add_users_password),
    (2, "add rooms.location", add_rooms_location),
    (3, "hash plaintext passwords", hash_plaintext_passwords),
    (4, "normalize role labels", normalize_role_labels),
]


def applied_versions():
    return {m.version for m in SchemaMigration.query.all()}


def apply_migrations():
    """Run every migration not yet recorded; returns the (version, name) pairs applied."""
    done = applied_versions()
    db.session.remove()
    applied = []
    for version, name, migrate in MIGRATIONS:
        if version in done:
            continue
        try:
            with db.engine.begin() as conn:
                changed = migrate(conn)
                conn.execute(SchemaMigration.__table__.insert().values(
                    version=version, name=name, applied_at=datetime.utcnow()))
        except SQLAlchemyError as exc:
            logger.error("Migration %d (%s) failed: %s", version, name, exc)
            raise MigrationError(version, name, exc) from exc
        logger.info("Applied migration %d (%s)%s", version, name, "" if changed else " - nothing to change")
        applied.append((version, name))
    return applied


# ----------------- SEED DATA -----------------
def seed_defaults():
    seeded = []
    if Room.query.count() == 0:
        for name, capacity in SEED_ROOMS:
            db.session.add(Room(name=name, capacity=capacity))
        for name, academic_id, grade in SEED_STUDENTS:
            db.session.add(Student(name=name, academic_id=academic_id, grade=grade))
        for name, subject in SEED_TEACHERS:
            db.session.add(Teacher(name=name, subject=subject))
        subject, date, start_time = SEED_EXAM
        db.session.add(Exam(subject=subject, date=date, start_time=start_time))
        db.session.commit()
        logger.info("Seeded starter rooms, students, teachers and exam")
        seeded.append("rooms")

    if User.query.count() == 0:
        cfg = current_app.config
        db.session.add(User(name=SUPER_ADMIN_NAME, role=ROLE_ADMIN,
                            username=cfg["SUPER_ADMIN_USERNAME"],
                            password_hash=generate_password_hash(cfg["SUPER_ADMIN_PASSWORD"])))
        for name, role, username in SEED_STAFF:
            db.session.add(User(name=name, role=role, username=username,
                                password_hash=generate_password_hash(cfg["DEFAULT_USER_PASSWORD"])))
        db.session.commit()
        logger.info("Seeded starter accounts")
        seeded.append("users")
    return seeded


def ensure_super_admin():
    """Make sure the reserved admin exists with the canonical password.

    Returns "created", "reset" or "ok".
    """
    username = current_app.config["SUPER_ADMIN_USERNAME"]
    password = current_app.config["SUPER_ADMIN_PASSWORD"]
    admin = User.query.filter_by(username=username).first()
    if admin is None:
        db.session.add(User(name=SUPER_ADMIN_NAME, role=ROLE_ADMIN, username=username,
                            password_hash=generate_password_hash(password)))
        db.session.commit()
        logger.info("Created super admin %s", username)
        return "created"
    if not check_password_hash(admin.password_hash, password):
        admin.password_hash = generate_password_hash(password)
        db.session.commit()
        logger.info("Reset super admin %s password", username)
        return "reset"
    return "ok"


def bootstrap(app):
    db.create_all()
    applied = apply_migrations()
    if app.config.get("SEED_DATA", True):
        seed_defaults()
    ensure_super_admin()
    return applied
