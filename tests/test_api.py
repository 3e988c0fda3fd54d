from datetime import datetime
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from exam_control import db
from exam_control.models import Attendance, Distribution, Room, Student


def test_occupancy_for_seed_state(client):
    rows = client.get("/api/rooms/occupancy").get_json()
    assert len(rows) == 3
    assert all(r["current_occupancy"] == 0 for r in rows)
    assert set(rows[0]) == {"id", "name", "capacity", "current_occupancy"}


def test_occupancy_counts_distributions_across_exams(app, client):
    with app.app_context():
        db.session.add_all([
            Distribution(student_id=1, room_id=1, exam_id=1),
            Distribution(student_id=2, room_id=1, exam_id=2),
            Distribution(student_id=3, room_id=2, exam_id=1),
        ])
        db.session.commit()

    rows = client.get("/api/rooms/occupancy").get_json()
    assert [(r["id"], r["current_occupancy"]) for r in rows] == [(1, 2), (2, 1), (3, 0)]


# ----------------- ROOMS -----------------
def test_room_crud(client):
    created = client.post("/api/rooms", json={"name": "Lab 2", "capacity": 18, "location": "Floor 2"}).get_json()
    assert created == {"id": 4, "name": "Lab 2", "capacity": 18, "location": "Floor 2"}

    resp = client.put("/api/rooms/4", json={"name": "Lab 2B", "capacity": 20})
    assert resp.get_json() == {"success": True}
    rooms = client.get("/api/rooms").get_json()
    assert rooms[-1] == {"id": 4, "name": "Lab 2B", "capacity": 20, "location": None}

    assert client.delete("/api/rooms/4").get_json() == {"success": True}
    assert [r["id"] for r in client.get("/api/rooms").get_json()] == [1, 2, 3]


def test_room_requires_integer_capacity(client):
    resp = client.post("/api/rooms", json={"name": "Lab", "capacity": "many"})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Missing or invalid fields"}


def test_update_unknown_room(client):
    resp = client.put("/api/rooms/99", json={"name": "X", "capacity": 1})
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Record not found"}


def test_delete_room_removes_its_distributions(app, client):
    with app.app_context():
        db.session.add(Distribution(student_id=1, room_id=3, exam_id=1))
        db.session.commit()

    client.delete("/api/rooms/3")
    with app.app_context():
        assert Distribution.query.filter_by(room_id=3).count() == 0


def test_bulk_rooms_upserts_by_name(app, client):
    resp = client.post("/api/rooms/bulk", json=[
        {"name": "القاعة 101", "capacity": 16, "location": "Block A"},
        {"name": "Hall C", "capacity": 35},
    ])
    assert resp.get_json() == {"success": True, "count": 2}

    rooms = client.get("/api/rooms").get_json()
    assert len(rooms) == 4
    assert rooms[2] == {"id": 3, "name": "القاعة 101", "capacity": 16, "location": "Block A"}
    assert rooms[3]["name"] == "Hall C"


def test_bulk_rooms_rejects_non_list(client):
    resp = client.post("/api/rooms/bulk", json={"name": "Hall"})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Expected a list of records"}


# ----------------- STUDENTS -----------------
def test_duplicate_academic_id_is_rejected(app, client):
    resp = client.post("/api/students", json={"name": "Copy", "academic_id": "1002", "grade": "10"})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Academic ID already exists"}
    with app.app_context():
        assert Student.query.count() == 3


def test_duplicate_message_follows_locale(make_app):
    client = make_app(EXAM_CONTROL_LOCALE="ar").test_client()
    resp = client.post("/api/students", json={"name": "Copy", "academic_id": "1002", "grade": "10"})
    assert resp.get_json() == {"error": "الرقم الأكاديمي موجود مسبقاً"}


def test_student_crud(client):
    created = client.post("/api/students", json={"name": "Mona", "academic_id": 1004, "grade": "11"}).get_json()
    assert created == {"id": 4, "name": "Mona", "academic_id": "1004", "grade": "11"}

    resp = client.put("/api/students/4", json={"name": "Mona A.", "academic_id": "1004", "grade": "12"})
    assert resp.status_code == 200
    assert client.get("/api/students").get_json()[-1]["grade"] == "12"

    clash = client.put("/api/students/4", json={"name": "Mona", "academic_id": "1001", "grade": "12"})
    assert clash.status_code == 400

    assert client.delete("/api/students/4").get_json() == {"success": True}
    assert client.delete("/api/students/4").status_code == 404


def test_bulk_students_updates_in_place(client):
    resp = client.post("/api/students/bulk", json=[{"name": "X", "academic_id": "1001", "grade": "10"}])
    assert resp.get_json() == {"success": True, "count": 1}

    students = client.get("/api/students").get_json()
    assert len(students) == 3
    assert students[0] == {"id": 1, "name": "X", "academic_id": "1001", "grade": "10"}


def test_bulk_students_is_all_or_nothing(app, client):
    resp = client.post("/api/students/bulk", json=[
        {"name": "New", "academic_id": "2001", "grade": "9"},
        {"name": "Broken", "grade": "9"},
    ])
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Record 1 is invalid"}
    with app.app_context():
        assert Student.query.count() == 3
        assert Student.query.filter_by(academic_id="2001").first() is None


# ----------------- USERS -----------------
def test_user_list_hides_passwords(client):
    users = client.get("/api/users").get_json()
    assert len(users) == 3
    assert all(set(u) == {"id", "name", "role", "username"} for u in users)


def test_create_user_defaults_password(client):
    created = client.post("/api/users", json={"name": "Nour", "username": "proctor2", "role": "مراقب"}).get_json()
    assert created == {"id": 4, "name": "Nour", "role": "proctor", "username": "proctor2"}

    resp = client.post("/api/login", json={"username": "proctor2", "password": "123456"})
    assert resp.status_code == 200


def test_create_user_rejects_duplicates_and_bad_roles(client):
    dup = client.post("/api/users", json={"name": "Again", "username": "control1", "role": "controller"})
    assert dup.status_code == 400
    assert dup.get_json() == {"error": "Username already exists"}

    bad = client.post("/api/users", json={"name": "Boss", "username": "boss", "role": "owner"})
    assert bad.status_code == 400
    assert bad.get_json() == {"error": "Invalid role"}


def test_update_user_keeps_password_when_omitted(client):
    resp = client.put("/api/users/2", json={"name": "Sara", "username": "control1", "role": "controller", "password": ""})
    assert resp.status_code == 200
    assert client.post("/api/login", json={"username": "control1", "password": "123456"}).status_code == 200

    client.put("/api/users/2", json={"name": "Sara", "username": "control1", "role": "controller", "password": "n3w"})
    assert client.post("/api/login", json={"username": "control1", "password": "123456"}).status_code == 401
    assert client.post("/api/login", json={"username": "control1", "password": "n3w"}).status_code == 200


def test_super_admin_cannot_be_deleted_or_renamed(client):
    resp = client.delete("/api/users/1")
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "The super admin cannot be deleted"}

    resp = client.put("/api/users/1", json={"name": "Admin", "username": "someone", "role": "admin"})
    assert resp.status_code == 403

    usernames = [u["username"] for u in client.get("/api/users").get_json()]
    assert "1027594579" in usernames


def test_other_users_can_be_deleted(client):
    assert client.delete("/api/users/3").get_json() == {"success": True}
    assert len(client.get("/api/users").get_json()) == 2


# ----------------- LOGIN -----------------
def test_login_returns_sanitized_user(client):
    resp = client.post("/api/login", json={"username": "1027594579", "password": "admin123"})
    assert resp.status_code == 200
    assert resp.get_json() == {"id": 1, "name": "المدير العام", "role": "admin", "username": "1027594579"}


def test_login_failures_look_the_same(client):
    wrong_password = client.post("/api/login", json={"username": "control1", "password": "nope"})
    wrong_username = client.post("/api/login", json={"username": "ghost", "password": "123456"})
    missing = client.post("/api/login", json={})
    for resp in (wrong_password, wrong_username, missing):
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Invalid username or password"}


# ----------------- STATS, ATTENDANCE, LOGISTICS -----------------
def test_stats_counts_present_students(app, client):
    assert client.get("/api/stats").get_json() == {
        "totalStudents": 3, "totalRooms": 3, "presentToday": 0, "absentToday": 3,
    }
    client.post("/api/attendance/mark", json={"student_id": 1, "exam_id": 1, "status": "present"})
    stats = client.get("/api/stats").get_json()
    assert stats["presentToday"] == 1
    assert stats["absentToday"] == 2


def test_mark_attendance_upserts_pair(app, client):
    assert client.post("/api/attendance/mark", json={"student_id": 2, "exam_id": 1}).get_json() == {"success": True}
    client.post("/api/attendance/mark", json={"student_id": 2, "exam_id": 1, "status": "present"})
    with app.app_context():
        rows = Attendance.query.filter_by(student_id=2, exam_id=1).all()
        assert len(rows) == 1
        assert rows[0].status == "present"


def test_mark_attendance_validates(client):
    resp = client.post("/api/attendance/mark", json={"student_id": 1, "exam_id": 1, "status": "asleep"})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid attendance status"}
    assert client.post("/api/attendance/mark", json={"student_id": 99, "exam_id": 1}).status_code == 404


def test_logistics_delivery_is_echoed(app, client):
    body = client.post("/api/logistics/deliver", json={"room_id": 2, "receiver_name": "Ali"}).get_json()
    assert body["success"] is True
    assert body["receiver_name"] == "Ali"
    assert body["room_id"] == 2
    assert len(body["time"]) == 5


def test_store_errors_become_500(app, client, monkeypatch):
    def broken():
        raise OperationalError("SELECT * FROM rooms", {}, Exception("disk I/O error"))

    monkeypatch.setattr(app.extensions["exam_store"], "list_rooms", broken)
    resp = client.get("/api/rooms")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Database error"}
    # the process keeps serving
    assert client.get("/api/students").status_code == 200
    with app.app_context():
        assert Room.query.count() == 3


def _failing_commit(self):
    self.flush()
    raise OperationalError("COMMIT", {}, Exception("database is locked"))


def test_bulk_rooms_is_all_or_nothing(app, client):
    resp = client.post("/api/rooms/bulk", json=[
        {"name": "Hall C", "capacity": 35},
        {"name": "Hall D", "capacity": "many"},
    ])
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Record 1 is invalid"}
    with app.app_context():
        assert Room.query.count() == 3


def test_bulk_rooms_rolls_back_on_store_error(app, client, monkeypatch):
    monkeypatch.setattr(Session, "commit", _failing_commit)
    resp = client.post("/api/rooms/bulk", json=[
        {"name": "القاعة 101", "capacity": 99},
        {"name": "Hall C", "capacity": 35},
    ])
    monkeypatch.undo()

    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Database error"}
    with app.app_context():
        assert Room.query.count() == 3
        assert db.session.get(Room, 3).capacity == 15
        assert Room.query.filter_by(name="Hall C").first() is None


def test_bulk_students_rolls_back_on_store_error(app, client, monkeypatch):
    monkeypatch.setattr(Session, "commit", _failing_commit)
    resp = client.post("/api/students/bulk", json=[
        {"name": "Changed", "academic_id": "1001", "grade": "11"},
        {"name": "New", "academic_id": "2001", "grade": "9"},
    ])
    monkeypatch.undo()

    assert resp.status_code == 500
    with app.app_context():
        assert Student.query.count() == 3
        assert db.session.get(Student, 1).name == "أحمد محمد"
        assert Student.query.filter_by(academic_id="2001").first() is None


def test_unique_violation_at_commit_is_a_duplicate_error(app, client, monkeypatch):
    # another request inserted the same key after the existence check
    store = app.extensions["exam_store"]
    monkeypatch.setattr(store, "academic_id_taken", lambda *args, **kwargs: False)
    monkeypatch.setattr(store, "username_taken", lambda *args, **kwargs: False)

    resp = client.post("/api/students", json={"name": "Copy", "academic_id": "1002", "grade": "10"})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Academic ID already exists"}

    resp = client.put("/api/users/3", json={"name": "P", "username": "control1", "role": "proctor"})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Username already exists"}

    with app.app_context():
        assert Student.query.count() == 3


def _mark_present(student_id, at):
    db.session.add(Attendance(student_id=student_id, exam_id=1, status="present", timestamp=at))


def test_present_today_follows_school_day(make_app):
    app = make_app(SCHOOL_UTC_OFFSET_MINUTES=180)
    with app.app_context():
        # 00:15 and 23:50 local time on either side of midnight at UTC+3
        _mark_present(1, datetime(2026, 2, 25, 21, 15))
        _mark_present(2, datetime(2026, 2, 25, 20, 50))
        db.session.commit()

        stats = app.extensions["exam_store"].stats(now=datetime(2026, 2, 25, 22, 0))
        assert stats["presentToday"] == 1
        assert stats["absentToday"] == 2

        stats = app.extensions["exam_store"].stats(now=datetime(2026, 2, 25, 20, 55))
        assert stats["presentToday"] == 1


def test_present_today_in_utc(make_app):
    app = make_app(SCHOOL_UTC_OFFSET_MINUTES=0)
    with app.app_context():
        _mark_present(1, datetime(2026, 2, 25, 21, 15))
        _mark_present(2, datetime(2026, 2, 25, 20, 50))
        db.session.commit()

        stats = app.extensions["exam_store"].stats(now=datetime(2026, 2, 25, 22, 0))
        assert stats["presentToday"] == 2
