"""
Dashboard client for the exam control API.

Fetches the dashboard state, derives room capacity alerts and decides which
tabs a role may open. Alerts and the logistics board live only in the client
and are rebuilt on every refresh.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
import requests
from exam_control.messages import translate
from exam_control.models import ROLE_ADMIN, ROLE_CONTROLLER, ROLE_PROCTOR

logger = logging.getLogger(__name__)

WARNING_RATE = 90
FULL_RATE = 100

NAV_ITEMS = [
    {"id": "dashboard", "label": "لوحة التحكم", "roles": (ROLE_ADMIN, ROLE_CONTROLLER)},
    {"id": "rooms", "label": "اللجان والقاعات", "roles": (ROLE_ADMIN, ROLE_CONTROLLER)},
    {"id": "students", "label": "الطلاب", "roles": (ROLE_ADMIN, ROLE_CONTROLLER)},
    {"id": "attendance", "label": "التحضير الذكي", "roles": (ROLE_ADMIN, ROLE_CONTROLLER, ROLE_PROCTOR)},
    {"id": "logistics", "label": "اللوجستيات", "roles": (ROLE_ADMIN, ROLE_CONTROLLER)},
    {"id": "staff", "label": "أعضاء الكنترول", "roles": (ROLE_ADMIN,)},
    {"id": "settings", "label": "الإعدادات", "roles": (ROLE_ADMIN,)},
]

SNAPSHOT_PATHS = {
    "stats": "/stats",
    "rooms": "/rooms",
    "students": "/students",
    "users": "/users",
    "occupancy": "/rooms/occupancy",
}


class DashboardError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def allowed_tabs(role):
    return [item["id"] for item in NAV_ITEMS if role in item["roles"]]


def initial_tab(role, current=None):
    tabs = allowed_tabs(role)
    if current in tabs:
        return current
    return tabs[0] if tabs else None


class Notification:
    def __init__(self, id, title, message, severity, timestamp, is_read=False):
        self.id = id
        self.title = title
        self.message = message
        self.severity = severity
        self.timestamp = timestamp
        self.is_read = is_read

    def __repr__(self):
        return f"<Notification {self.id} ({self.severity})>"


def occupancy_rate(room):
    capacity = room.get("capacity") or 0
    occupancy = room.get("current_occupancy") or 0
    if capacity > 0:
        return occupancy / capacity * 100
    return float("inf") if occupancy > 0 else 0.0


def derive_notifications(occupancy, locale=None, now=None):
    """Build one capacity alert per room at or above the warning rate."""
    stamp = (now or datetime.now()).strftime("%H:%M:%S")
    notifications = []
    for room in occupancy:
        rate = occupancy_rate(room)
        if rate < WARNING_RATE:
            continue
        notifications.append(Notification(
            id=f"room-{room['id']}-capacity",
            title=translate("capacity_alert_title", locale),
            message=translate("capacity_alert_message", locale, name=room.get("name"),
                              occupancy=room.get("current_occupancy"),
                              capacity=room.get("capacity")),
            severity="error" if rate >= FULL_RATE else "warning",
            timestamp=stamp,
        ))
    return notifications


class DashboardSnapshot:
    def __init__(self, stats, rooms, students, users, occupancy, notifications=None,
                 current_user=None, active_tab=None):
        self.stats = stats
        self.rooms = rooms
        self.students = students
        self.users = users
        self.occupancy = occupancy
        self.notifications = notifications or []
        self.current_user = current_user
        self.active_tab = active_tab


class DashboardClient:
    def __init__(self, base_url="http://localhost:5000/api", session=None, max_workers=5,
                 timeout=10, locale=None, super_admin_username="1027594579"):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.max_workers = max_workers
        self.timeout = timeout
        self.locale = locale
        self.super_admin_username = super_admin_username
        self.current_user = None

    def _request(self, method, path, fallback="save_failed", **kwargs):
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise DashboardError(translate("connection_failed", self.locale)) from exc
        if not resp.ok:
            try:
                body = resp.json()
            except ValueError:
                body = None
            message = body.get("error") if isinstance(body, dict) else None
            raise DashboardError(message or translate(fallback, self.locale),
                                 status_code=resp.status_code)
        return resp.json()

    def fetch_snapshot(self, current_tab=None):
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {name: pool.submit(self._request, "GET", path, "connection_failed")
                       for name, path in SNAPSHOT_PATHS.items()}
            try:
                data = {name: future.result() for name, future in futures.items()}
            except DashboardError:
                logger.error("Error fetching dashboard data", exc_info=True)
                raise

        snapshot = DashboardSnapshot(notifications=derive_notifications(data["occupancy"], self.locale),
                                     **data)
        if self.current_user is None and snapshot.users:
            admin = [u for u in snapshot.users if u.get("username") == self.super_admin_username]
            self.current_user = admin[0] if admin else snapshot.users[0]
        snapshot.current_user = self.current_user
        if self.current_user:
            snapshot.active_tab = initial_tab(self.current_user.get("role"), current_tab)
        return snapshot

    def login(self, username, password):
        user = self._request("POST", "/login", "invalid_credentials",
                             json={"username": username, "password": password})
        self.current_user = user
        return user

    def _save(self, collection, entity):
        body = {k: v for k, v in entity.items() if k != "id"}
        if entity.get("id"):
            return self._request("PUT", f"/{collection}/{entity['id']}", json=body)
        return self._request("POST", f"/{collection}", json=body)

    def save_room(self, room):
        return self._save("rooms", room)

    def delete_room(self, room_id):
        return self._request("DELETE", f"/rooms/{room_id}")

    def save_student(self, student):
        return self._save("students", student)

    def delete_student(self, student_id):
        return self._request("DELETE", f"/students/{student_id}")

    def save_user(self, user):
        return self._save("users", user)

    def delete_user(self, user_id):
        return self._request("DELETE", f"/users/{user_id}")

    def import_students(self, rows):
        return self._request("POST", "/students/bulk", json=list(rows))

    def import_rooms(self, rows):
        return self._request("POST", "/rooms/bulk", json=list(rows))

    def mark_attendance(self, student_id, exam_id, status="present"):
        return self._request("POST", "/attendance/mark",
                             json={"student_id": student_id, "exam_id": exam_id, "status": status})

    def deliver(self, room_id, receiver_name):
        return self._request("POST", "/logistics/deliver",
                             json={"room_id": room_id, "receiver_name": receiver_name})


PENDING = "pending"
DELIVERED = "delivered"

SAMPLE_DELIVERIES = [
    {"id": 1, "room": "القاعة الكبرى", "subject": "الرياضيات", "status": DELIVERED, "time": "07:45", "proctor": "أ. عبدالله"},
    {"id": 2, "room": "مختبر الحاسب", "subject": "الرياضيات", "status": PENDING, "time": None, "proctor": "أ. ليلى"},
    {"id": 3, "room": "القاعة 101", "subject": "الرياضيات", "status": DELIVERED, "time": "07:50", "proctor": "أ. خالد"},
]


class LogisticsBoard:
    """Client-side envelope delivery board; never sent to the server."""

    def __init__(self, rows=None):
        self.rows = [dict(r) for r in (SAMPLE_DELIVERIES if rows is None else rows)]

    def pending(self):
        return [r for r in self.rows if r["status"] == PENDING]

    def scan_envelope(self, now=None):
        for row in self.rows:
            if row["status"] == PENDING:
                row["status"] = DELIVERED
                row["time"] = (now or datetime.now()).strftime("%H:%M")
                return row
        return None
