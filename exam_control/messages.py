from flask import current_app, has_app_context

DEFAULT_LOCALE = "ar"

MESSAGES = {
    "ar": {
        "duplicate_academic_id": "الرقم الأكاديمي موجود مسبقاً",
        "duplicate_username": "اسم المستخدم موجود مسبقاً",
        "invalid_credentials": "اسم المستخدم أو كلمة المرور غير صحيحة",
        "super_admin_delete": "لا يمكن حذف المدير العام",
        "super_admin_rename": "لا يمكن تغيير اسم مستخدم المدير العام",
        "update_failed": "خطأ في التحديث",
        "database_error": "خطأ في قاعدة البيانات",
        "not_found": "السجل غير موجود",
        "missing_fields": "بيانات ناقصة أو غير صالحة",
        "invalid_bulk_payload": "يجب إرسال قائمة من السجلات",
        "invalid_bulk_row": "السجل رقم {index} غير صالح",
        "invalid_status": "حالة الحضور غير صالحة",
        "invalid_role": "الصلاحية غير صالحة",
        "capacity_alert_title": "تنبيه سعة القاعة",
        "capacity_alert_message": "القاعة \"{name}\" اقتربت من سعتها القصوى ({occupancy}/{capacity})",
        "save_failed": "خطأ في حفظ البيانات",
        "connection_failed": "خطأ في الاتصال بالخادم",
    },
    "en": {
        "duplicate_academic_id": "Academic ID already exists",
        "duplicate_username": "Username already exists",
        "invalid_credentials": "Invalid username or password",
        "super_admin_delete": "The super admin cannot be deleted",
        "super_admin_rename": "The super admin username cannot be changed",
        "update_failed": "Update failed",
        "database_error": "Database error",
        "not_found": "Record not found",
        "missing_fields": "Missing or invalid fields",
        "invalid_bulk_payload": "Expected a list of records",
        "invalid_bulk_row": "Record {index} is invalid",
        "invalid_status": "Invalid attendance status",
        "invalid_role": "Invalid role",
        "capacity_alert_title": "Room capacity alert",
        "capacity_alert_message": "Room \"{name}\" is close to full capacity ({occupancy}/{capacity})",
        "save_failed": "Failed to save data",
        "connection_failed": "Could not reach the server",
    },
}


def current_locale():
    if has_app_context():
        return current_app.config.get("EXAM_CONTROL_LOCALE", DEFAULT_LOCALE)
    return DEFAULT_LOCALE


def translate(key, locale=None, **params):
    """Look up a message key; unknown locales fall back to Arabic, unknown keys to the key."""
    table = MESSAGES.get(locale or current_locale(), MESSAGES[DEFAULT_LOCALE])
    text = table.get(key, key)
    if params:
        text = text.format(**params)
    return text
