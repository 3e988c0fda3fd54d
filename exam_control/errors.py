from exam_control.messages import translate


class ExamControlError(Exception):
    """Base error; carries a message key rendered in the configured locale."""
    status_code = 400
    message_key = "database_error"

    def __init__(self, message_key=None, **params):
        self.message_key = message_key or self.message_key
        self.params = params
        super().__init__(self.message_key)

    @property
    def message(self):
        return translate(self.message_key, **self.params)

    def to_dict(self):
        return {"error": self.message}


class ValidationError(ExamControlError):
    message_key = "missing_fields"


class DuplicateKeyError(ExamControlError):
    message_key = "update_failed"


class AuthenticationError(ExamControlError):
    status_code = 401
    message_key = "invalid_credentials"


class ForbiddenError(ExamControlError):
    status_code = 403
    message_key = "super_admin_delete"


class NotFoundError(ExamControlError):
    status_code = 404
    message_key = "not_found"


class MigrationError(Exception):
    def __init__(self, version, name, cause):
        self.version = version
        self.name = name
        self.cause = cause
        super().__init__(f"Migration {version} ({name}) failed: {cause}")
