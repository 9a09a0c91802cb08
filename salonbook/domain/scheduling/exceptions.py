"""Scheduling errors - each maps to one HTTP status at the API boundary"""


class SchedulingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidRequest(SchedulingError):
    status_code = 422


class NotFound(SchedulingError):
    status_code = 404


class ClientBlacklisted(SchedulingError):
    status_code = 403


class Forbidden(SchedulingError):
    status_code = 403


class NoCapacity(SchedulingError):
    status_code = 409


class Conflict(SchedulingError):
    status_code = 409


class InvalidTransition(SchedulingError):
    status_code = 409


class PolicyViolation(SchedulingError):
    status_code = 422


class NoTenantContext(SchedulingError):
    status_code = 400
