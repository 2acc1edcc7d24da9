"""Lifecycle error kinds.

Every error raised by the services carries a stable ``code`` and the HTTP
status the routes answer with, so the app-level error handler can turn it
into the usual ``{"ok": False, "error": ...}`` payload.
"""

from __future__ import annotations

from typing import Iterable


class LifecycleError(Exception):
    code = "lifecycle_error"
    status = 400
    default_message = "Request could not be completed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.code, "message": self.message}


class RegistrationClosed(LifecycleError):
    code = "registration_closed"
    status = 409
    default_message = "Registration for this event is closed."


class EventFull(LifecycleError):
    code = "event_full"
    status = 409
    default_message = "This event has no remaining slots."


class AlreadyRegistered(LifecycleError):
    code = "already_registered"
    status = 409
    default_message = "You are already registered for this event."


class NotRegistered(LifecycleError):
    code = "not_registered"
    status = 404
    default_message = "You are not registered for this event."


class InvalidToken(LifecycleError):
    code = "invalid_token"
    status = 400
    default_message = "The attendance token does not match."


class AttendanceWindowClosed(LifecycleError):
    code = "attendance_window_closed"
    status = 403
    default_message = "Attendance is not open for this event."


class AlreadyAttended(LifecycleError):
    code = "already_attended"
    status = 409
    default_message = "Attendance was already recorded."


class NotEligible(LifecycleError):
    code = "not_eligible"
    status = 409
    default_message = "Participant is not eligible for a certificate."


class CertificateAlreadyExists(NotEligible):
    code = "certificate_already_exists"
    default_message = "A certificate was already issued for this participant."


class TemplateValidationError(LifecycleError):
    code = "template_invalid"
    status = 400
    default_message = "Template is not valid."

    def __init__(self, violations: Iterable = (), message: str | None = None):
        self.violations = list(violations)
        super().__init__(message)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["violations"] = [
            v.to_dict() if hasattr(v, "to_dict") else {"field": "", "message": str(v)}
            for v in self.violations
        ]
        return payload


class TemplateNotFound(LifecycleError):
    code = "template_not_found"
    status = 404
    default_message = "Certificate template not found."


class TemplateInactive(LifecycleError):
    code = "template_inactive"
    status = 409
    default_message = "Certificate template is inactive."


class TemplateInUse(LifecycleError):
    code = "template_in_use"
    status = 409
    default_message = "The default template cannot be deleted."


class EventNotFound(LifecycleError):
    code = "event_not_found"
    status = 404
    default_message = "Event not found."


class EventLocked(LifecycleError):
    code = "event_locked"
    status = 409
    default_message = "Event can no longer be changed."


class EventValidationError(LifecycleError):
    code = "event_invalid"
    status = 400
    default_message = "Event is not valid."


class CertificateNotFound(LifecycleError):
    code = "certificate_not_found"
    status = 404
    default_message = "Certificate not found."


class UserNotFound(LifecycleError):
    code = "user_not_found"
    status = 404
    default_message = "User not found."


class TokenGenerationError(LifecycleError):
    code = "token_generation_failed"
    status = 500
    default_message = "Could not allocate a unique token."


class RenderError(LifecycleError):
    code = "render_failed"
    status = 502
    default_message = "Certificate rendering failed."
