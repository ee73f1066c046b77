"""Exam engine error taxonomy.

Every error carries the HTTP status the API layer answers with and a reason
string that is safe to show to the candidate.
"""

from __future__ import annotations


class ExamError(Exception):
    status_code = 500

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(ExamError):
    status_code = 400


class AuthorizationError(ExamError):
    status_code = 403


class StateConflictError(ExamError):
    """The attempt is not in a state that allows the operation.

    Callers may re-read the attempt; repeating the mutation will not help.
    """

    status_code = 400


class NotFoundError(ExamError):
    status_code = 404


class TransientStoreError(ExamError):
    status_code = 503


class InvalidTestDefinitionError(ExamError):
    """The catalog row for a test cannot be turned into a snapshot."""

    status_code = 500


# Reason strings shared by the HTTP layer and tests
ALREADY_SUBMITTED = "Test already submitted"
ALREADY_COMPLETED = "You have already completed this test"
ALREADY_STARTED = "Test already started"
TIME_EXPIRED = "Time expired"
INVALID_OPTION = "Invalid option selected"
NOT_YOUR_ATTEMPT = "You do not have permission to view this result"
RESULT_NOT_READY = "Test result not yet generated"
INVALID_TEST_DEFINITION = "Test definition is invalid"
