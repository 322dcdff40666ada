# civicsync/core/errors.py
"""
Error taxonomy shared by the coordinator and the HTTP surface.

Every error's ``str()`` is the text shown to the user; ``status_code`` is the
HTTP status the API answers with.
"""


class CivicSyncError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CivicSyncError):
    """Local, pre-network failure. No remote call was made."""
    status_code = 400


class AuthError(CivicSyncError):
    status_code = 401


class NotOwnerError(CivicSyncError):
    status_code = 403


class IssueNotFoundError(CivicSyncError):
    status_code = 404


class SubmissionInProgressError(CivicSyncError):
    status_code = 409


class RemoteWriteError(CivicSyncError):
    status_code = 502


class RemoteReadError(CivicSyncError):
    status_code = 503
