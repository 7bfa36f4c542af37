from __future__ import annotations

import uuid


class ReviewError(RuntimeError):
    status_code = 400

    def __init__(self, message: str, *, document_id: uuid.UUID | None = None) -> None:
        super().__init__(message)
        self.document_id = document_id


class DocumentNotFound(ReviewError):
    status_code = 404


class AlreadyResolved(ReviewError):
    status_code = 409


class NoJobSelected(ReviewError):
    status_code = 400


class CommitFailed(ReviewError):
    status_code = 500


class JobNotFound(ReviewError):
    status_code = 404
