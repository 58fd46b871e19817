"""
Error types raised while preparing exam copies for export
"""

from typing import Any, Optional


class TrondeError(Exception):
    """Base error carrying the id of the offending question, if any"""

    def __init__(self, message: str, question_id: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.question_id = question_id

    def to_dict(self) -> dict:
        return {"message": self.message, "question_id": self.question_id}


class InvalidQuestionShape(TrondeError):
    """A question does not have the fields its type requires"""


class ShuffleConsistencyViolation(TrondeError):
    """A shuffled correct-option label no longer points at the original answer"""
