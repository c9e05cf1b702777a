"""
Domain errors raised by the billing core.

Each carries a short message that is safe to show to end users; main.py maps
them onto HTTP responses.
"""
from typing import List, Optional


class RetailError(Exception):
    """Base class for all domain errors"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RetailError):
    """Rejected before any write happened"""
    status_code = 400


class NotFoundError(RetailError):
    status_code = 404


class ConflictError(RetailError):
    """An atomic conditional update found the document in an unexpected state"""
    status_code = 409


class PartialWriteError(RetailError):
    """
    A multi-step write sequence failed part-way through.

    Steps that already completed are NOT undone. `completed_steps` and
    `failed_step` tell an operator exactly what needs manual repair.
    """

    def __init__(
        self,
        message: str,
        completed_steps: List[str],
        failed_step: str,
        bill_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step
        self.bill_id = bill_id

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "completed_steps": self.completed_steps,
            "failed_step": self.failed_step,
            "bill_id": self.bill_id,
        }
