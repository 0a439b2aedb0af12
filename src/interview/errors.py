"""
Error taxonomy shared by the store, the orchestrator and the API layer.

Controllers map these onto HTTP status codes:
    NotFoundError      -> 404
    InvalidStateError  -> 400
    StoreWriteError    -> 500
EvaluatorError never reaches the caller; the orchestrator replaces the
evaluation with a deterministic failure payload instead.
"""


class InterviewError(Exception):
    """Base class for domain errors."""


class NotFoundError(InterviewError):
    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind.capitalize()} '{record_id}' not found")


class InvalidStateError(InterviewError):
    """The requested operation is not allowed in the record's current state."""


class StoreWriteError(InterviewError):
    """A put/delete failed. Never swallowed: losing a write loses data."""


class EvaluatorError(InterviewError):
    """The evaluator call failed or returned a non-conforming payload."""


class CodecError(InterviewError):
    """Bytes could not be decoded into a record."""
