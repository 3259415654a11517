"""
Dispatch error taxonomy.

Every error is a terminal, user-facing outcome: the engine never retries on
the caller's behalf. `status_code` is the HTTP status the API answers with.
"""


class DispatchError(Exception):
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def to_detail(self) -> dict:
        return {"error": self.name, "message": self.message}


class StaleState(DispatchError):
    """A conditional write lost a race. Refetch before deciding again."""
    status_code = 409


class IllegalTransition(DispatchError):
    """Requested edge is not in the order's status graph."""
    status_code = 409


class Unauthorized(DispatchError):
    """Actor or role may not perform this operation on this order."""
    status_code = 403


class OrderUnavailable(DispatchError):
    """Claim lost: the order is already taken, cancelled, or gone."""
    status_code = 409


class NotWritable(DispatchError):
    """Location publish outside the runner's active window."""
    status_code = 403


class NotVisible(DispatchError):
    """Location read by someone who is not the buyer or assigned runner."""
    status_code = 403


class OrderNotFound(DispatchError):
    status_code = 404


class RunnerNotFound(DispatchError):
    status_code = 404


class LocationNotFound(DispatchError):
    status_code = 404


class CorruptOrderState(DispatchError):
    """Stored order violates a lifecycle invariant; processing halts."""
    status_code = 500
