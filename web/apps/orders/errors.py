"""Domain errors raised by the orders core.

Each error carries a machine-readable ``code`` and a human-readable
``message``. The class tells the caller what to do about it: fix the input,
ask someone allowed to do it, or try again.
"""


class OrderError(Exception):
    status_code = 400
    retryable = False
    default_message = "The request could not be processed."

    def __init__(self, code: str, message: str | None = None):
        super().__init__(code)
        self.code = code
        self.message = message or self.default_message

    def as_dict(self) -> dict:
        return {"detail": self.code, "message": self.message, "retryable": self.retryable}


class ValidationError(OrderError):
    """Bad input or a business precondition that does not hold."""

    status_code = 422
    default_message = "Please fix your input and submit again."


class AuthorizationError(OrderError):
    status_code = 403
    default_message = "You are not allowed to perform this action."


class NotFoundError(OrderError):
    status_code = 404
    default_message = "The requested resource does not exist."


class ConflictError(OrderError):
    """Lost a race with a concurrent writer; nothing was changed."""

    status_code = 409
    retryable = True
    default_message = "The order changed while you were working on it. Please try again."
