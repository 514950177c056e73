"""Business-rule errors. Each carries the HTTP status the API answers with."""

from typing import Optional


class StoreError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(StoreError):
    status_code = 400


class NotFound(StoreError):
    status_code = 404


class Forbidden(StoreError):
    status_code = 403


class Conflict(StoreError):
    status_code = 409


class InsufficientCoins(BadRequest):
    def __init__(self, message: str = "Insufficient coins"):
        super().__init__(message)


class OutOfStock(BadRequest):
    pass


class InvalidTransition(BadRequest):
    pass
