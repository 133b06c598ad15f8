class ShopError(Exception):
    """Base error for shop operations; ``status`` is the HTTP status to answer with."""

    status = 500

    def __init__(self, msg: str, status: int | None = None):
        super().__init__(msg)
        self.msg = msg
        if status is not None:
            self.status = status


class InvalidInput(ShopError):
    status = 400


class CodeUnavailable(ShopError):
    status = 400


class Unauthorized(ShopError):
    status = 401


class NotFound(ShopError):
    status = 404


class Conflict(ShopError):
    status = 409
