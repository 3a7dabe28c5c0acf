import functools
import logging

logger = logging.getLogger(__name__)

class DomainError(Exception):
    status_code: int = 500
    kind: str = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class NotFound(DomainError):
    status_code = 404
    kind = "not_found"

class Conflict(DomainError):
    status_code = 409
    kind = "conflict"

class BadRequest(DomainError):
    status_code = 400
    kind = "bad_request"

class Internal(DomainError):
    status_code = 500
    kind = "internal"

class InvalidTimeFormat(BadRequest):
    pass

def collapse_internal(message: str):
    """Wrap a service coroutine so failures roll the session back.

    Domain errors are re-raised untouched. Anything else is logged with its
    traceback and replaced by ``Internal(message)`` so storage details never
    reach the caller.
    """
    def deco(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except DomainError:
                await self.session.rollback()
                raise
            except Exception as e:
                await self.session.rollback()
                logger.exception(f"{message}: {e.__class__.__name__}")
                raise Internal(message) from e
        return wrapper
    return deco
