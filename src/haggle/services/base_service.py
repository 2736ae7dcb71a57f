# haggle/services/base_service.py

import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar
from sqlalchemy.exc import SQLAlchemyError
from haggle.core.context import AppContext
from haggle.schemas.common import OperationResult
from haggle.services.exceptions import ServiceException, PersistenceError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

PERSISTENCE_ERROR_MESSAGE = "We could not save your changes. Please try again."

class BaseService:
    def __init__(self, context: AppContext):
        self.context = context
        self.db = context.db

def service_operation(func: F) -> F:
    """
    Marks a public service operation. The wrapped call runs inside its own
    SAVEPOINT and always returns an OperationResult:

    - a returned OperationResult passes through unchanged (and is committed,
      which lets an operation report a failure while keeping audit rows);
    - any other return value becomes OperationResult.ok(value);
    - a ServiceException rolls the savepoint back and becomes a failed result
      carrying its message and code;
    - a SQLAlchemyError rolls back, is logged with its traceback and becomes a
      PersistenceError result with a generic message.
    """
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args, **kwargs) -> OperationResult:
        operation = f"{type(self).__name__}.{func.__name__}"
        try:
            async with self.db.begin_nested():
                result = await func(self, *args, **kwargs)
        except ServiceException as e:
            logger.info(f"[{operation}] rejected ({e.code}): {e.message}")
            return OperationResult.fail(e.message, e.code)
        except SQLAlchemyError:
            logger.error(f"[{operation}] database failure, changes rolled back.", exc_info=True)
            return OperationResult.fail(PERSISTENCE_ERROR_MESSAGE, PersistenceError.code)

        if isinstance(result, OperationResult):
            return result
        return OperationResult.ok(result)

    return wrapper  # type: ignore[return-value]
