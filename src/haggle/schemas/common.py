# haggle/schemas/common.py

from pydantic import BaseModel, Field
from typing import Generic, TypeVar, Optional

T = TypeVar('T')

class OperationResult(BaseModel, Generic[T]):
    """
    The {success, message, data} envelope returned by every public service
    operation and every API route. `error` carries the machine-readable
    failure code and is not serialized.
    """
    success: bool = True
    message: str = "success"
    data: Optional[T] = None
    error: Optional[str] = Field(None, exclude=True)

    @classmethod
    def ok(cls, data: Optional[T] = None, message: str = "success") -> "OperationResult[T]":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, error: Optional[str] = None, data: Optional[T] = None) -> "OperationResult[T]":
        return cls(success=False, message=message, error=error, data=data)
