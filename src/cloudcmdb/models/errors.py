"""Typed error taxonomy shared by every service and the API boundary."""

from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import ClassVar

from pydantic import BaseModel


class ErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    INVALID = "invalid"
    SYSTEM_ERROR = "system_error"


class ErrorCode(IntEnum):
    """Stable numeric codes. The first three digits mirror the HTTP status."""

    PARAMS_ERROR = 400001
    SYSTEM_ERROR = 500001

    MODEL_NOT_FOUND = 404001
    MODEL_EXISTS = 409001
    MODEL_INVALID = 400002

    INSTANCE_NOT_FOUND = 404002
    INSTANCE_EXISTS = 409002
    INSTANCE_INVALID = 400003

    RELATION_NOT_FOUND = 404003
    RELATION_EXISTS = 409003
    RELATION_INVALID = 400004

    ATTRIBUTE_NOT_FOUND = 404004
    ATTRIBUTE_EXISTS = 409004
    ATTRIBUTE_INVALID = 400005

    MODEL_GROUP_NOT_FOUND = 404005
    MODEL_GROUP_EXISTS = 409005
    MODEL_GROUP_INVALID = 400006
    GROUP_HAS_MODELS = 400007
    CANNOT_DELETE_BUILTIN = 400008

    RELATION_TYPE_NOT_FOUND = 404006
    RELATION_TYPE_EXISTS = 409006

    RULE_NOT_FOUND = 404007
    RULE_INVALID = 400009

    NODE_NOT_FOUND = 404008
    BINDING_NOT_FOUND = 404009
    BINDING_EXISTS = 409007


class CMDBError(Exception):
    """Base class for all domain errors raised by cloudcmdb.

    Callers branch on :attr:`kind`; :attr:`code` is a stable identifier the
    API boundary passes through unchanged.
    """

    kind: ClassVar[ErrorKind] = ErrorKind.SYSTEM_ERROR
    default_code: ClassVar[ErrorCode] = ErrorCode.SYSTEM_ERROR

    def __init__(self, message: str, *, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, code=int(self.code), message=self.message)


class NotFoundError(CMDBError):
    kind = ErrorKind.NOT_FOUND
    default_code = ErrorCode.MODEL_NOT_FOUND


class AlreadyExistsError(CMDBError):
    kind = ErrorKind.ALREADY_EXISTS
    default_code = ErrorCode.MODEL_EXISTS


class InvalidError(CMDBError):
    kind = ErrorKind.INVALID
    default_code = ErrorCode.PARAMS_ERROR


class StorageError(CMDBError):
    """A persistence failure; the operation may be retried."""

    kind = ErrorKind.SYSTEM_ERROR
    default_code = ErrorCode.SYSTEM_ERROR


class ErrorInfo(BaseModel):
    """Serializable form of a :class:`CMDBError`."""

    kind: ErrorKind
    code: int
    message: str
