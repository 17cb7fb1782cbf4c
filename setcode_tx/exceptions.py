from dataclasses import dataclass
from enum import Enum


class ValidationExceptionCode(Enum):
    InvalidFields = -32602
    InvalidChainId = -32610
    InvalidAddress = -32611
    EmptyAuthorizationList = -32612


@dataclass
class ValidationException(Exception):
    exception_code: ValidationExceptionCode
    message: str


@dataclass
class SigningFailure(Exception):
    message: str


class TransportExceptionCode(Enum):
    ConnectionError = -32000
    InvalidResponse = -32700
    RpcError = -32603


@dataclass
class TransportException(Exception):
    exception_code: TransportExceptionCode
    message: str
    error: object = None
