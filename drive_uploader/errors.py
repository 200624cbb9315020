"""
Error taxonomy for drive_uploader.

Every error carries an ErrorCategory so the presentation layer can map it
to a localized notification without this package knowing about toasts.
"""
import asyncio
from enum import Enum
from typing import Optional

import httpx


class ErrorCategory(Enum):
    """Caller-facing classification of a failure."""
    CONNECTIVITY = "connectivity"
    SESSION = "session"
    SERVER_REJECTION = "server_rejection"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


# Keywords ("rede", "sessão", "OneDrive") are matched by the presentation layer.
_MESSAGES = {
    ErrorCategory.CONNECTIVITY: "Erro de rede ao enviar {name}: {detail}",
    ErrorCategory.SESSION: "Erro ao criar sessão de upload para {name}: {detail}",
    ErrorCategory.SERVER_REJECTION: "OneDrive recusou o arquivo {name}: {detail}",
    ErrorCategory.VALIDATION: "Arquivo inválido {name}: {detail}",
    ErrorCategory.UNKNOWN: "Erro no upload de {name}: {detail}",
}


class UploaderError(Exception):
    """Base class for drive_uploader errors."""
    category = ErrorCategory.UNKNOWN


class ConfigurationError(UploaderError):
    """Required context missing or policy combination invalid."""


class TaskStateError(UploaderError):
    """Illegal transfer task state transition."""


class FileRejectedError(UploaderError):
    """File failed per-file validation before any transfer."""
    category = ErrorCategory.VALIDATION


class RemoteStoreError(UploaderError):
    """Failure reported by the remote store."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConnectivityError(RemoteStoreError):
    category = ErrorCategory.CONNECTIVITY


class SessionCreationError(RemoteStoreError):
    category = ErrorCategory.SESSION


class ServerRejectionError(RemoteStoreError):
    category = ErrorCategory.SERVER_REJECTION


class RemoteItemNotFoundError(ServerRejectionError):
    """Remote item id is unknown to the store."""


class TransferError(UploaderError):
    """Classified failure of a single file upload."""

    def __init__(
        self,
        file_id: str,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.file_id = file_id
        self.message = message
        self.category = category
        self.cause = cause


class RemoteAccessError(UploaderError):
    """Download or removal of a remote item failed."""

    def __init__(
        self,
        item_id: str,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.item_id = item_id
        self.message = message
        self.category = category
        self.cause = cause


def describe_exception(exc: BaseException) -> str:
    message = str(exc).strip()
    if message:
        return message
    return f"{type(exc).__name__}: {repr(exc)}"


def classify_error(
    exc: BaseException,
    default: ErrorCategory = ErrorCategory.UNKNOWN,
) -> ErrorCategory:
    """
    Classify an exception for caller-facing messaging.

    Args:
        exc: The exception raised while talking to the store
        default: Category used when the exception says nothing specific
            (the manager passes SESSION while a session is being created)

    Returns:
        ErrorCategory
    """
    category = getattr(exc, "category", None)
    if isinstance(category, ErrorCategory) and category is not ErrorCategory.UNKNOWN:
        return category
    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return ErrorCategory.CONNECTIVITY
    if isinstance(exc, httpx.HTTPStatusError):
        return ErrorCategory.SERVER_REJECTION
    return default


def describe_error(category: ErrorCategory, file_name: str, exc: BaseException) -> str:
    """Render the classified message handed to on_error."""
    return _MESSAGES[category].format(name=file_name, detail=describe_exception(exc))
