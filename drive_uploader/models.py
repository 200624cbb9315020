"""
Models for drive_uploader module.

Immutable dataclasses following Single Responsibility Principle.
"""
import mimetypes
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, FrozenSet, Tuple, List

from .errors import ConfigurationError, ErrorCategory

MB = 1024 * 1024


class UploadStatus(str, Enum):
    """Status tokens surfaced to callers. Presentation logic switches on these."""
    QUEUEING = "queueing"
    TRANSFERRING = "carregando"
    FINALIZING = "finalizando"
    SUCCESS = "success"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value

    def __format__(self, format_spec: str) -> str:
        return format(self.value, format_spec)

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.SUCCESS, UploadStatus.ERROR)


class RetentionMode(Enum):
    """Remote namespace a manager writes to."""
    STAGED = "staged"
    PERMANENT = "permanent"


class ContextRequirement(Enum):
    OPTIONAL_CONTEXT = "optional-context"
    REQUIRED_ORDER_ID = "required-order-id"


class FileCategory(Enum):
    """Coarse file categories used for validation and summaries."""
    SPREADSHEET = "spreadsheet"
    PDF = "pdf"
    IMAGE = "image"
    DOCUMENT = "document"
    OTHER = "other"

    @classmethod
    def detect(cls, name: str, mime_type: Optional[str] = None) -> "FileCategory":
        """Detect category from extension first, then MIME type."""
        suffix = Path(name).suffix.lower()
        for category, extensions in _CATEGORY_EXTENSIONS.items():
            if suffix in extensions:
                return category

        mime = (mime_type or "").lower()
        if mime in _SPREADSHEET_MIME_TYPES:
            return cls.SPREADSHEET
        if mime == "application/pdf":
            return cls.PDF
        if mime.startswith("image/"):
            return cls.IMAGE
        if mime in _DOCUMENT_MIME_TYPES or mime.startswith("text/"):
            return cls.DOCUMENT
        return cls.OTHER


_CATEGORY_EXTENSIONS = {
    FileCategory.SPREADSHEET: {".xlsx", ".xls", ".xlsm", ".csv", ".ods"},
    FileCategory.PDF: {".pdf"},
    FileCategory.IMAGE: {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp"},
    FileCategory.DOCUMENT: {".doc", ".docx", ".odt", ".txt", ".rtf"},
}

_SPREADSHEET_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
    "application/vnd.ms-excel.sheet.macroenabled.12",
    "application/vnd.oasis.opendocument.spreadsheet",
    "text/csv",
}

_DOCUMENT_MIME_TYPES = {
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.oasis.opendocument.text",
    "application/rtf",
}

BUDGET_CATEGORIES: FrozenSet[FileCategory] = frozenset({
    FileCategory.SPREADSHEET,
    FileCategory.PDF,
    FileCategory.IMAGE,
    FileCategory.DOCUMENT,
})


@dataclass(frozen=True)
class RetentionPolicy:
    """Immutable staged-vs-permanent configuration of a manager."""
    mode: RetentionMode
    context_requirement: ContextRequirement = ContextRequirement.OPTIONAL_CONTEXT
    accepted_categories: Optional[FrozenSet[FileCategory]] = None  # None = any

    @classmethod
    def staged(cls) -> "RetentionPolicy":
        """Budget drafts: order id optional, budget-relevant types only."""
        return cls(
            mode=RetentionMode.STAGED,
            context_requirement=ContextRequirement.OPTIONAL_CONTEXT,
            accepted_categories=BUDGET_CATEGORIES,
        )

    @classmethod
    def permanent(cls) -> "RetentionPolicy":
        """Finalized records: order id required, any type."""
        return cls(
            mode=RetentionMode.PERMANENT,
            context_requirement=ContextRequirement.REQUIRED_ORDER_ID,
        )

    @property
    def is_staged(self) -> bool:
        return self.mode is RetentionMode.STAGED

    @property
    def requires_order_id(self) -> bool:
        return self.context_requirement is ContextRequirement.REQUIRED_ORDER_ID

    def accepts(self, category: FileCategory) -> bool:
        if self.accepted_categories is None:
            return True
        return category in self.accepted_categories


@dataclass(frozen=True)
class LocalFile:
    """Local file payload handed to the manager. Read-only once uploading."""
    name: str
    size: int
    mime_type: Optional[str] = None
    content: Optional[bytes] = field(default=None, repr=False)
    path: Optional[Path] = None
    file_id: Optional[str] = None

    def __post_init__(self):
        if self.mime_type is None:
            guessed, _ = mimetypes.guess_type(self.name)
            object.__setattr__(self, "mime_type", guessed or "application/octet-stream")

    @classmethod
    def from_path(cls, path: Path, file_id: Optional[str] = None) -> "LocalFile":
        path = Path(path)
        return cls(name=path.name, size=path.stat().st_size, path=path, file_id=file_id)

    @classmethod
    def from_bytes(
        cls,
        name: str,
        content: bytes,
        mime_type: Optional[str] = None,
        file_id: Optional[str] = None,
    ) -> "LocalFile":
        return cls(name=name, size=len(content), mime_type=mime_type, content=content, file_id=file_id)

    @property
    def category(self) -> FileCategory:
        return FileCategory.detect(self.name, self.mime_type)

    def read_bytes(self) -> bytes:
        """Load the payload. Blocking; run through asyncio.to_thread."""
        if self.content is not None:
            return self.content
        if self.path is not None:
            return Path(self.path).read_bytes()
        raise ValueError(f"No content available for {self.name}")


@dataclass(frozen=True)
class UploadOptions:
    """Per-call upload options."""
    order_id: Optional[str] = None
    file_id: Optional[str] = None  # only honoured by upload_single_file
    budget_category: Optional[str] = None
    permanent: Optional[bool] = None  # must agree with the manager policy when set


@dataclass(frozen=True)
class UploadSession:
    """Opaque handle returned by the remote store's create_session."""
    session_id: str
    mode: RetentionMode
    file_name: str = ""
    upload_url: Optional[str] = None


@dataclass(frozen=True)
class RemoteItem:
    """Remote object created by a finished upload."""
    item_id: str
    download_url: Optional[str] = None
    file_id: Optional[str] = None  # permanent file record, permanent mode only


@dataclass(frozen=True)
class UploadOutcome:
    """Immutable result of one file upload."""
    file_id: str
    file_name: str
    status: UploadStatus = UploadStatus.SUCCESS
    item_id: Optional[str] = None
    download_url: Optional[str] = None
    permanent_file_id: Optional[str] = None
    file_size: int = 0
    budget_category: Optional[str] = None
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    @property
    def success(self) -> bool:
        return self.status == UploadStatus.SUCCESS

    @classmethod
    def ok(
        cls,
        file_id: str,
        file_name: str,
        item: RemoteItem,
        file_size: int = 0,
        budget_category: Optional[str] = None,
    ):
        return cls(
            file_id=file_id,
            file_name=file_name,
            status=UploadStatus.SUCCESS,
            item_id=item.item_id,
            download_url=item.download_url,
            permanent_file_id=item.file_id,
            file_size=file_size,
            budget_category=budget_category,
        )

    @classmethod
    def fail(
        cls,
        file_id: str,
        file_name: str,
        error: str,
        error_category: ErrorCategory = ErrorCategory.UNKNOWN,
        cause: Optional[BaseException] = None,
        file_size: int = 0,
        budget_category: Optional[str] = None,
    ):
        return cls(
            file_id=file_id,
            file_name=file_name,
            status=UploadStatus.ERROR,
            file_size=file_size,
            budget_category=budget_category,
            error=error,
            error_category=error_category,
            cause=cause,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Payload in the shape the presentation layer reads."""
        data: Dict[str, Any] = {
            "fileId": self.file_id,
            "fileName": self.file_name,
            "status": self.status.value,
            "fileSize": self.file_size,
            "budgetCategory": self.budget_category,
        }
        if self.success:
            data["onedrive_item_id"] = self.item_id
            data["onedrive_download_url"] = self.download_url
            data["permanent_file_id"] = self.permanent_file_id
        else:
            data["error"] = self.error
            data["errorCategory"] = self.error_category.value if self.error_category else None
        return data


@dataclass(frozen=True)
class ValidationIssue:
    """One validation failure. file_name is None for set-level issues."""
    code: str
    message: str
    file_name: Optional[str] = None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a candidate file set. Never persisted."""
    is_valid: bool
    errors: Tuple[ValidationIssue, ...] = ()
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def messages(self) -> List[str]:
        return [issue.message for issue in self.errors]


def _env_int(name: str, default: Optional[int], allow_auto: bool = False) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    if allow_auto and raw.strip().lower() in {"auto", "none"}:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for upload operations."""
    max_parallel: Optional[int] = 3  # None = derive from average file size
    max_file_size: int = 50 * MB
    chunk_size: int = 10 * 320 * 1024  # drive sessions want multiples of 320 KiB
    download_dir: Path = Path("downloads")

    @classmethod
    def from_env(cls) -> "UploadConfig":
        """Build config from DRIVE_UPLOADER_* environment variables."""
        defaults = cls()
        return cls(
            max_parallel=_env_int("DRIVE_UPLOADER_MAX_PARALLEL", defaults.max_parallel, allow_auto=True),
            max_file_size=_env_int("DRIVE_UPLOADER_MAX_FILE_SIZE", defaults.max_file_size),
            chunk_size=_env_int("DRIVE_UPLOADER_CHUNK_SIZE", defaults.chunk_size),
            download_dir=Path(os.getenv("DRIVE_UPLOADER_DOWNLOAD_DIR") or defaults.download_dir),
        )
