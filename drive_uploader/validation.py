"""
File set validation - pure, synchronous, no I/O.

Runs before any transfer: the manager uses check_file() to gate each task
and validate() backs validate_budget_files().
"""
from collections import Counter
from typing import List, Optional, Sequence

from .models import (
    MB,
    FileCategory,
    LocalFile,
    RetentionPolicy,
    ValidationIssue,
    ValidationResult,
)

NO_FILES = "no_files"
FILE_TOO_LARGE = "file_too_large"
UNSUPPORTED_TYPE = "unsupported_type"
MISSING_REQUIRED_CATEGORY = "missing_required_category"


def _human_size(value: int) -> str:
    if value >= MB:
        return f"{value / MB:.0f} MB"
    return f"{value} bytes"


class FileSetValidator:
    """
    Validates candidate files against the rules of one retention policy.

    Args:
        policy: Retention policy whose accepted types apply (None = any type)
        max_file_size: Maximum size in bytes per file
        required_category: Category demanded by validate(require_category=True)
    """

    def __init__(
        self,
        policy: Optional[RetentionPolicy] = None,
        max_file_size: int = 50 * MB,
        required_category: FileCategory = FileCategory.SPREADSHEET,
    ):
        self._policy = policy
        self._max_file_size = max_file_size
        self._required_category = required_category

    def check_file(self, file: LocalFile) -> List[ValidationIssue]:
        """Per-file rules only."""
        issues = []
        if file.size > self._max_file_size:
            issues.append(ValidationIssue(
                code=FILE_TOO_LARGE,
                message=f"{file.name} exceeds the maximum size of {_human_size(self._max_file_size)}",
                file_name=file.name,
            ))
        if self._policy is not None and not self._policy.accepts(file.category):
            issues.append(ValidationIssue(
                code=UNSUPPORTED_TYPE,
                message=f"{file.name} has an unsupported file type ({file.mime_type})",
                file_name=file.name,
            ))
        return issues

    def validate(self, files: Sequence[LocalFile], require_category: bool = False) -> ValidationResult:
        """
        Validate a whole file set.

        Args:
            files: Candidate files, in caller order
            require_category: Demand at least one file of the required category

        Returns:
            ValidationResult with errors in evaluation order and per-category counts
        """
        files = list(files)
        errors: List[ValidationIssue] = []

        if not files:
            errors.append(ValidationIssue(code=NO_FILES, message="no files provided"))

        categories = Counter()
        for file in files:
            categories[file.category] += 1
            errors.extend(self.check_file(file))

        if require_category and categories[self._required_category] == 0:
            errors.append(ValidationIssue(
                code=MISSING_REQUIRED_CATEGORY,
                message=f"missing required category: at least one {self._required_category.value} file is required",
            ))

        counts = {"total": len(files)}
        for category in FileCategory:
            if categories[category]:
                counts[category.value] = categories[category]

        return ValidationResult(is_valid=not errors, errors=tuple(errors), counts=counts)
