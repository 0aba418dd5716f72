"""
Two-Stage Input Validation

DESIGN DECISION: Document input is validated in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- A non-empty list of lines
- Every line has a description, a positive quantity, a non-negative price
- This catches malformed requests

STAGE 2 - SEMANTIC VALIDATION:
- The country has a registered tax regime
- The rate key exists in that regime (otherwise the default rate applies)
- The due date is not before the document date

WHY TWO STAGES:
1. Better error messages (know exactly what kind of issue)
2. Stage 2 is meaningless on malformed lines, so it is skipped

IMPORTANT: Validation NEVER silently fixes issues.
Errors are raised to the caller; warnings are logged and reported.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional, TypeVar

import structlog
from pydantic import ValidationError

from docengine.errors import InvalidInputError, UnsupportedCountryError
from docengine.models.document import (
    LineItemInput,
    ValidationIssue,
    ValidationResult,
)
from docengine.tax.regimes import TAX_REGIMES, is_supported_country

StatusT = TypeVar("StatusT", bound=Enum)


class DocumentValidator:
    """
    Validates document input through a two-stage pipeline.

    Stateless; one instance can be shared by every lifecycle.
    """

    def __init__(self):
        self._logger = structlog.get_logger(__name__)

    def _validate_schema(
        self,
        raw_lines: Optional[Iterable[Any]],
    ) -> tuple[bool, list[ValidationIssue], list[LineItemInput]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues, normalized_lines)
        """
        issues = []
        lines = []

        if raw_lines is None or isinstance(raw_lines, (str, bytes, dict)):
            issues.append(ValidationIssue(
                field="lines",
                issue_type="missing",
                message="A list of line items is required",
                severity="error",
            ))
            return False, issues, lines

        raw_lines = list(raw_lines)
        if not raw_lines:
            issues.append(ValidationIssue(
                field="lines",
                issue_type="empty",
                message="A document needs at least one line item",
                severity="error",
            ))
            return False, issues, lines

        for index, raw in enumerate(raw_lines):
            if isinstance(raw, LineItemInput):
                lines.append(raw)
                continue
            try:
                lines.append(LineItemInput.model_validate(raw))
            except ValidationError as e:
                for error in e.errors():
                    location = ".".join(str(part) for part in error["loc"])
                    issues.append(ValidationIssue(
                        field=f"lines[{index}].{location}" if location else f"lines[{index}]",
                        issue_type=error["type"],
                        message=error["msg"],
                        severity="error",
                    ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues, lines

    def _validate_semantic(
        self,
        country_code: str,
        rate_key: Optional[str],
        document_date: Optional[datetime],
        due_date: Optional[datetime],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        regime = TAX_REGIMES[country_code] if is_supported_country(country_code) else None
        if regime is None:
            issues.append(ValidationIssue(
                field="country_code",
                issue_type="unsupported_country",
                message=f"Country {country_code} not supported",
                severity="error",
            ))
        elif rate_key is not None and rate_key not in regime.rates:
            issues.append(ValidationIssue(
                field="tax_rate_key",
                issue_type="unknown_rate_key",
                message=(
                    f"Rate {rate_key} does not exist for {regime.name}; "
                    f"the default rate ({regime.default_rate}%) applies"
                ),
                severity="warning",
            ))

        if due_date and document_date and due_date < document_date:
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="inconsistent",
                message="Due date is before the document date",
                severity="error",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        raw_lines: Optional[Iterable[Any]],
        country_code: str,
        rate_key: Optional[str] = None,
        document_date: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Returns:
            ValidationResult with all issues found and, when stage 1
            passed, the normalized lines
        """
        schema_valid, issues, lines = self._validate_schema(raw_lines)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(
                country_code, rate_key, document_date, due_date
            )
            issues.extend(semantic_issues)

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            lines=lines if schema_valid else [],
            issues=issues,
        )

    def ensure_valid(
        self,
        raw_lines: Optional[Iterable[Any]],
        country_code: str,
        rate_key: Optional[str] = None,
        document_date: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
    ) -> list[LineItemInput]:
        """
        Validate and return the normalized lines.

        Raises:
            InvalidInputError: Malformed or empty lines, inconsistent dates
            UnsupportedCountryError: No tax regime for country_code
        """
        result = self.validate(raw_lines, country_code, rate_key, document_date, due_date)

        for warning in result.warnings:
            self._logger.warning(
                "document_input_warning",
                field=warning.field,
                issue_type=warning.issue_type,
                message=warning.message,
            )

        if not result.schema_valid:
            raise InvalidInputError(self.get_summary(result), result.issues)

        if any(i.issue_type == "unsupported_country" for i in result.issues):
            raise UnsupportedCountryError(country_code)

        if result.has_errors:
            raise InvalidInputError(self.get_summary(result), result.issues)

        return result.lines

    def ensure_country(self, country_code: str) -> None:
        """
        Raises:
            UnsupportedCountryError: No tax regime for country_code
        """
        if not is_supported_country(country_code):
            raise UnsupportedCountryError(country_code)

    def ensure_status(self, value: Any, status_type: type[StatusT]) -> StatusT:
        """
        Coerce a status value into its enum.

        Only membership is checked; any valid status may follow any other.

        Raises:
            InvalidInputError: Missing or unknown status value
        """
        if value is None or value == "":
            raise InvalidInputError("Status is required")
        try:
            return status_type(value)
        except ValueError:
            allowed = ", ".join(member.value for member in status_type)
            raise InvalidInputError(
                f"Invalid status {value!r}. Allowed: {allowed}",
                [ValidationIssue(
                    field="status",
                    issue_type="invalid_value",
                    message=f"Invalid status {value!r}",
                    severity="error",
                )],
            )

    def get_summary(self, result: ValidationResult) -> str:
        """One-paragraph summary of the error-level issues, for error messages."""
        errors = [i for i in result.issues if i.severity == "error"]
        if not errors:
            return "All checks passed"
        details = "; ".join(f"{i.field}: {i.message}" for i in errors)
        return f"Invalid document input ({len(errors)} issue(s)): {details}"
