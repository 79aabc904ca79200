"""
Two-Stage Credential Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (after trimming whitespace)

STAGE 2 - SEMANTIC VALIDATION:
- Email shape
- Username length
- Password strength hints
- PIN shape

Stage 2 only runs when stage 1 passes. Errors block the operation before
any network call is made; warnings are reported but never block.

IMPORTANT: The PIN is only REQUIRED to be non-empty. A PIN that isn't
numeric or has an unexpected length is a warning, not an error: the
lock screen accepts whatever was set.
"""

import re
from typing import Optional

from spendy.config import AppSettings, get_settings
from spendy.models.session import RegistrationRequest
from spendy.models.validation import ValidationIssue, ValidationResult


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

REGISTRATION_REQUIRED_FIELDS = ("username", "password", "email", "name", "surname")


class CredentialValidator:
    """Validates registration data and PINs before they are used."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_registration_schema(
        self,
        request: RegistrationRequest,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Required fields.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        for field in REGISTRATION_REQUIRED_FIELDS:
            if not getattr(request, field).strip():
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{field.capitalize()} is required",
                    severity="error",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_registration_semantic(
        self,
        request: RegistrationRequest,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Format and plausibility.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not EMAIL_PATTERN.match(request.email):
            issues.append(ValidationIssue(
                field="email",
                issue_type="invalid_format",
                message=f"'{request.email}' is not a valid email address",
                severity="error",
                suggested_fix="Use an address like name@example.com",
            ))

        if len(request.username) < self._settings.min_username_length:
            issues.append(ValidationIssue(
                field="username",
                issue_type="too_short",
                message=(
                    f"Username must be at least "
                    f"{self._settings.min_username_length} characters"
                ),
                severity="error",
            ))

        if any(c.isspace() for c in request.username):
            issues.append(ValidationIssue(
                field="username",
                issue_type="invalid_format",
                message="Username cannot contain spaces",
                severity="error",
            ))

        if len(request.password) < 8:
            issues.append(ValidationIssue(
                field="password",
                issue_type="weak",
                message="Password is shorter than 8 characters",
                severity="warning",
                suggested_fix="Longer passwords are harder to guess",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _result(
        self,
        schema_valid: bool,
        semantic_valid: bool,
        issues: list[ValidationIssue],
    ) -> ValidationResult:
        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
        )

    def validate_registration(self, request: RegistrationRequest) -> ValidationResult:
        """Run both stages over a registration request."""
        all_issues = []

        schema_valid, schema_issues = self._validate_registration_schema(request)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_registration_semantic(request)
            all_issues.extend(semantic_issues)

        return self._result(schema_valid, semantic_valid, all_issues)

    def validate_pin(self, pin: Optional[str]) -> ValidationResult:
        """
        Validate a PIN before it is stored.

        Only an empty PIN is an error.
        """
        if pin is None or not pin.strip():
            issue = ValidationIssue(
                field="pin",
                issue_type="missing",
                message="PIN cannot be empty",
                severity="error",
            )
            return self._result(False, False, [issue])

        issues = []
        expected = self._settings.pin_length

        if not pin.isdigit():
            issues.append(ValidationIssue(
                field="pin",
                issue_type="invalid_format",
                message="PIN contains non-numeric characters",
                severity="warning",
            ))

        if len(pin) != expected:
            issues.append(ValidationIssue(
                field="pin",
                issue_type="unexpected_length",
                message=f"PIN has {len(pin)} digits, expected {expected}",
                severity="warning",
            ))

        return self._result(True, True, issues)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the sign-up screen shows.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        errors = [issue for issue in result.issues if issue.severity == "error"]
        if errors:
            lines.append("Please fix the following:")
            for issue in errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please note:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
