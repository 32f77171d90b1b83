"""Validation service for mapped field values."""

import re
import logging
from typing import Any, Callable, Dict, List, Optional

from .transformer import _to_float, is_empty
from ..models.mapping import ValidationKind, ValidationRule
from ..models.record import FieldValidationResult

logger = logging.getLogger(__name__)

# A custom validator returns an error message, or None when the value is valid
CustomValidator = Callable[[Any], Optional[str]]


class RuleValidator:
    """
    Validator for transformed field values.

    Supports:
    - Required check
    - Min / max string length
    - Regex pattern
    - Numeric range
    - Enum membership
    - Custom rules (pass unless a validator is registered under the rule's value)

    Rules run in order and stop at the first failure.
    """

    def __init__(self):
        """Initialize the validator."""
        self._custom_validators: Dict[str, CustomValidator] = {}
        self._checks = {
            ValidationKind.REQUIRED: self._check_required,
            ValidationKind.MIN_LENGTH: self._check_min_length,
            ValidationKind.MAX_LENGTH: self._check_max_length,
            ValidationKind.PATTERN: self._check_pattern,
            ValidationKind.RANGE: self._check_range,
            ValidationKind.ENUM: self._check_enum,
            ValidationKind.CUSTOM: self._check_custom,
        }

    def register_validator(self, name: str, func: CustomValidator) -> None:
        """Register a custom validation function."""
        self._custom_validators[name] = func

    def validate(self, value: Any, rules: List[ValidationRule], field_name: str) -> FieldValidationResult:
        """
        Validate a value against a list of rules.

        Args:
            value: The transformed value
            rules: Rules to check, in order
            field_name: Target field name used in messages

        Returns:
            The first failing result, or a valid result
        """
        for rule in rules:
            message = self._checks[rule.type](value, rule, field_name)
            if message is not None:
                return FieldValidationResult(
                    field=field_name,
                    valid=False,
                    message=rule.message or message,
                    rule=rule.type.value,
                )
        return FieldValidationResult(field=field_name, valid=True)

    def _check_required(self, value: Any, rule: ValidationRule, field_name: str) -> Optional[str]:
        if is_empty(value):
            return f"{field_name} is required"
        return None

    def _check_min_length(self, value: Any, rule: ValidationRule, field_name: str) -> Optional[str]:
        min_length = int(rule.value or 0)
        if isinstance(value, str) and len(value) < min_length:
            return f"{field_name} must be at least {min_length} characters"
        return None

    def _check_max_length(self, value: Any, rule: ValidationRule, field_name: str) -> Optional[str]:
        if not rule.value:
            return None
        max_length = int(rule.value)
        if isinstance(value, str) and len(value) > max_length:
            return f"{field_name} must be no more than {max_length} characters"
        return None

    def _check_pattern(self, value: Any, rule: ValidationRule, field_name: str) -> Optional[str]:
        if not rule.pattern or not isinstance(value, str):
            return None
        if not re.search(rule.pattern, value):
            return f"{field_name} format is invalid"
        return None

    def _check_range(self, value: Any, rule: ValidationRule, field_name: str) -> Optional[str]:
        num = _to_float(value)
        if num is None:
            return None
        low = rule.min if rule.min is not None else float("-inf")
        high = rule.max if rule.max is not None else float("inf")
        if not low <= num <= high:
            return f"{field_name} must be between {_fmt(low)} and {_fmt(high)}"
        return None

    def _check_enum(self, value: Any, rule: ValidationRule, field_name: str) -> Optional[str]:
        if not rule.enum_values:
            return None
        if value not in rule.enum_values:
            allowed = ", ".join(str(v) for v in rule.enum_values)
            return f"{field_name} must be one of: {allowed}"
        return None

    def _check_custom(self, value: Any, rule: ValidationRule, field_name: str) -> Optional[str]:
        validator = self._custom_validators.get(str(rule.value)) if rule.value else None
        if validator is None:
            return None
        return validator(value)


def _fmt(bound: float) -> str:
    if bound in (float("inf"), float("-inf")):
        return "Infinity" if bound > 0 else "-Infinity"
    return f"{bound:g}"


class ValidationRules:
    """Common custom validators that can be registered by name."""

    @staticmethod
    def email(value: Any) -> Optional[str]:
        """Validate email format."""
        if is_empty(value):
            return None

        email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
        if not re.match(email_pattern, str(value)):
            return "Invalid email format"
        return None

    @staticmethod
    def phone(value: Any) -> Optional[str]:
        """Validate phone number length after stripping formatting."""
        if is_empty(value):
            return None

        digits = re.sub(r"[^\d+]", "", str(value))
        if len(digits) < 7 or len(digits) > 15:
            return "Invalid phone number length"
        return None

    @staticmethod
    def url(value: Any) -> Optional[str]:
        """Validate URL format."""
        if is_empty(value):
            return None

        url_pattern = r"^https?://[^\s/$.?#].[^\s]*$"
        if not re.match(url_pattern, str(value), re.IGNORECASE):
            return "Invalid URL format"
        return None


def default_validator() -> RuleValidator:
    """A RuleValidator with the common custom validators registered."""
    validator = RuleValidator()
    validator.register_validator("email", ValidationRules.email)
    validator.register_validator("phone", ValidationRules.phone)
    validator.register_validator("url", ValidationRules.url)
    return validator
