"""Validation of typed key/value site settings.

Every setting carries a type tag and an optional rule. The tag selects the
checker from ``_CHECKERS``; the rule adds range, pattern and option limits.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from core.errors import ValidationError

EMAIL_RULE_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class SettingType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"


class ValidationRule(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    options: Optional[List[Any]] = None


class SettingDefinition(BaseModel):
    category: str
    key: str
    type: SettingType = SettingType.STRING
    rule: ValidationRule = Field(default_factory=ValidationRule)
    description: str = ""
    is_public: bool = False
    is_required: bool = False


def _check_string(value: Any, rule: ValidationRule) -> Optional[str]:
    if not isinstance(value, str):
        return "Value must be a string"
    if rule.pattern and not re.search(rule.pattern, value):
        return "Value does not match required pattern"
    return None


def _check_number(value: Any, rule: ValidationRule) -> Optional[str]:
    # bool is an int subclass but never a valid number setting
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "Value must be a number"
    if rule.min is not None and value < rule.min:
        return f"Value must be at least {rule.min:g}"
    if rule.max is not None and value > rule.max:
        return f"Value must be at most {rule.max:g}"
    return None


def _check_boolean(value: Any, rule: ValidationRule) -> Optional[str]:
    if not isinstance(value, bool):
        return "Value must be a boolean"
    return None


def _check_object(value: Any, rule: ValidationRule) -> Optional[str]:
    if not isinstance(value, dict):
        return "Value must be an object"
    return None


def _check_array(value: Any, rule: ValidationRule) -> Optional[str]:
    if not isinstance(value, list):
        return "Value must be an array"
    if rule.min is not None and len(value) < rule.min:
        return f"Value must have at least {rule.min:g} items"
    if rule.max is not None and len(value) > rule.max:
        return f"Value must have at most {rule.max:g} items"
    return None


_CHECKERS: Dict[SettingType, Callable[[Any, ValidationRule], Optional[str]]] = {
    SettingType.STRING: _check_string,
    SettingType.NUMBER: _check_number,
    SettingType.BOOLEAN: _check_boolean,
    SettingType.OBJECT: _check_object,
    SettingType.ARRAY: _check_array,
}


def check_value(definition: SettingDefinition, value: Any) -> Tuple[bool, Optional[str]]:
    """Return ``(is_valid, error)`` for ``value`` under ``definition``."""

    if value is None or value == "":
        if definition.is_required:
            return False, f"{definition.key} is required"
        return True, None
    error = _CHECKERS[definition.type](value, definition.rule)
    if error is None and definition.rule.options is not None:
        if value not in definition.rule.options:
            allowed = ", ".join(str(option) for option in definition.rule.options)
            error = f"Value must be one of: {allowed}"
    return error is None, error


def validate_setting(definition: SettingDefinition, value: Any) -> Any:
    """Return ``value`` unchanged or raise ``ValidationError``."""

    is_valid, error = check_value(definition, value)
    if not is_valid:
        raise ValidationError(
            f"Invalid value for {definition.category}.{definition.key}: {error}",
            [{"field": definition.key, "message": error}],
        )
    return value


DEFAULT_DEFINITIONS: Dict[Tuple[str, str], SettingDefinition] = {
    (item.category, item.key): item
    for item in (
        SettingDefinition(
            category="general",
            key="site_name",
            description="Website name",
            is_public=True,
            is_required=True,
        ),
        SettingDefinition(
            category="general",
            key="contact_email",
            rule=ValidationRule(pattern=EMAIL_RULE_PATTERN),
            description="Primary contact email",
            is_public=True,
            is_required=True,
        ),
        SettingDefinition(
            category="general",
            key="timezone",
            rule=ValidationRule(
                options=[
                    "America/New_York",
                    "America/Chicago",
                    "America/Denver",
                    "America/Los_Angeles",
                ]
            ),
            description="Website timezone",
        ),
        SettingDefinition(
            category="email",
            key="smtp_port",
            type=SettingType.NUMBER,
            rule=ValidationRule(min=1, max=65535),
            description="SMTP server port",
            is_required=True,
        ),
        SettingDefinition(
            category="security",
            key="session_timeout",
            type=SettingType.NUMBER,
            rule=ValidationRule(min=5, max=1440),
            description="Session timeout in minutes",
        ),
        SettingDefinition(
            category="security",
            key="enable_two_factor",
            type=SettingType.BOOLEAN,
            description="Enable two-factor authentication",
        ),
        SettingDefinition(
            category="notifications",
            key="alert_recipients",
            type=SettingType.ARRAY,
            rule=ValidationRule(max=10),
            description="Addresses notified about new leads",
        ),
    )
}


def validate_known_setting(category: str, key: str, value: Any) -> Any:
    definition = DEFAULT_DEFINITIONS.get((category, key))
    if definition is None:
        raise ValidationError(f"Unknown setting: {category}.{key}")
    return validate_setting(definition, value)


__all__ = [
    "SettingType",
    "ValidationRule",
    "SettingDefinition",
    "check_value",
    "validate_setting",
    "validate_known_setting",
    "DEFAULT_DEFINITIONS",
]
