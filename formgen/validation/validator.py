"""
Rule-based validator for submitted data.

A Validator is built from a map of field name -> rules. Rules may be a
rule string (``"required|email|max:255"``), a list of rule strings and
Constraint instances, or a single Constraint. All fields are validated
and every violation is collected; nothing fails fast unless bail mode is
enabled, in which case a field stops at its own first failure.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from formgen.core.errors import FORM_ERROR_KEY
from formgen.core.mapper import get_by_path, has_path, set_by_path
from formgen.core.utils import humanize
from formgen.validation.constraints import DEFAULT_GROUP, Constraint, parse_rules
from formgen.validation.context import ExecutionContext, Violation

logger = logging.getLogger(__name__)


class ValidationResult(BaseModel):
    """Outcome of a validation run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    valid: bool = Field(..., description="True when no blocking violation was found")
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Submitted values for declared fields only",
    )
    errors: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Blocking messages keyed by field path",
    )
    warnings: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Non-blocking (warning/info) messages keyed by field path",
    )
    violations: list[Violation] = Field(default_factory=list, exclude=True)


class ValidationException(Exception):
    """Raised by ``validate_data`` when submitted data is invalid."""

    def __init__(self, errors: dict[str, list[str]], message: str = "The given data was invalid."):
        self._errors = {field: list(messages) for field, messages in errors.items()}
        self.message = message
        super().__init__(message)

    def errors(self) -> dict[str, list[str]]:
        return {field: list(messages) for field, messages in self._errors.items()}

    def get_field_errors(self, field: str) -> list[str]:
        return list(self._errors.get(field, []))

    def has_error(self, field: str) -> bool:
        return bool(self._errors.get(field))

    def has_errors(self) -> bool:
        return any(self._errors.values())

    def first(self, field: str | None = None) -> str | None:
        """First message for a field, or the first message overall."""
        if field is not None:
            messages = self._errors.get(field)
            return messages[0] if messages else None
        for messages in self._errors.values():
            if messages:
                return messages[0]
        return None

    def all(self) -> list[str]:
        return [message for messages in self._errors.values() for message in messages]

    def to_json(self) -> str:
        return json.dumps({"message": self.message, "errors": self._errors}, ensure_ascii=False)


class Validator:
    """Validates data bags against per-field rules.

    Args:
        rules: Field name (dotted for nested data) -> rules.
        messages: Overrides keyed by ``"<field>.<rule>"`` or ``"<field>"``.
        attributes: Display names used for ``{{ attribute }}`` in messages.
        constraints: Data-level constraints (usually Callback) that see the
            whole data bag and may report at any path.
        translator: Optional translator applied to message templates.
        bail: Stop a field's rule chain at its first failure.

    Raises:
        UnknownRuleError: If a rule string names an unregistered rule.
    """

    def __init__(
        self,
        rules: Mapping[str, Any] | None = None,
        messages: Mapping[str, str] | None = None,
        attributes: Mapping[str, str] | None = None,
        constraints: Iterable[Constraint] | None = None,
        translator: Any = None,
        bail: bool = False,
    ):
        self._rules: dict[str, list[Constraint]] = {}
        self.messages = dict(messages or {})
        self.attributes = dict(attributes or {})
        self.constraints = list(constraints or [])
        self.translator = translator
        self.bail = bail
        for field, field_rules in (rules or {}).items():
            self.add_rules(field, field_rules)

    @property
    def rules(self) -> dict[str, list[Constraint]]:
        return {field: list(constraints) for field, constraints in self._rules.items()}

    def add_rules(self, field: str, rules: Any) -> "Validator":
        """Append rules to a field; rule strings are parsed immediately."""
        self._rules.setdefault(field, []).extend(parse_rules(rules))
        return self

    def add_constraint(self, constraint: Constraint) -> "Validator":
        self.constraints.append(constraint)
        return self

    # -----------------------------------------------------------------
    # Running
    # -----------------------------------------------------------------

    def validate(self, data: Mapping[str, Any] | None, groups: Iterable[str] | None = None) -> ValidationResult:
        """Validate all fields and collect every violation.

        Args:
            data: The submitted data bag.
            groups: Active validation groups; defaults to ``{"Default"}``.

        Returns:
            A ValidationResult; never raises for invalid data.
        """
        data = dict(data or {})
        active = set(groups or {DEFAULT_GROUP})
        context = ExecutionContext(data, groups=active, translator=self.translator, messages=self.messages)

        for field, constraints in self._rules.items():
            self._validate_field(field, constraints, context)

        context.current_path = None
        context.current_attribute = None
        context.current_rules = set()
        for constraint in self.constraints:
            if constraint.applies_to(active):
                context.current_group = _matching_group(constraint, active)
                context.current_rule = constraint.rule_name
                constraint.validate(data, context)

        errors = context.errors()
        warnings = _group_non_blocking(context.violations)

        result = ValidationResult(
            valid=not errors,
            data=self._declared_subset(data),
            errors=errors,
            warnings=warnings,
            violations=context.violations,
        )
        logger.debug("Validated %d field(s): %d with errors", len(self._rules), len(errors))
        return result

    def _validate_field(self, field: str, constraints: list[Constraint], context: ExecutionContext) -> None:
        value = get_by_path(context.data, field)
        context.current_path = field
        context.current_attribute = self.attributes.get(field, humanize(field))
        context.current_rules = {c.rule_name for c in constraints}

        for constraint in constraints:
            if not constraint.applies_to(context.groups):
                continue
            context.current_group = _matching_group(constraint, context.groups)
            context.current_rule = constraint.rule_name
            passed = constraint.validate(value, context)
            if self.bail and not passed:
                break

    def _declared_subset(self, data: Mapping[str, Any]) -> dict[str, Any]:
        subset: dict[str, Any] = {}
        for field in self._rules:
            if has_path(data, field):
                set_by_path(subset, field, get_by_path(data, field))
        return subset

    def validate_data(self, data: Mapping[str, Any] | None, groups: Iterable[str] | None = None) -> dict[str, Any]:
        """Validate and return only the declared fields.

        Raises:
            ValidationException: If any blocking violation was found.
        """
        result = self.validate(data, groups)
        if not result.valid:
            raise ValidationException(result.errors)
        return result.data

    def passes(self, data: Mapping[str, Any] | None) -> bool:
        return self.validate(data).valid

    def fails(self, data: Mapping[str, Any] | None) -> bool:
        return not self.passes(data)


def _matching_group(constraint: Constraint, groups: set[str]) -> str | None:
    matching = sorted(constraint.groups & groups)
    return matching[0] if matching else None


def _group_non_blocking(violations: list[Violation]) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for violation in violations:
        if violation.is_blocking:
            continue
        grouped.setdefault(violation.path or FORM_ERROR_KEY, []).append(violation.message)
    return grouped


def validate_data(
    data: Mapping[str, Any] | None,
    rules: Mapping[str, Any],
    messages: Mapping[str, str] | None = None,
    attributes: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Validate ``data`` against ``rules`` in one call.

    Returns:
        The declared subset of ``data``.

    Raises:
        ValidationException: If validation fails.
        UnknownRuleError: If a rule is not registered.
    """
    return Validator(rules, messages=messages, attributes=attributes).validate_data(data)
