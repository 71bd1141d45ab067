"""
Execution context shared by constraints during one validation run.

The context wraps the full submitted data bag and accumulates violations
keyed by field path. Constraints report failures through a fluent
ViolationBuilder:

    context.build_violation("{{ attribute }} is too short.")
        .at_path("username")
        .set_parameter("min", 3)
        .add_violation()
"""

from collections.abc import Mapping
from typing import Any

from formgen.core.errors import FORM_ERROR_KEY, ErrorLevel
from formgen.core.mapper import get_by_path
from formgen.core.utils import interpolate


class Violation:
    """A single recorded validation failure."""

    def __init__(
        self,
        path: str | None,
        template: str,
        parameters: dict[str, Any] | None = None,
        level: ErrorLevel = ErrorLevel.ERROR,
        rule: str | None = None,
    ):
        self.path = path
        self.template = template
        self.parameters = dict(parameters or {})
        self.level = level
        self.rule = rule

    @property
    def message(self) -> str:
        return interpolate(self.template, self.parameters)

    @property
    def is_blocking(self) -> bool:
        return self.level.is_blocking

    def __repr__(self) -> str:
        return f"Violation(path={self.path!r}, message={self.message!r})"


class ExecutionContext:
    """Holds the data under validation and the violations found so far.

    Args:
        data: The full submitted data bag.
        groups: Validation groups active for this run.
        translator: Optional translator used for message templates.
        messages: Message overrides keyed by "<field>.<rule>" or "<field>".
    """

    def __init__(
        self,
        data: Mapping[str, Any] | None = None,
        groups: set[str] | None = None,
        translator: Any = None,
        messages: Mapping[str, str] | None = None,
    ):
        self.data: dict[str, Any] = dict(data or {})
        self.groups = set(groups or {"Default"})
        self.translator = translator
        self.current_path: str | None = None
        self.current_attribute: str | None = None
        self.current_rule: str | None = None
        self.current_group: str | None = None
        self.current_rules: set[str] = set()
        self.messages: dict[str, str] = dict(messages or {})
        self._violations: dict[str | None, list[Violation]] = {}

    # -----------------------------------------------------------------
    # Data access
    # -----------------------------------------------------------------

    def get_value(self, path: str | None = None, default: Any = None) -> Any:
        """Return the value at a dotted path; the current path when omitted."""
        path = path if path is not None else self.current_path
        if path is None:
            return self.data
        return get_by_path(self.data, path, default)

    @property
    def value(self) -> Any:
        return self.get_value()

    # -----------------------------------------------------------------
    # Violations
    # -----------------------------------------------------------------

    def build_violation(self, message: str, parameters: dict[str, Any] | None = None) -> "ViolationBuilder":
        """Start building a violation for the current path."""
        return ViolationBuilder(self, message, parameters)

    def add_violation(self, message: str, parameters: dict[str, Any] | None = None) -> None:
        """Record a violation at the current path."""
        self.build_violation(message, parameters).add_violation()

    def record(self, violation: Violation) -> None:
        self._violations.setdefault(violation.path, []).append(violation)

    def custom_message(self, rule: str) -> str | None:
        """Look up a caller override: "<field>.<rule>" first, then "<field>"."""
        if self.current_path is None:
            return None
        return self.messages.get(f"{self.current_path}.{rule}") or self.messages.get(self.current_path)

    def translate(self, template: str) -> str:
        if self.translator is None:
            return template
        return self.translator.trans(template)

    @property
    def violations(self) -> list[Violation]:
        return [v for group in self._violations.values() for v in group]

    def violations_at(self, path: str | None) -> list[Violation]:
        return list(self._violations.get(path, []))

    def has_violations(self, path: str | None = None, blocking_only: bool = True) -> bool:
        found = self._violations.get(path, []) if path is not None else self.violations
        if blocking_only:
            return any(v.is_blocking for v in found)
        return bool(found)

    def errors(self, level: ErrorLevel | None = ErrorLevel.ERROR) -> dict[str, list[str]]:
        """Group violation messages by path, optionally for one level only."""
        grouped: dict[str, list[str]] = {}
        for path, violations in self._violations.items():
            for violation in violations:
                if level is not None and violation.level is not level:
                    continue
                grouped.setdefault(path or FORM_ERROR_KEY, []).append(violation.message)
        return grouped


class ViolationBuilder:
    """Fluent builder returned by ExecutionContext.build_violation."""

    def __init__(self, context: ExecutionContext, message: str, parameters: dict[str, Any] | None = None):
        self._context = context
        self._message = message
        self._parameters: dict[str, Any] = dict(parameters or {})
        self._path = context.current_path
        self._level = ErrorLevel.ERROR
        self._rule = context.current_rule
        if context.current_attribute is not None:
            self._parameters.setdefault("attribute", context.current_attribute)

    def at_path(self, path: str | None) -> "ViolationBuilder":
        self._path = path
        return self

    def set_parameter(self, key: str, value: Any) -> "ViolationBuilder":
        self._parameters[key] = value
        return self

    def set_parameters(self, parameters: Mapping[str, Any]) -> "ViolationBuilder":
        self._parameters.update(parameters)
        return self

    def set_level(self, level: ErrorLevel | str) -> "ViolationBuilder":
        self._level = ErrorLevel(level)
        return self

    def set_rule(self, rule: str) -> "ViolationBuilder":
        self._rule = rule
        return self

    def add_violation(self) -> Violation:
        violation = Violation(
            self._path,
            self._context.translate(self._message),
            self._parameters,
            self._level,
            self._rule,
        )
        self._context.record(violation)
        return violation
