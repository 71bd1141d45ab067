"""
Validation engine for submitted form data.

Constraints check individual values and report violations through a
shared ExecutionContext; the Validator runs rule sets over a whole data
bag and aggregates every failure.
"""

from formgen.validation.constraints import (
    DEFAULT_GROUP,
    Callback,
    Constraint,
    InvalidRuleError,
    UnknownRuleError,
    parse_rules,
    register_rule,
)
from formgen.validation.context import ExecutionContext, Violation, ViolationBuilder
from formgen.validation.validator import (
    ValidationException,
    ValidationResult,
    Validator,
    validate_data,
)

__all__ = [
    "Validator",
    "ValidationResult",
    "ValidationException",
    "validate_data",
    "Constraint",
    "Callback",
    "UnknownRuleError",
    "InvalidRuleError",
    "parse_rules",
    "register_rule",
    "DEFAULT_GROUP",
    "ExecutionContext",
    "ViolationBuilder",
    "Violation",
]
