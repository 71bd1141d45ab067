"""
Validation constraints and the rule-string registry.

Each constraint checks one value against one rule and reports failures
through the ExecutionContext. Constraints other than ``required`` pass
on absent input (None, blank strings, empty collections), so every rule
of a field can run without guarding against missing values.

Rule strings such as ``"required|email|min:5|max:255"`` are parsed by
``parse_rules`` into constraint instances. Unknown rule names raise
UnknownRuleError when the rules are parsed, never during validation.
"""

import ipaddress
import json
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from typing import Any
from urllib.parse import urlparse

from formgen.core.errors import ErrorLevel
from formgen.core.utils import is_empty_value, is_numeric, parse_datetime, to_strftime
from formgen.validation.context import ExecutionContext

DEFAULT_GROUP = "Default"


class UnknownRuleError(ValueError):
    """Raised when a rule string names a rule that is not registered."""

    def __init__(self, rule: str):
        self.rule = rule
        super().__init__(f"Validation rule '{rule}' does not exist.")


class InvalidRuleError(ValueError):
    """Raised when a registered rule is given parameters it cannot use."""

    def __init__(self, rule: str, reason: str):
        self.rule = rule
        super().__init__(f"Invalid parameters for rule '{rule}': {reason}")


class Constraint:
    """Base class for validation rules.

    Args:
        *params: Rule parameters, as parsed from ``rule:a,b``.
        message: Message template overriding the rule's default.
        groups: Validation groups this constraint belongs to.
        level: Severity of the violations it reports.
    """

    rule_name = ""
    default_message = "The {{ attribute }} field is invalid."
    implicit = False

    def __init__(
        self,
        *params: Any,
        message: str | None = None,
        groups: Iterable[str] | None = None,
        level: ErrorLevel | str = ErrorLevel.ERROR,
    ):
        self.params = list(params)
        self.message = message
        self.groups = set(groups) if groups else {DEFAULT_GROUP}
        self.level = ErrorLevel(level)

    def applies_to(self, groups: Iterable[str]) -> bool:
        return bool(self.groups & set(groups))

    def validate(self, value: Any, context: ExecutionContext) -> bool:
        """Check ``value`` and record a violation on failure.

        Returns:
            True if the value passed.
        """
        if not self.implicit and is_empty_value(value):
            return True
        if self.passes(value, context):
            return True
        template = context.custom_message(self.rule_name) or self.message or self.message_for(value, context)
        (
            context.build_violation(template)
            .set_parameters(self.parameters())
            .set_level(self.level)
            .set_rule(self.rule_name)
            .add_violation()
        )
        return False

    def passes(self, value: Any, context: ExecutionContext) -> bool:
        raise NotImplementedError

    def message_for(self, value: Any, context: ExecutionContext) -> str:
        return self.default_message

    def parameters(self) -> dict[str, Any]:
        return {"param": self.params[0] if self.params else "", "values": self.params}

    def __repr__(self) -> str:
        args = ",".join(str(p) for p in self.params)
        return f"{type(self).__name__}({self.rule_name}{':' + args if args else ''})"


# --- Presence ---


class Required(Constraint):
    rule_name = "required"
    default_message = "The {{ attribute }} field is required."
    implicit = True

    def passes(self, value, context):
        return not is_empty_value(value)


class Accepted(Constraint):
    """Value must be an affirmative answer, e.g. a ticked terms checkbox."""

    rule_name = "accepted"
    default_message = "The {{ attribute }} must be accepted."
    implicit = True

    def passes(self, value, context):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "yes", "on", "true")
        return value is True or (value == 1 and not isinstance(value, bool))


class Nullable(Constraint):
    """Marker rule; absent values already pass every non-required rule."""

    rule_name = "nullable"

    def passes(self, value, context):
        return True


# --- Types ---


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return value.is_integer()
    return isinstance(value, str) and re.fullmatch(r"\s*[+-]?\d+\s*", value) is not None


_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "integer": _is_integer,
    "float": lambda v: isinstance(v, float) or (is_numeric(v) and not isinstance(v, int)),
    "numeric": is_numeric,
    "boolean": lambda v: isinstance(v, bool) or v in (0, 1, "0", "1", "true", "false"),
    "array": lambda v: isinstance(v, (list, tuple, dict)),
}

_TYPE_ALIASES = {"str": "string", "int": "integer", "bool": "boolean", "list": "array", "dict": "array"}


class Type(Constraint):
    """``type:<name>`` where name is string, integer, float, numeric, boolean or array."""

    rule_name = "type"
    default_message = "The {{ attribute }} must be of type {{ type }}."

    def __init__(self, type_name: str, **kwargs):
        name = _TYPE_ALIASES.get(type_name, type_name)
        if name not in _TYPE_CHECKS:
            raise ValueError(f"Unknown type '{type_name}' for the type rule")
        super().__init__(name, **kwargs)
        self.type_name = name

    def passes(self, value, context):
        return _TYPE_CHECKS[self.type_name](value)

    def parameters(self):
        return {"type": self.type_name}


def _type_rule(name: str, message: str) -> type[Constraint]:
    check = _TYPE_CHECKS[name]

    class _TypeRule(Constraint):
        rule_name = name
        default_message = message

        def passes(self, value, context):
            return check(value)

    _TypeRule.__name__ = _TypeRule.__qualname__ = name.capitalize()
    return _TypeRule


String = _type_rule("string", "The {{ attribute }} must be a string.")
Integer = _type_rule("integer", "The {{ attribute }} must be an integer.")
Float = _type_rule("float", "The {{ attribute }} must be a decimal number.")
Numeric = _type_rule("numeric", "The {{ attribute }} must be a number.")
Boolean = _type_rule("boolean", "The {{ attribute }} field must be true or false.")
Array = _type_rule("array", "The {{ attribute }} must be an array.")


# --- Size ---


def _size_of(value: Any, context: ExecutionContext) -> tuple[float | None, str]:
    """Return the comparable size of a value and its kind.

    Numbers compare by value. Numeric strings compare by value only when
    the field also carries a numeric or integer rule; other strings
    compare by length and collections by item count.
    """
    if isinstance(value, bool):
        return None, "other"
    if isinstance(value, (int, float)):
        return float(value), "numeric"
    if isinstance(value, str):
        if is_numeric(value) and context.current_rules & {"numeric", "integer", "float"}:
            return float(value), "numeric"
        return float(len(value)), "string"
    if isinstance(value, (list, tuple, set, Mapping)):
        return float(len(value)), "array"
    return None, "other"


_SIZE_MESSAGES = {
    "min": {
        "numeric": "The {{ attribute }} must be at least {{ min }}.",
        "string": "The {{ attribute }} must be at least {{ min }} characters.",
        "array": "The {{ attribute }} must have at least {{ min }} items.",
    },
    "max": {
        "numeric": "The {{ attribute }} may not be greater than {{ max }}.",
        "string": "The {{ attribute }} may not be greater than {{ max }} characters.",
        "array": "The {{ attribute }} may not have more than {{ max }} items.",
    },
    "between": {
        "numeric": "The {{ attribute }} must be between {{ min }} and {{ max }}.",
        "string": "The {{ attribute }} must be between {{ min }} and {{ max }} characters.",
        "array": "The {{ attribute }} must have between {{ min }} and {{ max }} items.",
    },
}


def _number(param: Any, rule: str) -> float:
    if not is_numeric(param):
        raise ValueError(f"The {rule} rule expects a numeric parameter, got {param!r}")
    return float(param)


class _SizeRule(Constraint):
    def message_for(self, value, context):
        _, kind = _size_of(value, context)
        return _SIZE_MESSAGES[self.rule_name].get(kind, _SIZE_MESSAGES[self.rule_name]["numeric"])


def _display(number: float) -> int | float:
    return int(number) if number.is_integer() else number


class Min(_SizeRule):
    rule_name = "min"

    def __init__(self, minimum: Any, **kwargs):
        super().__init__(minimum, **kwargs)
        self.minimum = _number(minimum, "min")

    def passes(self, value, context):
        size, _ = _size_of(value, context)
        return size is not None and size >= self.minimum

    def parameters(self):
        return {"min": _display(self.minimum), "param": _display(self.minimum)}


class Max(_SizeRule):
    rule_name = "max"

    def __init__(self, maximum: Any, **kwargs):
        super().__init__(maximum, **kwargs)
        self.maximum = _number(maximum, "max")

    def passes(self, value, context):
        size, _ = _size_of(value, context)
        return size is not None and size <= self.maximum

    def parameters(self):
        return {"max": _display(self.maximum), "param": _display(self.maximum)}


class Between(_SizeRule):
    rule_name = "between"

    def __init__(self, minimum: Any, maximum: Any, **kwargs):
        super().__init__(minimum, maximum, **kwargs)
        self.minimum = _number(minimum, "between")
        self.maximum = _number(maximum, "between")
        if self.minimum > self.maximum:
            raise ValueError("The between rule expects min <= max")

    def passes(self, value, context):
        size, _ = _size_of(value, context)
        return size is not None and self.minimum <= size <= self.maximum

    def parameters(self):
        return {"min": _display(self.minimum), "max": _display(self.maximum)}


class MinLength(Constraint):
    rule_name = "min_length"
    default_message = "The {{ attribute }} must be at least {{ min }} characters."

    def __init__(self, minimum: Any, **kwargs):
        super().__init__(minimum, **kwargs)
        self.minimum = int(_number(minimum, "min_length"))

    def passes(self, value, context):
        return len(str(value)) >= self.minimum

    def parameters(self):
        return {"min": self.minimum}


class MaxLength(Constraint):
    rule_name = "max_length"
    default_message = "The {{ attribute }} may not be greater than {{ max }} characters."

    def __init__(self, maximum: Any, **kwargs):
        super().__init__(maximum, **kwargs)
        self.maximum = int(_number(maximum, "max_length"))

    def passes(self, value, context):
        return len(str(value)) <= self.maximum

    def parameters(self):
        return {"max": self.maximum}


# --- Patterns and charsets ---


_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE, "u": 0}


def compile_pattern(pattern: str) -> re.Pattern:
    """Compile a plain or ``/delimited/flags`` regular expression."""
    match = re.fullmatch(r"/(.*)/([imsxu]*)", pattern, re.DOTALL)
    if match:
        flags = 0
        for flag in match.group(2):
            flags |= _REGEX_FLAGS[flag]
        return re.compile(match.group(1), flags)
    return re.compile(pattern)


class Regex(Constraint):
    rule_name = "regex"
    default_message = "The {{ attribute }} format is invalid."

    def __init__(self, pattern: str, **kwargs):
        super().__init__(pattern, **kwargs)
        try:
            self.pattern = compile_pattern(pattern)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern '{pattern}': {e}") from e

    def passes(self, value, context):
        return self.pattern.search(str(value)) is not None


class NotRegex(Regex):
    rule_name = "not_regex"

    def passes(self, value, context):
        return not super().passes(value, context)


class Alpha(Constraint):
    rule_name = "alpha"
    default_message = "The {{ attribute }} must contain only letters."

    def passes(self, value, context):
        return isinstance(value, str) and value.isalpha()


class AlphaNumeric(Constraint):
    rule_name = "alpha_numeric"
    default_message = "The {{ attribute }} must contain only letters and numbers."

    def passes(self, value, context):
        return isinstance(value, str) and value.isalnum()


class Digits(Constraint):
    rule_name = "digits"
    default_message = "The {{ attribute }} must be {{ digits }} digits."

    def __init__(self, length: Any = None, **kwargs):
        params = () if length is None else (length,)
        super().__init__(*params, **kwargs)
        self.length = int(_number(length, "digits")) if length is not None else None

    def passes(self, value, context):
        if isinstance(value, bool):
            return False
        text = str(value)
        if not text.isdigit():
            return False
        return self.length is None or len(text) == self.length

    def message_for(self, value, context):
        if self.length is None:
            return "The {{ attribute }} must contain only digits."
        return self.default_message

    def parameters(self):
        return {"digits": self.length}


# --- Enumerations ---


def _loose_in(value: Any, allowed: list[Any]) -> bool:
    if value in allowed:
        return True
    as_text = str(value)
    return any(as_text == str(item) for item in allowed if not isinstance(item, bool))


class In(Constraint):
    rule_name = "in"
    default_message = "The selected {{ attribute }} is invalid."

    def __init__(self, *values: Any, **kwargs):
        if len(values) == 1 and isinstance(values[0], (list, tuple, set)):
            values = tuple(values[0])
        super().__init__(*values, **kwargs)

    def passes(self, value, context):
        items = value if isinstance(value, (list, tuple)) else [value]
        return all(_loose_in(item, self.params) for item in items)


class NotIn(In):
    rule_name = "not_in"

    def passes(self, value, context):
        items = value if isinstance(value, (list, tuple)) else [value]
        return not any(_loose_in(item, self.params) for item in items)


# --- Formats ---


_EMAIL_RE = re.compile(
    r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$"
)


class Email(Constraint):
    rule_name = "email"
    default_message = "The {{ attribute }} must be a valid email address."

    def passes(self, value, context):
        if not isinstance(value, str) or ".." in value:
            return False
        return _EMAIL_RE.match(value) is not None


class Url(Constraint):
    rule_name = "url"
    default_message = "The {{ attribute }} format is invalid."

    def passes(self, value, context):
        if not isinstance(value, str) or any(c.isspace() for c in value):
            return False
        parsed = urlparse(value)
        return bool(parsed.scheme and parsed.netloc)


class Ip(Constraint):
    """``ip``, ``ip:ipv4`` or ``ip:ipv6``."""

    rule_name = "ip"
    default_message = "The {{ attribute }} must be a valid IP address."

    def __init__(self, version: str | None = None, **kwargs):
        params = () if version is None else (version,)
        super().__init__(*params, **kwargs)
        if version not in (None, "ipv4", "ipv6", "v4", "v6"):
            raise ValueError(f"Unknown IP version '{version}'")
        self.version = {"v4": 4, "ipv4": 4, "v6": 6, "ipv6": 6}.get(version)

    def passes(self, value, context):
        try:
            address = ipaddress.ip_address(str(value))
        except ValueError:
            return False
        return self.version is None or address.version == self.version


class Json(Constraint):
    rule_name = "json"
    default_message = "The {{ attribute }} must be a valid JSON string."

    def passes(self, value, context):
        if not isinstance(value, str):
            return False
        try:
            json.loads(value)
        except ValueError:
            return False
        return True


# --- Dates ---


class Date(Constraint):
    rule_name = "date"
    default_message = "The {{ attribute }} is not a valid date."

    def passes(self, value, context):
        if isinstance(value, (date, datetime)):
            return True
        return isinstance(value, str) and parse_datetime(value) is not None


class DateFormat(Constraint):
    rule_name = "date_format"
    default_message = "The {{ attribute }} does not match the format {{ format }}."

    def __init__(self, fmt: str, **kwargs):
        super().__init__(fmt, **kwargs)
        self.format = fmt
        self._strptime = to_strftime(fmt).replace("%-", "%")

    def passes(self, value, context):
        if isinstance(value, (date, datetime)):
            return True
        try:
            datetime.strptime(str(value), self._strptime)
        except ValueError:
            return False
        return True

    def parameters(self):
        return {"format": self.format}


def _comparable(value: Any) -> datetime | None:
    parsed = parse_datetime(value)
    if parsed is not None and parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    return parsed


class _DateComparison(Constraint):
    """Compares against a date expression or the value of another field."""

    def __init__(self, target: str, **kwargs):
        super().__init__(target, **kwargs)
        self.target = target

    def _target_value(self, context: ExecutionContext) -> datetime | None:
        other = context.get_value(self.target)
        if other is not None and not isinstance(other, (dict, list)):
            return _comparable(other)
        return _comparable(self.target)

    def passes(self, value, context):
        subject = _comparable(value)
        target = self._target_value(context)
        if subject is None or target is None:
            return False
        return self.compare(subject, target)

    def compare(self, subject: datetime, target: datetime) -> bool:
        raise NotImplementedError

    def parameters(self):
        return {"date": self.target}


class After(_DateComparison):
    rule_name = "after"
    default_message = "The {{ attribute }} must be a date after {{ date }}."

    def compare(self, subject, target):
        return subject > target


class AfterOrEqual(_DateComparison):
    rule_name = "after_or_equal"
    default_message = "The {{ attribute }} must be a date after or equal to {{ date }}."

    def compare(self, subject, target):
        return subject >= target


class Before(_DateComparison):
    rule_name = "before"
    default_message = "The {{ attribute }} must be a date before {{ date }}."

    def compare(self, subject, target):
        return subject < target


class BeforeOrEqual(_DateComparison):
    rule_name = "before_or_equal"
    default_message = "The {{ attribute }} must be a date before or equal to {{ date }}."

    def compare(self, subject, target):
        return subject <= target


# --- Cross-field ---


class Confirmed(Constraint):
    """Value must equal ``<field>_confirmation`` or the named field."""

    rule_name = "confirmed"
    default_message = "The {{ attribute }} confirmation does not match."

    def __init__(self, other: str | None = None, **kwargs):
        params = () if other is None else (other,)
        super().__init__(*params, **kwargs)
        self.other = other

    def passes(self, value, context):
        other = self.other or f"{context.current_path}_confirmation"
        return context.get_value(other) == value


class Same(Constraint):
    rule_name = "same"
    default_message = "The {{ attribute }} and {{ other }} must match."

    def __init__(self, other: str, **kwargs):
        super().__init__(other, **kwargs)
        self.other = other

    def passes(self, value, context):
        return context.get_value(self.other) == value

    def parameters(self):
        return {"other": self.other}


# --- Files ---


def _file_attr(value: Any, *names: str) -> Any:
    for name in names:
        if isinstance(value, Mapping) and name in value:
            return value[name]
        if hasattr(value, name):
            return getattr(value, name)
    return None


class FileSize(Constraint):
    """``file_size:<bytes>``; the file exposes ``size`` as a key or attribute."""

    rule_name = "file_size"
    default_message = "The {{ attribute }} may not be greater than {{ max }} bytes."

    def __init__(self, max_bytes: Any, **kwargs):
        super().__init__(max_bytes, **kwargs)
        self.max_bytes = int(_number(max_bytes, "file_size"))

    def passes(self, value, context):
        size = _file_attr(value, "size")
        return size is None or size <= self.max_bytes

    def parameters(self):
        return {"max": self.max_bytes}


class FileType(Constraint):
    """``file_type:<mime>,...``; the file exposes ``type`` or ``content_type``."""

    rule_name = "file_type"
    default_message = "The {{ attribute }} must be a file of type: {{ types }}."

    def passes(self, value, context):
        mime = _file_attr(value, "type", "content_type")
        return mime is None or mime in self.params

    def parameters(self):
        return {"types": self.params}


# --- Callback ---


class Callback(Constraint):
    """Runs arbitrary logic against the full data bag.

    The callback is called as ``callback(data, context)`` and reports
    failures itself through ``context.build_violation(...)``, at any
    path. It runs even when the field it is attached to is empty.

    Example:
        def passwords_match(data, context):
            if data.get("password") != data.get("password_repeat"):
                context.build_violation("Passwords do not match.") \\
                    .at_path("password_repeat").add_violation()
    """

    rule_name = "callback"
    implicit = True

    def __init__(
        self,
        callback: Callable[[dict[str, Any], ExecutionContext], Any],
        groups: Iterable[str] | None = None,
        **kwargs,
    ):
        super().__init__(groups=groups, **kwargs)
        if not callable(callback):
            raise ValueError("Callback constraint expects a callable")
        self.callback = callback

    def validate(self, value: Any, context: ExecutionContext) -> bool:
        before = len(context.violations)
        self.callback(context.data, context)
        return len(context.violations) == before


# -----------------------------------------------------------------
# Registry
# -----------------------------------------------------------------

RULES: dict[str, Callable[..., Constraint]] = {}

# Rules whose single parameter may itself contain commas.
_UNSPLIT_PARAMS = {"regex", "not_regex", "date_format", "after", "before", "after_or_equal", "before_or_equal"}


def register_rule(name: str, factory: Callable[..., Constraint], unsplit: bool = False) -> None:
    """Register a constraint factory under a rule name.

    Args:
        name: Rule name as used in rule strings.
        factory: Called with the parsed parameters as positional arguments.
        unsplit: Pass everything after ``:`` as one parameter.
    """
    RULES[name] = factory
    if unsplit:
        _UNSPLIT_PARAMS.add(name)


for _rule in (
    Required, Accepted, Nullable, Type, String, Integer, Float, Numeric, Boolean, Array,
    Min, Max, Between, MinLength, MaxLength, Regex, NotRegex, Alpha, AlphaNumeric,
    Digits, In, NotIn, Email, Url, Ip, Json, Date, DateFormat, After, AfterOrEqual,
    Before, BeforeOrEqual, Confirmed, Same, FileSize, FileType,
):
    register_rule(_rule.rule_name, _rule)

# Alternate spellings used in rule strings.
register_rule("alpha_num", AlphaNumeric)
register_rule("int", Integer)
register_rule("bool", Boolean)
register_rule("minlength", MinLength)
register_rule("maxlength", MaxLength)


def parse_rule(rule: str) -> Constraint:
    """Parse one ``name:param1,param2`` segment into a constraint."""
    name, _, raw = rule.strip().partition(":")
    name = name.strip()
    factory = RULES.get(name)
    if factory is None:
        raise UnknownRuleError(name)
    if not raw:
        params: list[str] = []
    elif name in _UNSPLIT_PARAMS:
        params = [raw]
    else:
        params = [p.strip() for p in raw.split(",")]
    try:
        return factory(*params)
    except (TypeError, ValueError) as e:
        raise InvalidRuleError(name, str(e)) from e


def parse_rules(rules: str | Constraint | Iterable[str | Constraint] | None) -> list[Constraint]:
    """Turn a rule string, a constraint, or a list of either into constraints."""
    if rules is None:
        return []
    if isinstance(rules, Constraint):
        return [rules]
    if isinstance(rules, str):
        rules = [r for r in rules.split("|") if r.strip()] if "regex:" not in rules else _split_with_regex(rules)
    parsed = []
    for rule in rules:
        if isinstance(rule, Constraint):
            parsed.append(rule)
        elif isinstance(rule, str):
            parsed.append(parse_rule(rule))
        else:
            raise ValueError(f"Unsupported rule definition: {rule!r}")
    return parsed


_REGEX_RULE_RE = re.compile(r"\s*(not_regex|regex):\s*")
_DELIMITED_END_RE = re.compile(r"/[imsxu]*\s*(\|)\s*(\w+)")


def _split_with_regex(rules: str) -> list[str]:
    """Split on ``|`` without breaking regex patterns, which may contain pipes.

    A ``/delimited/`` pattern ends at the closing delimiter that is followed
    by ``|`` and a registered rule name. An undelimited pattern takes the
    rest of the string, so it has to be the last rule.
    """
    segments = []
    remaining = rules
    while remaining:
        match = _REGEX_RULE_RE.match(remaining)
        if match:
            end = _delimited_pattern_end(remaining, match.end())
            if end is None:
                segments.append(remaining.strip())
                break
            segments.append(remaining[:end].strip())
            remaining = remaining[end + 1:]
            continue
        head, sep, remaining = remaining.partition("|")
        if head.strip():
            segments.append(head)
        if not sep:
            break
    return segments


def _delimited_pattern_end(rules: str, start: int) -> int | None:
    """Index of the ``|`` after a ``/delimited/`` pattern starting at ``start``."""
    if not rules.startswith("/", start):
        return None
    for match in _DELIMITED_END_RE.finditer(rules, start + 1):
        if match.group(2) in RULES:
            return match.start(1)
    return None
