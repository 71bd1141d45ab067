"""
Options resolution for field and form types.

Every type declares the options it understands on an OptionsResolver:
defaults, required keys, allowed types and values, and normalizers.
Caller-supplied options are resolved eagerly when a field is built, so
configuration mistakes surface at construction time instead of during
submission.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

logger = logging.getLogger(__name__)


class OptionsError(ValueError):
    """Base class for configuration errors raised by OptionsResolver."""


class UndefinedOptionError(OptionsError):
    """Raised when options contain keys the resolver does not know."""

    def __init__(self, options: list[str], defined: list[str]):
        self.options = options
        self.defined = defined
        super().__init__(
            f"The option(s) {_quote(options)} do not exist. "
            f"Defined options are: {_quote(defined)}."
        )


class MissingOptionError(OptionsError):
    """Raised when required options are absent and have no default."""

    def __init__(self, options: list[str]):
        self.options = options
        super().__init__(f"The required option(s) {_quote(options)} are missing.")


class InvalidOptionTypeError(OptionsError):
    """Raised when an option value does not match its allowed types."""

    def __init__(self, option: str, expected: list[str], actual: str):
        self.option = option
        self.expected = expected
        self.actual = actual
        super().__init__(
            f'The option "{option}" is expected to be of type '
            f'"{" or ".join(expected)}", but is of type "{actual}".'
        )


class InvalidOptionValueError(OptionsError):
    """Raised when an option value is not one of its allowed values."""

    def __init__(self, option: str, value: Any, allowed: list[Any] | None = None):
        self.option = option
        self.value = value
        self.allowed = allowed
        message = f'The option "{option}" with value {value!r} is invalid.'
        if allowed is not None:
            message += f" Accepted values are: {', '.join(repr(v) for v in allowed)}."
        super().__init__(message)


def _quote(names: Iterable[str]) -> str:
    return ", ".join(f'"{name}"' for name in names)


# --- Type checks ---


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_float(value: Any) -> bool:
    return isinstance(value, float)


_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "null": lambda v: v is None,
    "bool": lambda v: isinstance(v, bool),
    "int": _is_int,
    "float": _is_float,
    "number": lambda v: _is_int(v) or _is_float(v),
    "string": lambda v: isinstance(v, str),
    "array": lambda v: isinstance(v, (list, tuple, dict)),
    "list": lambda v: isinstance(v, (list, tuple)),
    "dict": lambda v: isinstance(v, Mapping),
    "callable": callable,
    "object": lambda v: v is not None and not isinstance(v, (str, int, float, bool, list, tuple, dict)),
    "iterable": lambda v: isinstance(v, Iterable) and not isinstance(v, str),
    "any": lambda v: True,
}

_TYPE_ALIASES = {
    "none": "null",
    "boolean": "bool",
    "integer": "int",
    "double": "float",
    "str": "string",
    "mixed": "any",
}


def describe_type(value: Any) -> str:
    """Return the option type name used in error messages for a value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple, dict)):
        return "array"
    if callable(value):
        return "callable"
    return type(value).__name__


def _normalize_type_name(allowed: str | type) -> str | type:
    if isinstance(allowed, type):
        return allowed
    name = allowed.strip().lower()
    name = _TYPE_ALIASES.get(name, name)
    if name not in _TYPE_CHECKS:
        raise OptionsError(f'Unknown option type "{allowed}".')
    return name


def _matches(value: Any, allowed: str | type) -> bool:
    if isinstance(allowed, type):
        return isinstance(value, allowed)
    return _TYPE_CHECKS[allowed](value)


def _type_label(allowed: str | type) -> str:
    return allowed.__name__ if isinstance(allowed, type) else allowed


# --- Resolver ---


class OptionsResolver:
    """Declares an option schema and resolves caller input against it.

    The schema accumulates across calls, which lets a type hierarchy
    configure one resolver from the root type down to the leaf type.
    Resolution never mutates the input mapping.
    """

    def __init__(self):
        self._defined: list[str] = []
        self._defaults: dict[str, Any] = {}
        self._required: set[str] = set()
        self._allowed_types: dict[str, list[str | type]] = {}
        self._allowed_values: dict[str, list[Any] | Callable[[Any], bool]] = {}
        self._normalizers: dict[str, list[Callable[[dict[str, Any], Any], Any]]] = {}
        self._info: dict[str, str] = {}
        self._allow_extra = False

    # -----------------------------------------------------------------
    # Schema declaration
    # -----------------------------------------------------------------

    def _define(self, option: str) -> None:
        if option not in self._defined:
            self._defined.append(option)

    def _require_defined(self, option: str) -> None:
        if option not in self._defined:
            raise UndefinedOptionError([option], self._defined)

    def set_defined(self, options: str | Iterable[str]) -> "OptionsResolver":
        """Declare options that may be passed but have no default."""
        for option in [options] if isinstance(options, str) else options:
            self._define(option)
        return self

    def set_default(self, option: str, value: Any) -> "OptionsResolver":
        self._define(option)
        self._defaults[option] = value
        return self

    def set_defaults(self, defaults: Mapping[str, Any]) -> "OptionsResolver":
        for option, value in defaults.items():
            self.set_default(option, value)
        return self

    def set_required(self, options: str | Iterable[str]) -> "OptionsResolver":
        """Mark options as required; they must come from input or a default."""
        for option in [options] if isinstance(options, str) else options:
            self._define(option)
            self._required.add(option)
        return self

    def set_allowed_types(
        self, option: str, types: str | type | Iterable[str | type]
    ) -> "OptionsResolver":
        """Restrict an option to a union of type names.

        Args:
            option: A defined option name.
            types: A type name ("null", "string", "int", "array", ...),
                a Python class, or a list of those forming a union.

        Raises:
            UndefinedOptionError: If the option is not defined.
            OptionsError: If a type name is not recognised.
        """
        self._require_defined(option)
        if isinstance(types, (str, type)):
            types = [types]
        self._allowed_types[option] = [_normalize_type_name(t) for t in types]
        return self

    def add_allowed_types(
        self, option: str, types: str | type | Iterable[str | type]
    ) -> "OptionsResolver":
        self._require_defined(option)
        if isinstance(types, (str, type)):
            types = [types]
        current = self._allowed_types.setdefault(option, [])
        for allowed in types:
            normalized = _normalize_type_name(allowed)
            if normalized not in current:
                current.append(normalized)
        return self

    def set_allowed_values(
        self, option: str, values: Iterable[Any] | Callable[[Any], bool]
    ) -> "OptionsResolver":
        """Restrict an option to an enumeration or a predicate."""
        self._require_defined(option)
        self._allowed_values[option] = values if callable(values) else list(values)
        return self

    def set_normalizer(
        self, option: str, normalizer: Callable[[dict[str, Any], Any], Any]
    ) -> "OptionsResolver":
        """Register a normalizer called as ``normalizer(options, value)``.

        Normalizers run after all type and value checks have passed. Several
        normalizers on one option run in registration order, each receiving
        the previous one's result.
        """
        self._require_defined(option)
        self._normalizers.setdefault(option, []).append(normalizer)
        return self

    def set_info(self, option: str, info: str) -> "OptionsResolver":
        self._require_defined(option)
        self._info[option] = info
        return self

    def get_info(self, option: str) -> str | None:
        return self._info.get(option)

    def allow_extra_options(self, allow: bool = True) -> "OptionsResolver":
        """Accept keys that were never declared instead of failing."""
        self._allow_extra = allow
        return self

    # -----------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------

    def has_default(self, option: str) -> bool:
        return option in self._defaults

    def get_default(self, option: str) -> Any:
        return self._defaults.get(option)

    def is_required(self, option: str) -> bool:
        return option in self._required

    def is_defined(self, option: str) -> bool:
        return option in self._defined

    @property
    def defined_options(self) -> list[str]:
        return list(self._defined)

    @property
    def required_options(self) -> list[str]:
        return [option for option in self._defined if option in self._required]

    def clear(self) -> "OptionsResolver":
        """Forget the whole schema."""
        self.__init__()
        return self

    # -----------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------

    def resolve(self, options: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Merge options over the defaults and validate the result.

        Args:
            options: Caller-supplied options.

        Returns:
            A new dict holding every defined option that has a value,
            after type checks, value checks and normalization.

        Raises:
            UndefinedOptionError: If unknown keys are present and extra
                options are not allowed.
            MissingOptionError: If a required option has neither input nor default.
            InvalidOptionTypeError: If a value does not match its allowed types.
            InvalidOptionValueError: If a value is not an allowed value.
        """
        options = dict(options or {})

        unknown = [key for key in options if key not in self._defined]
        if unknown and not self._allow_extra:
            raise UndefinedOptionError(unknown, self._defined)

        resolved: dict[str, Any] = {
            key: value for key, value in self._defaults.items() if key not in options
        }
        resolved.update(options)

        missing = [key for key in self.required_options if key not in resolved]
        if missing:
            raise MissingOptionError(missing)

        for key, value in resolved.items():
            self._check_type(key, value)
            self._check_value(key, value)

        for key, normalizers in self._normalizers.items():
            if key not in resolved:
                continue
            for normalizer in normalizers:
                resolved[key] = normalizer(resolved, resolved[key])

        logger.debug("Resolved options: %s", sorted(resolved))
        return resolved

    def _check_type(self, key: str, value: Any) -> None:
        allowed = self._allowed_types.get(key)
        if not allowed:
            return
        if any(_matches(value, t) for t in allowed):
            return
        raise InvalidOptionTypeError(key, [_type_label(t) for t in allowed], describe_type(value))

    def _check_value(self, key: str, value: Any) -> None:
        allowed = self._allowed_values.get(key)
        if allowed is None:
            return
        if callable(allowed):
            if not allowed(value):
                raise InvalidOptionValueError(key, value)
            return
        if value not in allowed:
            raise InvalidOptionValueError(key, value, allowed)
