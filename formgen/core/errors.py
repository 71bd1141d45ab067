"""
Structured form errors.

FormError carries a message template, a severity level and the dotted
path of the field it belongs to. ErrorList is the ordered collection a
form node owns; it can be filtered, flattened to a dotted map or turned
into a nested tree. ErrorBubblingStrategy decides how child errors are
propagated into a parent's list.
"""

import weakref
from collections.abc import Iterable, Iterator
from enum import Enum
from typing import TYPE_CHECKING, Any

from formgen.core.utils import interpolate

if TYPE_CHECKING:
    from formgen.core.form import Form

# Reserved key under which form-level (path-less) errors are reported.
FORM_ERROR_KEY = "_form"


class ErrorLevel(str, Enum):
    """Severity of a form error. Only ERROR blocks a submission."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def is_blocking(self) -> bool:
        return self is ErrorLevel.ERROR

    @property
    def label(self) -> str:
        return self.value.capitalize()


class FormError:
    """A single error attached to a form or one of its fields.

    Args:
        message: Message template with ``{{ placeholder }}`` tokens.
        level: Severity; defaults to ERROR.
        path: Dotted field path relative to the owning form, or None for
            form-level errors.
        parameters: Values interpolated into the template.
        cause: The original exception or violation, if any.
        origin: The form that produced the error. Held weakly.
    """

    def __init__(
        self,
        message: str,
        level: ErrorLevel = ErrorLevel.ERROR,
        path: str | None = None,
        parameters: dict[str, Any] | None = None,
        cause: Any = None,
        origin: "Form | None" = None,
    ):
        self.raw_message = message
        self.level = ErrorLevel(level)
        self.path = path or None
        self.parameters = dict(parameters or {})
        self.cause = cause
        self._origin = weakref.ref(origin) if origin is not None else None

    @property
    def message(self) -> str:
        return interpolate(self.raw_message, self.parameters)

    @property
    def origin(self) -> "Form | None":
        return self._origin() if self._origin is not None else None

    @property
    def is_blocking(self) -> bool:
        return self.level.is_blocking

    def with_path(self, path: str | None) -> "FormError":
        """Return a copy of this error addressed at another path."""
        return FormError(
            self.raw_message,
            level=self.level,
            path=path,
            parameters=self.parameters,
            cause=self.cause,
            origin=self.origin,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "level": self.level.value,
            "path": self.path,
            "parameters": self.parameters,
        }

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message

    def __repr__(self) -> str:
        return f"FormError({self.message!r}, level={self.level.value!r}, path={self.path!r})"


class ErrorList:
    """Ordered collection of FormError objects."""

    def __init__(self, errors: Iterable[FormError] = ()):
        self._errors: list[FormError] = list(errors)

    def add(self, error: FormError) -> "ErrorList":
        self._errors.append(error)
        return self

    def extend(self, errors: Iterable[FormError]) -> "ErrorList":
        self._errors.extend(errors)
        return self

    def merge(self, other: "ErrorList") -> "ErrorList":
        """Return a new list holding this list's errors followed by other's."""
        return ErrorList([*self._errors, *other])

    def clear(self) -> None:
        self._errors.clear()

    def all(self) -> list[FormError]:
        return list(self._errors)

    # -----------------------------------------------------------------
    # Filters
    # -----------------------------------------------------------------

    def by_level(self, level: ErrorLevel | str) -> "ErrorList":
        level = ErrorLevel(level)
        return ErrorList(e for e in self._errors if e.level is level)

    def by_path(self, path: str | None, deep: bool = False) -> "ErrorList":
        """Errors at exactly ``path``; with ``deep``, also errors below it."""
        if path is None:
            return ErrorList(e for e in self._errors if e.path is None)
        prefix = f"{path}."
        return ErrorList(
            e for e in self._errors
            if e.path == path or (deep and e.path is not None and e.path.startswith(prefix))
        )

    def blocking(self) -> "ErrorList":
        return ErrorList(e for e in self._errors if e.is_blocking)

    def has_blocking(self) -> bool:
        return any(e.is_blocking for e in self._errors)

    def first(self, path: str | None = None) -> FormError | None:
        errors = self._errors if path is None else self.by_path(path).all()
        return errors[0] if errors else None

    def is_empty(self) -> bool:
        return not self._errors

    # -----------------------------------------------------------------
    # Conversions
    # -----------------------------------------------------------------

    def to_flat(self) -> dict[str, list[str]]:
        """Map each dotted path to its messages; form-level under ``_form``."""
        flat: dict[str, list[str]] = {}
        for error in self._errors:
            flat.setdefault(error.path or FORM_ERROR_KEY, []).append(error.message)
        return flat

    def to_dict(self) -> dict[str, Any]:
        """Nested error tree; messages at a node sit under ``_form``
        when the node also has children, otherwise directly as a list."""
        tree: dict[str, Any] = {}
        for error in self._errors:
            if error.path is None:
                tree.setdefault(FORM_ERROR_KEY, []).append(error.message)
                continue
            node = tree
            parts = error.path.split(".")
            for part in parts[:-1]:
                child = node.get(part)
                if isinstance(child, list):
                    child = {FORM_ERROR_KEY: child}
                    node[part] = child
                node = node.setdefault(part, {})
            leaf = parts[-1]
            existing = node.get(leaf)
            if isinstance(existing, dict):
                existing.setdefault(FORM_ERROR_KEY, []).append(error.message)
            else:
                node.setdefault(leaf, []).append(error.message)
        return tree

    def to_list(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self._errors]

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[FormError]:
        return iter(list(self._errors))

    def __bool__(self) -> bool:
        return bool(self._errors)

    def __str__(self) -> str:
        return "\n".join(str(e) for e in self._errors)


class ErrorBubblingStrategy:
    """Controls how child form errors propagate into their parent.

    Args:
        enabled: When False, children keep their errors to themselves.
        stop_on_blocking: Stop collecting from further children once a
            blocking error has been gathered.
        max_depth: Maximum nesting depth to descend; 0 means unlimited.
    """

    def __init__(self, enabled: bool = True, stop_on_blocking: bool = False, max_depth: int = 0):
        self.enabled = enabled
        self.stop_on_blocking = stop_on_blocking
        self.max_depth = max_depth

    @classmethod
    def disabled(cls) -> "ErrorBubblingStrategy":
        return cls(enabled=False)

    @classmethod
    def stopping_on_blocking(cls) -> "ErrorBubblingStrategy":
        return cls(stop_on_blocking=True)

    @classmethod
    def with_depth_limit(cls, max_depth: int) -> "ErrorBubblingStrategy":
        return cls(max_depth=max_depth)

    def should_bubble(self, error: FormError, depth: int) -> bool:
        if not self.enabled:
            return False
        if self.max_depth and depth > self.max_depth:
            return False
        return True

    def collect_errors(self, form: "Form", depth: int = 1) -> ErrorList:
        """Gather the errors of ``form``'s descendants, prefixed with their names.

        Errors keep their level and cause; paths become relative to ``form``.
        """
        collected = ErrorList()
        if not self.enabled:
            return collected

        for child in form:
            for error in child.errors:
                if self.should_bubble(error, depth):
                    collected.add(error.with_path(_join(child.name, error.path)))
            for error in self.collect_errors(child, depth + 1):
                collected.add(error.with_path(_join(child.name, error.path)))
            if self.stop_on_blocking and collected.has_blocking():
                break
        return collected


def _join(prefix: str, path: str | None) -> str:
    return f"{prefix}.{path}" if path else prefix
