"""
Data transformers between model values and view values.

A transformer is a pair of pure functions: ``transform`` turns a model
value (datetime, list, float, bool) into its view representation (the
string a form widget displays), and ``reverse_transform`` turns a
submitted view value back into a model value. None always means "no
value" and passes through both directions untouched.

Transformers hold configuration only, so one instance can be shared by
any number of fields.
"""

import logging
import math
from collections.abc import Callable, Iterable
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

from dateutil import tz

from formgen.core.utils import is_numeric, to_strftime

logger = logging.getLogger(__name__)


class TransformationError(ValueError):
    """Raised when a value cannot be converted between representations.

    Attributes:
        value: The offending input value.
        transformer: Name of the transformer that failed.
        field: Path of the field being transformed, when known.
    """

    def __init__(
        self,
        message: str,
        value: Any = None,
        transformer: str | None = None,
        field: str | None = None,
    ):
        self.message = message
        self.value = value
        self.transformer = transformer
        self.field = field
        super().__init__(message)

    def with_field(self, field: str) -> "TransformationError":
        """Return a copy of this error attributed to a field path."""
        error = TransformationError(self.message, self.value, self.transformer, field)
        error.__cause__ = self.__cause__ or self
        return error

    def __str__(self) -> str:
        if self.field:
            return f"Field '{self.field}': {self.message}"
        return self.message


class DataTransformer:
    """Base class for model <-> view transformers."""

    def transform(self, value: Any) -> Any:
        """Convert a model value into a view value."""
        return value

    def reverse_transform(self, value: Any) -> Any:
        """Convert a submitted view value into a model value."""
        return value

    def _fail(self, message: str, value: Any) -> TransformationError:
        return TransformationError(message, value=value, transformer=type(self).__name__)


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


# --- Date / time ---


class DateTimeToStringTransformer(DataTransformer):
    """Formats datetimes as strings and parses them back strictly.

    Args:
        format: strftime format or PHP-style format such as ``Y-m-d``.
        input_timezone: Zone model values live in (e.g. ``UTC``).
        output_timezone: Zone view values are displayed in.

    Model values are naive datetimes unless ``input_timezone`` is set. With
    it, ``reverse_transform`` returns aware datetimes in that zone and a
    naive model value is read as local time of that zone, so its round trip
    yields the equivalent aware value. With only ``output_timezone``, naive
    model values are read as local time of the output zone and come back
    naive.
    """

    def __init__(
        self,
        format: str = "%Y-%m-%d",
        input_timezone: str | None = None,
        output_timezone: str | None = None,
    ):
        self._format = format
        self._strftime = to_strftime(format)
        self._strptime = self._strftime.replace("%-", "%")
        self._input_tz = self._get_zone(input_timezone)
        self._output_tz = self._get_zone(output_timezone) if output_timezone else self._input_tz

    @staticmethod
    def _get_zone(name: str | None):
        if name is None:
            return None
        zone = tz.gettz(name)
        if zone is None:
            raise ValueError(f"Unknown time zone '{name}'")
        return zone

    @property
    def format(self) -> str:
        return self._format

    def transform(self, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, date) and not isinstance(value, datetime):
            value = datetime(value.year, value.month, value.day)
        if not isinstance(value, datetime):
            raise self._fail(
                f"Expected a date or datetime, got {type(value).__name__}", value
            )

        if self._output_tz is not None:
            if value.tzinfo is None:
                value = value.replace(tzinfo=self._input_tz or self._output_tz)
            value = value.astimezone(self._output_tz)
        return value.strftime(self._strftime)

    def reverse_transform(self, value: Any) -> datetime | None:
        if _is_blank(value):
            return None
        if not isinstance(value, str):
            raise self._fail(f"Expected a string, got {type(value).__name__}", value)

        try:
            parsed = datetime.strptime(value.strip(), self._strptime)
        except ValueError as e:
            raise self._fail(
                f"Unable to parse '{value}' with format '{self._format}'", value
            ) from e

        if self._input_tz is not None:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=self._output_tz)
            parsed = parsed.astimezone(self._input_tz)
        return parsed


# --- Collections ---


class StringToArrayTransformer(DataTransformer):
    """Joins lists into delimited strings and splits them back."""

    def __init__(self, delimiter: str = ",", trim_values: bool = True, remove_empty: bool = True):
        if not delimiter:
            raise ValueError("delimiter cannot be empty")
        self._delimiter = delimiter
        self._trim = trim_values
        self._remove_empty = remove_empty

    @property
    def delimiter(self) -> str:
        return self._delimiter

    def _clean(self, items: Iterable[Any]) -> list[str]:
        values = ["" if item is None else str(item) for item in items]
        if self._trim:
            values = [v.strip() for v in values]
        if self._remove_empty:
            values = [v for v in values if v != ""]
        return values

    def transform(self, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            return value
        if not isinstance(value, (list, tuple, set)):
            raise self._fail(f"Expected a list, got {type(value).__name__}", value)
        return self._delimiter.join(self._clean(value))

    def reverse_transform(self, value: Any) -> list[str] | None:
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            return self._clean(value)
        if not isinstance(value, str):
            raise self._fail(f"Expected a string, got {type(value).__name__}", value)
        if value == "":
            return []
        return self._clean(value.split(self._delimiter))


# --- Numbers ---


_MAX_INTEGER_DIGITS = 400


class NumberToLocalizedStringTransformer(DataTransformer):
    """Formats numbers with fixed precision and custom separators.

    ``reverse_transform`` is lossy by ``precision`` when ``round`` is on.
    """

    def __init__(
        self,
        precision: int = 2,
        decimal_separator: str = ".",
        thousands_separator: str = ",",
        round: bool = True,
    ):
        if precision < 0:
            raise ValueError("precision cannot be negative")
        if decimal_separator == thousands_separator:
            raise ValueError("decimal and thousands separators must differ")
        self._precision = precision
        self._decimal = decimal_separator
        self._thousands = thousands_separator
        self._round = round

    @property
    def precision(self) -> int:
        return self._precision

    def _quantize(self, number: Decimal, value: Any) -> Decimal:
        if not number.is_finite() or number.adjusted() > _MAX_INTEGER_DIGITS:
            raise self._fail(f"'{value}' is out of range", value)
        quantum = Decimal(1).scaleb(-self._precision)
        try:
            with localcontext() as ctx:
                # Enough significant digits for every integer digit plus the scale.
                ctx.prec = max(ctx.prec, number.adjusted() + self._precision + 2)
                return number.quantize(quantum, rounding=ROUND_HALF_UP)
        except (InvalidOperation, OverflowError) as e:
            raise self._fail(f"Cannot represent {value!r} with {self._precision} decimals", value) from e

    def transform(self, value: Any) -> str | None:
        if value is None:
            return None
        if not is_numeric(value):
            raise self._fail(f"Expected a number, got {value!r}", value)

        try:
            number = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise self._fail(f"Cannot format {value!r}", value) from e
        number = self._quantize(number, value)

        formatted = f"{number:,.{self._precision}f}"
        integer, _, fraction = formatted.partition(".")
        integer = integer.replace(",", self._thousands)
        return f"{integer}{self._decimal}{fraction}" if fraction else integer

    def reverse_transform(self, value: Any) -> float | None:
        if _is_blank(value):
            return None
        if isinstance(value, bool):
            raise self._fail("Expected a numeric string, got a boolean", value)
        if isinstance(value, (int, float)):
            normalized = str(value)
        else:
            normalized = str(value).strip()
            if self._thousands:
                normalized = normalized.replace(self._thousands, "")
            normalized = normalized.replace(self._decimal, ".")
        if not is_numeric(normalized):
            raise self._fail(f"'{value}' is not a valid number", value)

        number = Decimal(normalized)
        if self._round:
            number = self._quantize(number, value)
        result = float(number)
        if math.isinf(result):
            raise self._fail(f"'{value}' is out of range", value)
        return result


# --- Booleans ---


_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class BooleanToStringTransformer(DataTransformer):
    """Maps booleans to configurable strings and parses them tolerantly."""

    def __init__(self, true_value: str = "1", false_value: str = "0"):
        if true_value == false_value:
            raise ValueError("true_value and false_value must differ")
        self._true = true_value
        self._false = false_value

    @property
    def true_value(self) -> str:
        return self._true

    @property
    def false_value(self) -> str:
        return self._false

    def transform(self, value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, bool):
            raise self._fail(f"Expected a boolean, got {type(value).__name__}", value)
        return self._true if value else self._false

    def reverse_transform(self, value: Any) -> bool | None:
        if _is_blank(value):
            return None
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return value == 1
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == self._true.lower() or normalized in _TRUTHY:
                return True
            if normalized == self._false.lower() or normalized in _FALSY:
                return False
        raise self._fail(
            f"Cannot convert {value!r} to a boolean; expected "
            f"'{self._true}' or '{self._false}'",
            value,
        )


# --- Callbacks ---


class CallbackTransformer(DataTransformer):
    """Wraps two plain functions; any error they raise becomes a TransformationError."""

    def __init__(
        self,
        transform: Callable[[Any], Any] | None = None,
        reverse_transform: Callable[[Any], Any] | None = None,
    ):
        self._transform = transform or (lambda value: value)
        self._reverse = reverse_transform or (lambda value: value)

    def transform(self, value: Any) -> Any:
        return self._call(self._transform, value, "transform")

    def reverse_transform(self, value: Any) -> Any:
        return self._call(self._reverse, value, "reverse transform")

    def _call(self, fn: Callable[[Any], Any], value: Any, direction: str) -> Any:
        if value is None:
            return None
        try:
            return fn(value)
        except TransformationError:
            raise
        except Exception as e:
            raise self._fail(f"Callback {direction} failed: {e}", value) from e


# --- Chains ---


class TransformerChain(DataTransformer):
    """Applies transformers in declared order and unwinds them in reverse.

    Each transformer is stacked on the previous one's output, so
    ``reverse_transform`` feeds a view value through the last transformer
    first and ends with the first one, restoring the model value.
    """

    def __init__(self, transformers: Iterable[DataTransformer] = ()):
        self._transformers = list(transformers)

    @property
    def transformers(self) -> list[DataTransformer]:
        return list(self._transformers)

    def add(self, transformer: DataTransformer) -> "TransformerChain":
        self._transformers.append(transformer)
        return self

    def __len__(self) -> int:
        return len(self._transformers)

    def transform(self, value: Any) -> Any:
        for transformer in self._transformers:
            value = transformer.transform(value)
        return value

    def reverse_transform(self, value: Any) -> Any:
        for transformer in reversed(self._transformers):
            value = transformer.reverse_transform(value)
        return value
