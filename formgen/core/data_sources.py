"""
Data sources for choice fields and edit-mode pre-population.

A choice field may take its options from a DataSource, which is one of a
closed set of variants discriminated by ``kind``:

- key_label: a static key -> label map
- rows: a list of records plus the columns holding key and label
- provider: a named DataProvider queried with criteria

DataProvider is the read-only contract the forms need from a storage
backend; ArrayDataProvider implements it over in-memory records.
"""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field, TypeAdapter

logger = logging.getLogger(__name__)


@runtime_checkable
class DataProvider(Protocol):
    """Read operations forms need from a record store."""

    def find_by_id(self, record_id: Any) -> dict[str, Any] | None: ...

    def find_by(
        self,
        criteria: Mapping[str, Any],
        order_by: Mapping[str, str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]: ...

    def get_options(
        self,
        key_column: str,
        label_column: str,
        criteria: Mapping[str, Any] | None = None,
    ) -> dict[Any, Any]: ...


class ArrayDataProvider:
    """DataProvider over a list of dict records.

    Args:
        records: The records to serve.
        id_column: Column used by ``find_by_id``.
    """

    def __init__(self, records: list[dict[str, Any]] | None = None, id_column: str = "id"):
        self._records = [dict(r) for r in records or []]
        self.id_column = id_column

    def find_by_id(self, record_id: Any) -> dict[str, Any] | None:
        for record in self._records:
            if str(record.get(self.id_column)) == str(record_id):
                return dict(record)
        return None

    def find_all(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self._records]

    def find_by(
        self,
        criteria: Mapping[str, Any],
        order_by: Mapping[str, str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """Exact-match filter with optional ``{"column": "asc"|"desc"}`` ordering."""
        rows = [
            dict(r) for r in self._records
            if all(r.get(column) == value for column, value in (criteria or {}).items())
        ]
        for column, direction in reversed(list((order_by or {}).items())):
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=direction.lower() == "desc")
        start = offset or 0
        end = start + limit if limit is not None else None
        return rows[start:end]

    def get_options(
        self,
        key_column: str,
        label_column: str,
        criteria: Mapping[str, Any] | None = None,
    ) -> dict[Any, Any]:
        return {row.get(key_column): row.get(label_column) for row in self.find_by(criteria or {})}


# --- Data source variants ---


class DataSourceKind(str, Enum):
    """Supported data source variants."""

    KEY_LABEL = "key_label"
    ROWS = "rows"
    PROVIDER = "provider"


class KeyLabelSource(BaseModel):
    """Static key -> label options."""

    kind: Literal["key_label"] = "key_label"
    options: dict[str, Any] = Field(..., description="Choice key -> label")


class RowsSource(BaseModel):
    """Options taken from inline records."""

    kind: Literal["rows"] = "rows"
    rows: list[dict[str, Any]] = Field(..., description="Records holding the options")
    key: str = Field(default="id", description="Column holding the choice key")
    label: str = Field(default="name", description="Column holding the choice label")


class ProviderSource(BaseModel):
    """Options loaded from a named DataProvider."""

    kind: Literal["provider"] = "provider"
    provider: str = Field(..., min_length=1, description="Name of a registered DataProvider")
    key: str = Field(default="id", description="Column holding the choice key")
    label: str = Field(default="name", description="Column holding the choice label")
    criteria: dict[str, Any] = Field(default_factory=dict, description="Exact-match filter")


DataSource = Annotated[KeyLabelSource | RowsSource | ProviderSource, Field(discriminator="kind")]

_DATA_SOURCE_ADAPTER = TypeAdapter(DataSource)


def parse_data_source(raw: Any) -> KeyLabelSource | RowsSource | ProviderSource:
    """Validate a dict (or an existing variant) into a DataSource variant.

    Raises:
        pydantic.ValidationError: If the kind is unknown or fields are missing.
    """
    if isinstance(raw, (KeyLabelSource, RowsSource, ProviderSource)):
        return raw
    return _DATA_SOURCE_ADAPTER.validate_python(raw)


def resolve_choices(
    source: Any,
    providers: Mapping[str, DataProvider] | None = None,
) -> dict[Any, Any]:
    """Turn a data source into a choice key -> label map.

    Raises:
        LookupError: If a provider source names an unregistered provider.
    """
    source = parse_data_source(source)
    match source:
        case KeyLabelSource(options=options):
            return dict(options)
        case RowsSource(rows=rows, key=key, label=label):
            return {row.get(key): row.get(label) for row in rows}
        case ProviderSource(provider=name, key=key, label=label, criteria=criteria):
            provider = (providers or {}).get(name)
            if provider is None:
                raise LookupError(f"Data provider '{name}' is not registered")
            logger.debug("Loading choices from provider '%s'", name)
            return provider.get_options(key, label, criteria)
