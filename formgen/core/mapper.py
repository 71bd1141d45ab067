"""
Mapping between data structures and form trees.

FormDataMapper copies values from a (possibly nested) data map into the
children of a form and gathers them back. The module-level path helpers
address nested plain data with dot notation ("address.city")
independently of any form tree; they are also used for error flattening.
"""

from collections.abc import Mapping, MutableMapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from formgen.core.form import Form

_MISSING = object()


# --- Property paths ---


def _split(path: str) -> list[str]:
    return [part for part in path.split(".") if part != ""]


def _step(container: Any, key: str) -> Any:
    if isinstance(container, Mapping):
        return container.get(key, _MISSING)
    if isinstance(container, (list, tuple)):
        if key.lstrip("-").isdigit():
            index = int(key)
            if -len(container) <= index < len(container):
                return container[index]
        return _MISSING
    if container is not None and not isinstance(container, (str, int, float, bool)):
        return getattr(container, key, _MISSING)
    return _MISSING


def get_by_path(data: Any, path: str, default: Any = None) -> Any:
    """Read a value from nested maps, lists or objects by dotted path.

    Returns ``default`` when any segment along the path is missing.
    """
    current = data
    for part in _split(path):
        current = _step(current, part)
        if current is _MISSING:
            return default
    return current


def has_path(data: Any, path: str) -> bool:
    current = data
    for part in _split(path):
        current = _step(current, part)
        if current is _MISSING:
            return False
    return True


def set_by_path(data: MutableMapping[str, Any], path: str, value: Any) -> MutableMapping[str, Any]:
    """Write a value into nested maps by dotted path, creating maps as needed.

    Intermediate segments that hold a list and a numeric key are written
    in place; any other non-map intermediate is replaced by a new map.

    Returns:
        The same ``data`` object, for chaining.
    """
    parts = _split(path)
    if not parts:
        raise ValueError("path cannot be empty")

    current: Any = data
    for part in parts[:-1]:
        if isinstance(current, list) and part.isdigit() and int(part) < len(current):
            nxt = current[int(part)]
            if not isinstance(nxt, (MutableMapping, list)):
                nxt = {}
                current[int(part)] = nxt
        else:
            nxt = current.get(part)
            if not isinstance(nxt, (MutableMapping, list)):
                nxt = {}
                current[part] = nxt
        current = nxt

    last = parts[-1]
    if isinstance(current, list) and last.isdigit() and int(last) < len(current):
        current[int(last)] = value
    else:
        current[last] = value
    return data


class FormDataMapper:
    """Copies data between nested maps and form trees."""

    # -----------------------------------------------------------------
    # Data <-> form tree
    # -----------------------------------------------------------------

    def map_data_to_forms(self, data: Mapping[str, Any] | None, form: "Form") -> None:
        """Set each mapped child of ``form`` from the matching key in ``data``.

        Compound children receive their nested map wholesale and map it
        on to their own children in turn; leaves store the raw value.
        Children without a matching key keep their current data.
        """
        if not data:
            return
        for child in form:
            if not child.mapped or child.name not in data:
                continue
            child.set_data(data[child.name])

    def map_forms_to_data(self, form: "Form") -> dict[str, Any]:
        """Gather the model data of every mapped child into a nested map."""
        data: dict[str, Any] = {}
        for child in form:
            if not child.mapped:
                continue
            data[child.name] = child.get_data()
        return data

    def map_data_to_forms_with_property_path(self, data: Any, form: "Form") -> None:
        """Like map_data_to_forms, but reads each child from its ``property_path``.

        A child without an explicit property path is read from its name.
        """
        if data is None:
            return
        for child in form:
            if not child.mapped:
                continue
            path = child.property_path
            if has_path(data, path):
                child.set_data(get_by_path(data, path))

    def map_forms_to_data_with_property_path(self, form: "Form") -> dict[str, Any]:
        data: dict[str, Any] = {}
        for child in form:
            if not child.mapped:
                continue
            set_by_path(data, child.property_path, child.get_data())
        return data

    # -----------------------------------------------------------------
    # Objects
    # -----------------------------------------------------------------

    def map_object_to_forms(self, obj: Any, form: "Form") -> None:
        """Populate children from attributes (or keys) of a model object."""
        if obj is None:
            return
        if isinstance(obj, Mapping):
            self.map_data_to_forms_with_property_path(obj, form)
            return
        for child in form:
            if not child.mapped:
                continue
            value = get_by_path(obj, child.property_path, _MISSING)
            if value is not _MISSING:
                child.set_data(value)

    def map_forms_to_object(self, form: "Form", obj: Any) -> Any:
        """Write children's model data onto attributes of ``obj``.

        Nested compound children are written onto the matching nested
        attribute when it exists, otherwise as a plain dict.
        """
        for child in form:
            if not child.mapped:
                continue
            target = getattr(obj, child.name, None)
            if child.is_compound and target is not None and not isinstance(target, (Mapping, list)):
                self.map_forms_to_object(child, target)
                continue
            setattr(obj, child.name, child.get_data())
        return obj

    # -----------------------------------------------------------------
    # Errors
    # -----------------------------------------------------------------

    def flatten_errors(self, errors: Mapping[str, Any], prefix: str = "") -> dict[str, list[str]]:
        """Flatten a nested error tree into ``{"a.b": [messages]}``.

        A list of strings is a terminal node holding messages for that path
        and is never descended into.
        """
        flat: dict[str, list[str]] = {}
        for key, value in errors.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            if isinstance(value, Mapping):
                flat.update(self.flatten_errors(value, path))
            elif isinstance(value, (list, tuple)):
                if all(isinstance(item, str) for item in value):
                    flat[path] = list(value)
                else:
                    nested = {str(i): item for i, item in enumerate(value)}
                    flat.update(self.flatten_errors(nested, path))
            else:
                flat[path] = [str(value)]
        return flat

    def unflatten_errors(self, errors: Mapping[str, Any]) -> dict[str, Any]:
        """Rebuild a nested error tree from a dotted map."""
        tree: dict[str, Any] = {}
        for path, messages in errors.items():
            if isinstance(messages, str):
                messages = [messages]
            node = tree
            parts = _split(path)
            for part in parts[:-1]:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
            node[parts[-1]] = list(messages)
        return tree
