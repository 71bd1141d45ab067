"""
View layer handed to template renderers.

A FormView is the render-ready snapshot of a form tree: resolved labels,
display values (model values passed through the transformers), errors
and HTML attributes. Renderers and themes are external collaborators;
the library only relies on the small protocols defined here.
"""

from collections.abc import Iterator, Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Renderer(Protocol):
    """Template engine adapter."""

    def render(self, template_id: str, context: Mapping[str, Any]) -> str: ...

    def exists(self, template_id: str) -> bool: ...


@runtime_checkable
class Theme(Protocol):
    """Maps input types to template identifiers and CSS classes."""

    def template_for(self, input_type: str) -> str: ...

    def css_classes(self, input_type: str) -> dict[str, str]: ...


# Input type -> template identifier
_DEFAULT_TEMPLATES = {
    "form": "form",
    "collection": "collection",
    "textarea": "textarea",
    "select": "select",
    "radio": "choice_expanded",
    "checkbox": "checkbox",
    "hidden": "hidden",
    "file": "file",
    "button": "button",
    "submit": "button",
    "reset": "button",
}

_DEFAULT_CLASSES = {
    "wrapper": "form-group",
    "label": "form-label",
    "input": "form-control",
    "error": "invalid-feedback",
    "help": "form-text",
}

_INPUT_CLASS_OVERRIDES = {
    "checkbox": "form-check-input",
    "radio": "form-check-input",
    "button": "btn btn-secondary",
    "submit": "btn btn-primary",
    "reset": "btn btn-outline-secondary",
    "select": "form-select",
}


class DefaultTheme:
    """Plain theme with Bootstrap-style class names.

    Args:
        templates: Overrides for the input type -> template map.
        classes: Overrides for the default class names.
        prefix: Prefix applied to every template identifier.
    """

    def __init__(
        self,
        templates: Mapping[str, str] | None = None,
        classes: Mapping[str, str] | None = None,
        prefix: str = "",
    ):
        self._templates = {**_DEFAULT_TEMPLATES, **(templates or {})}
        self._classes = {**_DEFAULT_CLASSES, **(classes or {})}
        self.prefix = prefix

    def template_for(self, input_type: str) -> str:
        return f"{self.prefix}{self._templates.get(input_type, 'input')}"

    def css_classes(self, input_type: str) -> dict[str, str]:
        classes = dict(self._classes)
        if input_type in _INPUT_CLASS_OVERRIDES:
            classes["input"] = _INPUT_CLASS_OVERRIDES[input_type]
        return classes


class FormView:
    """Render-ready representation of a form node."""

    def __init__(self, vars: dict[str, Any] | None = None):
        self.vars: dict[str, Any] = dict(vars or {})
        self.children: dict[str, "FormView"] = {}

    def add_child(self, name: str, view: "FormView") -> None:
        self.children[name] = view

    def __getitem__(self, name: str) -> "FormView":
        return self.children[name]

    def __contains__(self, name: object) -> bool:
        return name in self.children

    def __iter__(self) -> Iterator["FormView"]:
        return iter(self.children.values())

    def __len__(self) -> int:
        return len(self.children)

    def to_dict(self) -> dict[str, Any]:
        """Nested plain-data form of the view, children under ``children``."""
        data = dict(self.vars)
        if self.children:
            data["children"] = {name: child.to_dict() for name, child in self.children.items()}
        return data
