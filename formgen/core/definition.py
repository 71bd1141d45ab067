"""
Declarative form definitions.

A form can be described as data instead of code and turned into a Form
tree by ``build_form``. Definitions are accepted as dicts, as YAML
documents, or as YAML frontmatter on top of a markdown body:

    ---
    name: signup
    fields:
      - name: email
        type: email
        rules: required|email
      - name: address
        type: form
        children:
          - name: city
            rules: required
    ---
    # Signup
    Free text after the header is ignored.
"""

import logging
from enum import Enum
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from formgen.core.data_sources import DataSource
from formgen.core.form import Form, FormFactory
from formgen.core.transformers import (
    BooleanToStringTransformer,
    DataTransformer,
    DateTimeToStringTransformer,
    NumberToLocalizedStringTransformer,
    StringToArrayTransformer,
)

logger = logging.getLogger(__name__)


class DefinitionError(ValueError):
    """Raised when a form definition cannot be parsed or is invalid."""


class TransformerKind(str, Enum):
    DATETIME = "datetime"
    STRING_TO_ARRAY = "string_to_array"
    NUMBER = "number"
    BOOLEAN = "boolean"


_TRANSFORMERS: dict[TransformerKind, type[DataTransformer]] = {
    TransformerKind.DATETIME: DateTimeToStringTransformer,
    TransformerKind.STRING_TO_ARRAY: StringToArrayTransformer,
    TransformerKind.NUMBER: NumberToLocalizedStringTransformer,
    TransformerKind.BOOLEAN: BooleanToStringTransformer,
}


class TransformerDefinition(BaseModel):
    """A built-in transformer and its constructor options."""

    type: TransformerKind = Field(..., description="Built-in transformer kind")
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Keyword arguments for the transformer constructor",
    )

    def create(self) -> DataTransformer:
        try:
            return _TRANSFORMERS[self.type](**self.options)
        except (TypeError, ValueError) as e:
            raise DefinitionError(f"Invalid options for transformer '{self.type.value}': {e}") from e


class FieldDefinition(BaseModel):
    """Definition of one field; compound fields list their children."""

    name: str = Field(..., min_length=1, description="Field name, unique among siblings")
    type: str = Field(default="text", description="Type tag resolved by the registry")
    label: str | None = Field(default=None, description="Display label")
    required: bool = Field(default=False, description="Shortcut for the 'required' option")
    rules: str | list[str] | None = Field(
        default=None,
        description="Rule string ('required|max:50') or list of rule strings",
    )
    options: dict[str, Any] = Field(default_factory=dict, description="Further type options")
    transformers: list[TransformerDefinition] = Field(default_factory=list)
    data_source: DataSource | None = Field(
        default=None,
        description="Choice source for choice-based types",
    )
    children: list["FieldDefinition"] = Field(
        default_factory=list,
        description="Child fields of a compound field",
    )

    @model_validator(mode="after")
    def validate_unique_children(self) -> "FieldDefinition":
        _check_unique(self.children, f"field '{self.name}'")
        return self

    def type_options(self) -> dict[str, Any]:
        """Options handed to the type registry."""
        options = dict(self.options)
        if self.label is not None:
            options["label"] = self.label
        if self.required:
            options["required"] = True
        if self.rules:
            options["rules"] = self.rules
        if self.transformers:
            options["transformers"] = [t.create() for t in self.transformers]
        if self.data_source is not None:
            options["data_source"] = self.data_source
        return options


class FormDefinition(BaseModel):
    """Top-level form definition."""

    name: str = Field(..., min_length=1, description="Form name; also the request key")
    method: str = Field(default="POST")
    action: str | None = Field(default=None)
    csrf_protection: bool = Field(default=False)
    validation_groups: list[str] | None = Field(default=None)
    messages: dict[str, str] = Field(
        default_factory=dict,
        description='Message overrides keyed by "<path>.<rule>" or "<path>"',
    )
    fields: list[FieldDefinition] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_unique_fields(self) -> "FormDefinition":
        _check_unique(self.fields, f"form '{self.name}'")
        return self


def _check_unique(fields: list[FieldDefinition], owner: str) -> None:
    seen: set[str] = set()
    for field in fields:
        if field.name in seen:
            raise ValueError(f"Duplicate field name '{field.name}' in {owner}")
        seen.add(field.name)


def split_frontmatter(content: str) -> tuple[str, str]:
    """Split ``---`` delimited YAML frontmatter from the body.

    Returns the YAML block and the remaining body; content without
    frontmatter is returned whole as the YAML block.
    """
    stripped = content.strip()
    if not stripped.startswith("---"):
        return content, ""
    end_index = stripped.find("\n---", 3)
    if end_index == -1:
        return content, ""
    return stripped[3:end_index].strip(), stripped[end_index + 4:].strip()


def parse_definition(content: str | dict[str, Any]) -> FormDefinition:
    """Parse a definition from a dict, a YAML document or YAML frontmatter.

    Raises:
        DefinitionError: If the YAML is malformed or the definition invalid.
    """
    if isinstance(content, dict):
        raw: Any = content
    else:
        yaml_block, _ = split_frontmatter(content)
        try:
            raw = yaml.safe_load(yaml_block)
        except yaml.YAMLError as e:
            raise DefinitionError(f"Failed to parse form definition YAML: {e}") from e

    if not isinstance(raw, dict):
        raise DefinitionError("Form definition must be a mapping")

    try:
        return FormDefinition.model_validate(raw)
    except ValidationError as e:
        raise DefinitionError(f"Invalid form definition: {e}") from e


def _add_fields(form: Form, fields: list[FieldDefinition]) -> None:
    for field in fields:
        form.add(field.name, field.type, field.type_options())
        if field.children:
            _add_fields(form[field.name], field.children)


def build_form(definition: FormDefinition | str | dict[str, Any], factory: FormFactory | None = None) -> Form:
    """Build a root Form from a definition.

    Raises:
        DefinitionError: If the definition cannot be parsed or its form
            configuration is invalid.
        OptionsError: If a field's options are invalid for its type.
        InvalidRuleError: If a rule string has bad parameters.
    """
    if not isinstance(definition, FormDefinition):
        definition = parse_definition(definition)
    factory = factory or FormFactory()

    config: dict[str, Any] = {
        "method": definition.method,
        "action": definition.action,
        "csrf_protection": definition.csrf_protection,
        "messages": definition.messages,
    }
    if definition.validation_groups:
        config["validation_groups"] = definition.validation_groups

    try:
        form = factory.create(definition.name, **config)
    except ValidationError as e:
        raise DefinitionError(f"Invalid configuration for form '{definition.name}': {e}") from e
    _add_fields(form, definition.fields)
    logger.debug("Built form '%s' with %d top-level field(s)", definition.name, len(definition.fields))
    return form
