"""
Field descriptors and the builder that assembles them.

Field types never construct descriptors directly: the type registry
resolves options, then hands a FieldBuilder down the type chain so each
type can contribute its input type, attributes, transformers and
constraints. The finished FieldDescriptor is immutable.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from formgen.core.transformers import DataTransformer, TransformerChain
from formgen.validation import Constraint, parse_rules


class FieldDescriptor(BaseModel):
    """Full, resolved configuration of one form field."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, description="Unique name within the parent form")
    type: str = Field(..., description="Type tag the field was declared with")
    label: str | None = Field(default=None, description="Human-readable label")
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Resolved options (validated, defaulted, normalized)",
    )
    transformers: list[DataTransformer] = Field(
        default_factory=list,
        description="Model <-> view transformers in declared order",
    )
    constraints: list[Constraint] = Field(
        default_factory=list,
        description="Validation constraints in declared order",
    )
    parent_type: str | None = Field(default=None, description="Tag of the inherited type")
    input_type: str = Field(default="text", description="Widget kind used by themes")
    attributes: dict[str, Any] = Field(default_factory=dict, description="HTML attributes")
    mapped: bool = Field(default=True, description="Whether the field maps into form data")
    compound: bool = Field(default=False, description="Whether the field holds children")

    @property
    def validation_rules(self) -> list[Constraint]:
        return list(self.constraints)

    @property
    def transformer_chain(self) -> TransformerChain:
        return TransformerChain(self.transformers)

    @property
    def required(self) -> bool:
        return bool(self.options.get("required"))


class FieldBuilder:
    """Mutable accumulator passed down a type chain by the registry."""

    def __init__(self, name: str, type_name: str, options: dict[str, Any]):
        self.name = name
        self.type_name = type_name
        self.options = options
        self.label: str | None = None
        self.input_type = "text"
        self.attributes: dict[str, Any] = {}
        self.transformers: list[DataTransformer] = []
        self.constraints: list[Constraint] = []
        self.mapped = True
        self.compound = False

    def set_label(self, label: str | None) -> "FieldBuilder":
        self.label = label
        return self

    def set_input_type(self, input_type: str) -> "FieldBuilder":
        self.input_type = input_type
        return self

    def set_attribute(self, name: str, value: Any) -> "FieldBuilder":
        if value is None or value is False:
            self.attributes.pop(name, None)
        else:
            self.attributes[name] = value
        return self

    def set_attributes(self, attributes: dict[str, Any]) -> "FieldBuilder":
        for name, value in attributes.items():
            self.set_attribute(name, value)
        return self

    def add_transformer(self, transformer: DataTransformer, prepend: bool = False) -> "FieldBuilder":
        if prepend:
            self.transformers.insert(0, transformer)
        else:
            self.transformers.append(transformer)
        return self

    def add_constraint(self, constraint: Constraint | str) -> "FieldBuilder":
        """Attach a constraint instance or a rule string such as ``"min:3|max:20"``."""
        self.constraints.extend(parse_rules(constraint))
        return self

    def has_constraint(self, rule_name: str) -> bool:
        return any(c.rule_name == rule_name for c in self.constraints)

    def set_mapped(self, mapped: bool) -> "FieldBuilder":
        self.mapped = mapped
        return self

    def set_compound(self, compound: bool) -> "FieldBuilder":
        self.compound = compound
        return self

    def get_descriptor(self, parent_type: str | None = None) -> FieldDescriptor:
        return FieldDescriptor(
            name=self.name,
            type=self.type_name,
            label=self.label,
            options=dict(self.options),
            transformers=list(self.transformers),
            constraints=list(self.constraints),
            parent_type=parent_type,
            input_type=self.input_type,
            attributes=dict(self.attributes),
            mapped=self.mapped,
            compound=self.compound,
        )
