"""
Field type definitions and the type registry.

A field type contributes two things: the options it understands
(``configure_options``) and what those options do to a field
(``build_field``). Types name their parent by tag instead of
subclassing it. The registry resolves a tag into its chain of types,
root first, and runs every type of the chain in order, so options and
behavior accumulate from the root ancestor down to the requested type.

Unknown tags resolve to the generic type, which accepts any option.
"""

import logging
import re
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from formgen.core.data_sources import resolve_choices
from formgen.core.field import FieldBuilder, FieldDescriptor
from formgen.core.options import OptionsResolver
from formgen.core.transformers import (
    BooleanToStringTransformer,
    CallbackTransformer,
    DateTimeToStringTransformer,
    NumberToLocalizedStringTransformer,
)
from formgen.core.utils import is_numeric
from formgen.validation import Constraint
from formgen.validation.constraints import (
    Accepted,
    AfterOrEqual,
    BeforeOrEqual,
    Date,
    Email,
    FileSize,
    FileType as FileTypeRule,
    In,
    Integer,
    Max,
    MaxLength,
    Min,
    MinLength,
    Numeric,
    Regex,
    Required,
    Url,
)

if TYPE_CHECKING:
    from formgen.core.form import FormFactory

logger = logging.getLogger(__name__)

GENERIC_TYPE = "generic"

DEFAULT_ALIASES = {
    "string": "text",
    "int": "integer",
    "phone": "tel",
    "datetime-local": "datetime",
    "dropdown": "select",
}


class FieldType:
    """Base class for field types.

    Subclasses set ``name`` and ``parent`` and override the two hooks;
    the hooks only deal with what the type itself adds.
    """

    name = ""
    parent: str | None = None

    def get_name(self) -> str:
        return self.name

    def get_parent(self) -> str | None:
        return self.parent

    def configure_options(self, resolver: OptionsResolver, context: "FormFactory | None" = None) -> None:
        pass

    def build_field(self, builder: FieldBuilder, options: dict[str, Any]) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} parent={self.parent!r}>"


class TypeExtension:
    """Adds options and build steps to existing types.

    The hooks run right after those of each type named in
    ``extended_types``, so extending ``text`` also reaches ``email``,
    ``password`` and every other type inheriting from it.
    """

    extended_types: tuple[str, ...] = ()

    def configure_options(self, resolver: OptionsResolver, context: "FormFactory | None" = None) -> None:
        pass

    def build_field(self, builder: FieldBuilder, options: dict[str, Any]) -> None:
        pass


# --- Root types ---


class BaseFieldType(FieldType):
    """Root of every data field; holds the options all fields share."""

    name = "field"

    def configure_options(self, resolver, context=None):
        resolver.set_defaults({
            "label": None,
            "required": False,
            "disabled": False,
            "readonly": False,
            "placeholder": None,
            "help": None,
            "attr": {},
            "label_attr": {},
            "wrapper_attr": {},
            "rules": None,
            "constraints": [],
            "transformers": [],
            "data": None,
            "empty_data": None,
            "invalid_message": "This value is not valid.",
            "mapped": True,
            "property_path": None,
        })
        resolver.set_allowed_types("label", ["null", "string"])
        resolver.set_allowed_types("required", "bool")
        resolver.set_allowed_types("disabled", "bool")
        resolver.set_allowed_types("readonly", "bool")
        resolver.set_allowed_types("placeholder", ["null", "string"])
        resolver.set_allowed_types("help", ["null", "string"])
        resolver.set_allowed_types("attr", "dict")
        resolver.set_allowed_types("label_attr", "dict")
        resolver.set_allowed_types("wrapper_attr", "dict")
        resolver.set_allowed_types("rules", ["null", "string", "list", Constraint])
        resolver.set_allowed_types("constraints", ["list", Constraint])
        resolver.set_allowed_types("transformers", "list")
        resolver.set_allowed_types("invalid_message", "string")
        resolver.set_allowed_types("mapped", "bool")
        resolver.set_allowed_types("property_path", ["null", "string"])
        resolver.set_normalizer("constraints", lambda options, value: [value] if isinstance(value, Constraint) else value)
        resolver.set_info("rules", "Rule string such as 'required|min:3', or a list of rules")
        resolver.set_info("empty_data", "View value used when the submitted value is empty")

    def build_field(self, builder, options):
        builder.set_label(options["label"])
        builder.set_mapped(options["mapped"])
        builder.set_attributes(options["attr"])
        builder.set_attributes({
            "required": options["required"],
            "disabled": options["disabled"],
            "readonly": options["readonly"],
            "placeholder": options["placeholder"],
        })
        if options["required"]:
            builder.add_constraint(Required())
        if options["rules"]:
            builder.add_constraint(options["rules"])
        for constraint in options["constraints"]:
            builder.add_constraint(constraint)
        for transformer in options["transformers"]:
            builder.add_transformer(transformer)


class FormType(FieldType):
    """Compound node holding child fields."""

    name = "form"
    parent = "field"

    def configure_options(self, resolver, context=None):
        resolver.set_default("compound", True)
        resolver.set_allowed_types("compound", "bool")

    def build_field(self, builder, options):
        builder.set_compound(options["compound"])
        builder.set_input_type("form")


class CollectionType(FieldType):
    """Compound node with one entry child per item of a list."""

    name = "collection"
    parent = "form"

    def configure_options(self, resolver, context=None):
        resolver.set_defaults({
            "entry_type": "text",
            "entry_options": {},
            "entry_builder": None,
            "allow_add": True,
            "allow_delete": True,
            "min": 0,
            "max": 0,
            "min_message": "This collection should contain {{ limit }} elements or more.",
            "max_message": "This collection should contain {{ limit }} elements or less.",
        })
        resolver.set_allowed_types("entry_type", "string")
        resolver.set_allowed_types("entry_options", "dict")
        resolver.set_allowed_types("entry_builder", ["null", "callable"])
        resolver.set_allowed_types("allow_add", "bool")
        resolver.set_allowed_types("allow_delete", "bool")
        resolver.set_allowed_types("min", "int")
        resolver.set_allowed_types("max", "int")
        resolver.set_allowed_values("min", lambda value: value >= 0)
        resolver.set_allowed_values("max", lambda value: value >= 0)

    def build_field(self, builder, options):
        builder.set_input_type("collection")


class ButtonType(FieldType):
    """Root of the button chain; buttons never map into data."""

    name = "button"

    def configure_options(self, resolver, context=None):
        resolver.set_defaults({"label": None, "attr": {}, "disabled": False})
        resolver.set_allowed_types("label", ["null", "string"])
        resolver.set_allowed_types("attr", "dict")
        resolver.set_allowed_types("disabled", "bool")

    def build_field(self, builder, options):
        builder.set_label(options["label"])
        builder.set_mapped(False)
        builder.set_input_type("button")
        builder.set_attributes(options["attr"])
        builder.set_attribute("disabled", options["disabled"])
        builder.set_attribute("type", "button")


class SubmitType(FieldType):
    name = "submit"
    parent = "button"

    def build_field(self, builder, options):
        builder.set_input_type("submit")
        builder.set_attribute("type", "submit")


class ResetType(FieldType):
    name = "reset"
    parent = "button"

    def build_field(self, builder, options):
        builder.set_input_type("reset")
        builder.set_attribute("type", "reset")


# --- Text family ---


class TextType(FieldType):
    name = "text"
    parent = "field"

    def configure_options(self, resolver, context=None):
        resolver.set_defaults({"minlength": None, "maxlength": None, "pattern": None, "trim": True})
        resolver.set_allowed_types("minlength", ["null", "int"])
        resolver.set_allowed_types("maxlength", ["null", "int"])
        resolver.set_allowed_types("pattern", ["null", "string"])
        resolver.set_allowed_types("trim", "bool")

    def build_field(self, builder, options):
        builder.set_input_type("text")
        builder.set_attributes({
            "minlength": options["minlength"],
            "maxlength": options["maxlength"],
            "pattern": options["pattern"],
        })
        if options["trim"]:
            builder.add_transformer(CallbackTransformer(None, _trim))
        if options["minlength"] is not None:
            builder.add_constraint(MinLength(options["minlength"]))
        if options["maxlength"] is not None:
            builder.add_constraint(MaxLength(options["maxlength"]))
        if options["pattern"]:
            builder.add_constraint(Regex(f"^(?:{options['pattern']})$"))


def _trim(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


class EmailType(FieldType):
    name = "email"
    parent = "text"

    def build_field(self, builder, options):
        builder.set_input_type("email")
        if not builder.has_constraint("email"):
            builder.add_constraint(Email())


class PasswordType(FieldType):
    name = "password"
    parent = "text"

    def configure_options(self, resolver, context=None):
        resolver.set_default("always_empty", True)
        resolver.set_allowed_types("always_empty", "bool")
        resolver.set_default("trim", False)

    def build_field(self, builder, options):
        builder.set_input_type("password")


class UrlType(FieldType):
    name = "url"
    parent = "text"

    def configure_options(self, resolver, context=None):
        resolver.set_default("default_protocol", "http")
        resolver.set_allowed_types("default_protocol", ["null", "string"])

    def build_field(self, builder, options):
        builder.set_input_type("url")
        protocol = options["default_protocol"]
        if protocol:
            builder.add_transformer(CallbackTransformer(None, _prefix_protocol(protocol)), prepend=True)
        if not builder.has_constraint("url"):
            builder.add_constraint(Url())


def _prefix_protocol(protocol: str) -> Callable[[Any], Any]:
    def prefix(value: Any) -> Any:
        if isinstance(value, str) and value and "://" not in value:
            return f"{protocol}://{value}"
        return value
    return prefix


class TelType(FieldType):
    name = "tel"
    parent = "text"

    def build_field(self, builder, options):
        builder.set_input_type("tel")


class TextareaType(FieldType):
    name = "textarea"
    parent = "text"

    def configure_options(self, resolver, context=None):
        resolver.set_defaults({"rows": None, "cols": None})
        resolver.set_allowed_types("rows", ["null", "int"])
        resolver.set_allowed_types("cols", ["null", "int"])

    def build_field(self, builder, options):
        builder.set_input_type("textarea")
        builder.set_attributes({"rows": options["rows"], "cols": options["cols"]})


class HiddenType(FieldType):
    name = "hidden"
    parent = "field"

    def build_field(self, builder, options):
        builder.set_input_type("hidden")


# --- Numbers ---


_INTEGER_RE = re.compile(r"[+-]?\d+")


def _parse_number(value: Any) -> int | float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    if not is_numeric(text):
        raise ValueError(f"'{value}' is not a number")
    # int() keeps integers exact beyond float precision
    if _INTEGER_RE.fullmatch(text):
        return int(text)
    return float(text)


def _parse_integer(value: Any) -> int:
    number = _parse_number(value)
    if isinstance(number, float) and not number.is_integer():
        raise ValueError(f"'{value}' is not an integer")
    return int(number)


class NumberType(FieldType):
    name = "number"
    parent = "field"

    def configure_options(self, resolver, context=None):
        resolver.set_defaults({
            "min": None,
            "max": None,
            "step": None,
            "scale": None,
            "decimal_separator": ".",
            "thousands_separator": "",
        })
        resolver.set_allowed_types("min", ["null", "number"])
        resolver.set_allowed_types("max", ["null", "number"])
        resolver.set_allowed_types("step", ["null", "number", "string"])
        resolver.set_allowed_types("scale", ["null", "int"])
        resolver.set_allowed_types("decimal_separator", "string")
        resolver.set_allowed_types("thousands_separator", "string")
        resolver.set_info("scale", "Decimal places; enables localized formatting")

    def build_field(self, builder, options):
        builder.set_input_type("number")
        builder.set_attributes({"min": options["min"], "max": options["max"], "step": options["step"]})
        if options["scale"] is not None:
            builder.add_transformer(NumberToLocalizedStringTransformer(
                precision=options["scale"],
                decimal_separator=options["decimal_separator"],
                thousands_separator=options["thousands_separator"],
            ))
        elif builder.type_name == self.name:
            builder.add_transformer(CallbackTransformer(_number_to_string, _parse_number))
        builder.add_constraint(Numeric())
        if options["min"] is not None:
            builder.add_constraint(Min(options["min"]))
        if options["max"] is not None:
            builder.add_constraint(Max(options["max"]))


def _number_to_string(value: Any) -> str:
    return str(value)


class IntegerType(FieldType):
    name = "integer"
    parent = "number"

    def configure_options(self, resolver, context=None):
        resolver.set_default("step", 1)

    def build_field(self, builder, options):
        if options["scale"] is None:
            builder.add_transformer(CallbackTransformer(_number_to_string, _parse_integer))
        builder.add_constraint(Integer())


# --- Dates ---


class DateType(FieldType):
    name = "date"
    parent = "field"
    default_format = "%Y-%m-%d"
    input_type = "date"

    def configure_options(self, resolver, context=None):
        resolver.set_defaults({
            "format": self.default_format,
            "min": None,
            "max": None,
            "input_timezone": None,
            "output_timezone": None,
        })
        resolver.set_allowed_types("format", "string")
        resolver.set_allowed_types("min", ["null", "string"])
        resolver.set_allowed_types("max", ["null", "string"])
        resolver.set_allowed_types("input_timezone", ["null", "string"])
        resolver.set_allowed_types("output_timezone", ["null", "string"])

    def build_field(self, builder, options):
        builder.set_input_type(self.input_type)
        builder.set_attributes({"min": options["min"], "max": options["max"]})
        builder.add_transformer(DateTimeToStringTransformer(
            options["format"],
            input_timezone=options["input_timezone"],
            output_timezone=options["output_timezone"],
        ))
        builder.add_constraint(Date())
        if options["min"]:
            builder.add_constraint(AfterOrEqual(options["min"]))
        if options["max"]:
            builder.add_constraint(BeforeOrEqual(options["max"]))


class DateTimeType(DateType):
    name = "datetime"
    parent = "date"
    default_format = "%Y-%m-%dT%H:%M"
    input_type = "datetime-local"

    def configure_options(self, resolver, context=None):
        resolver.set_default("format", self.default_format)

    def build_field(self, builder, options):
        builder.set_input_type(self.input_type)


class TimeType(DateTimeType):
    name = "time"
    parent = "date"
    default_format = "%H:%M"
    input_type = "time"


# --- Choices ---


class ChoiceType(FieldType):
    name = "choice"
    parent = "field"

    def configure_options(self, resolver, context=None):
        resolver.set_defaults({
            "choices": {},
            "data_source": None,
            "expanded": False,
            "multiple": False,
        })
        resolver.set_allowed_types("choices", "array")
        resolver.set_allowed_types("data_source", ["null", "dict", "object"])
        resolver.set_allowed_types("expanded", "bool")
        resolver.set_allowed_types("multiple", "bool")
        providers = context.data_providers if context is not None else {}

        def normalize_choices(options, value):
            if options.get("data_source") is not None:
                return resolve_choices(options["data_source"], providers)
            if isinstance(value, (list, tuple)):
                return {choice: choice for choice in value}
            return dict(value)

        resolver.set_normalizer("choices", normalize_choices)

    def build_field(self, builder, options):
        if options["expanded"]:
            builder.set_input_type("checkbox" if options["multiple"] else "radio")
        else:
            builder.set_input_type("select")
        builder.set_attribute("multiple", options["multiple"])
        if options["multiple"]:
            builder.add_transformer(CallbackTransformer(None, _ensure_list))
        if options["choices"]:
            builder.add_constraint(In(list(options["choices"])))


def _ensure_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class SelectType(FieldType):
    name = "select"
    parent = "choice"


class RadioType(FieldType):
    name = "radio"
    parent = "choice"

    def configure_options(self, resolver, context=None):
        resolver.set_default("expanded", True)


# --- Other inputs ---


class CheckboxType(FieldType):
    name = "checkbox"
    parent = "field"

    def configure_options(self, resolver, context=None):
        resolver.set_defaults({"value": "1", "empty_data": False})
        resolver.set_allowed_types("value", "string")

    def build_field(self, builder, options):
        builder.set_input_type("checkbox")
        builder.set_attribute("value", options["value"])
        builder.add_transformer(BooleanToStringTransformer(true_value=options["value"]))
        if options["required"]:
            builder.add_constraint(Accepted())


class FileType(FieldType):
    name = "file"
    parent = "field"

    def configure_options(self, resolver, context=None):
        resolver.set_defaults({"multiple": False, "accept": None, "max_size": None, "mime_types": None})
        resolver.set_allowed_types("multiple", "bool")
        resolver.set_allowed_types("accept", ["null", "string"])
        resolver.set_allowed_types("max_size", ["null", "int"])
        resolver.set_allowed_types("mime_types", ["null", "list"])

    def build_field(self, builder, options):
        builder.set_input_type("file")
        builder.set_attributes({"multiple": options["multiple"], "accept": options["accept"]})
        if options["max_size"] is not None:
            builder.add_constraint(FileSize(options["max_size"]))
        if options["mime_types"]:
            builder.add_constraint(FileTypeRule(*options["mime_types"]))


class GenericType(FieldType):
    """Fallback for unknown tags: accepts any option and renders as its tag."""

    name = GENERIC_TYPE
    parent = "field"

    def configure_options(self, resolver, context=None):
        resolver.allow_extra_options()
        resolver.set_default("input_type", None)
        resolver.set_allowed_types("input_type", ["null", "string"])

    def build_field(self, builder, options):
        input_type = options.get("input_type") or builder.type_name
        builder.set_input_type(input_type)


# -----------------------------------------------------------------
# Registry
# -----------------------------------------------------------------


class UnknownTypeError(LookupError):
    """Raised when a type cannot be resolved and no fallback is registered."""


class TypeRegistry:
    """Maps type tags to field types and builds field descriptors.

    Args:
        fallback: Tag used for unknown types; None disables the fallback.
    """

    def __init__(self, fallback: str | None = GENERIC_TYPE):
        self._types: dict[str, FieldType] = {}
        self._aliases: dict[str, str] = {}
        self._chains: dict[str, list[FieldType]] = {}
        self._extensions: list[TypeExtension] = []
        self.fallback = fallback

    def register(self, field_type: FieldType) -> "TypeRegistry":
        if not field_type.name:
            raise ValueError(f"{type(field_type).__name__} has no name")
        self._types[field_type.name] = field_type
        self._chains.clear()
        logger.debug("Registered field type '%s' (parent: %s)", field_type.name, field_type.parent)
        return self

    def unregister(self, name: str) -> bool:
        self._chains.clear()
        return self._types.pop(name, None) is not None

    def alias(self, alias: str, target: str) -> "TypeRegistry":
        self._aliases[alias] = target
        self._chains.clear()
        return self

    def add_extension(self, extension: TypeExtension) -> "TypeRegistry":
        if not extension.extended_types:
            raise ValueError(f"{type(extension).__name__} does not extend any type")
        self._extensions.append(extension)
        logger.debug("Registered %s for %s", type(extension).__name__, ", ".join(extension.extended_types))
        return self

    def remove_extension(self, extension: TypeExtension) -> bool:
        if extension not in self._extensions:
            return False
        self._extensions.remove(extension)
        return True

    @property
    def extensions(self) -> list[TypeExtension]:
        return list(self._extensions)

    def extensions_for(self, name: str) -> list[TypeExtension]:
        """Extensions registered for exactly this type, in registration order."""
        canonical = self._canonical(name)
        return [
            extension for extension in self._extensions
            if any(self._canonical(t) == canonical for t in extension.extended_types)
        ]

    def has(self, name: str) -> bool:
        return self._canonical(name) in self._types

    def type_names(self) -> list[str]:
        return sorted(self._types)

    @property
    def aliases(self) -> dict[str, str]:
        return dict(self._aliases)

    def _canonical(self, name: str) -> str:
        return self._aliases.get(name, name)

    def get(self, name: str) -> FieldType:
        """Return the type for a tag, falling back to the generic type."""
        canonical = self._canonical(name)
        field_type = self._types.get(canonical)
        if field_type is not None:
            return field_type
        if self.fallback is None or self.fallback not in self._types:
            raise UnknownTypeError(f"Field type '{name}' is not registered")
        logger.warning("Unknown field type '%s', using '%s'", name, self.fallback)
        return self._types[self.fallback]

    def chain(self, name: str) -> list[FieldType]:
        """Types from the root ancestor down to ``name``'s type."""
        canonical = self._canonical(name)
        cached = self._chains.get(canonical)
        if cached is not None:
            return list(cached)

        chain: list[FieldType] = []
        seen: set[str] = set()
        current: FieldType | None = self.get(canonical)
        while current is not None:
            if current.name in seen:
                raise ValueError(f"Circular type inheritance at '{current.name}'")
            seen.add(current.name)
            chain.append(current)
            if current.parent is None:
                break
            if current.parent not in self._types:
                raise UnknownTypeError(f"Parent type '{current.parent}' of '{current.name}' is not registered")
            current = self._types[current.parent]
        chain.reverse()
        self._chains[canonical] = chain
        return list(chain)

    def hierarchy(self, name: str) -> list[str]:
        """Tags from the resolved type up to its root ancestor."""
        return [t.name for t in reversed(self.chain(name))]

    def is_type_of(self, name: str, ancestor: str) -> bool:
        return self._canonical(ancestor) in self.hierarchy(name)

    def build_field(
        self,
        name: str,
        type_name: str,
        options: dict[str, Any] | None = None,
        context: "FormFactory | None" = None,
    ) -> FieldDescriptor:
        """Resolve options through the type chain and build a descriptor.

        Raises:
            OptionsError: If the options do not satisfy the chain's schema.
        """
        chain = self.chain(type_name)
        steps = [(field_type, self.extensions_for(field_type.name)) for field_type in chain]
        resolver = OptionsResolver()
        for field_type, extensions in steps:
            field_type.configure_options(resolver, context)
            for extension in extensions:
                extension.configure_options(resolver, context)
        resolved = resolver.resolve(options or {})

        tag = self._canonical(type_name)
        builder = FieldBuilder(name, tag, resolved)
        for field_type, extensions in steps:
            field_type.build_field(builder, resolved)
            for extension in extensions:
                extension.build_field(builder, resolved)
        return builder.get_descriptor(parent_type=chain[-1].parent)


BUILTIN_TYPES: list[type[FieldType]] = [
    BaseFieldType,
    FormType,
    CollectionType,
    ButtonType,
    SubmitType,
    ResetType,
    TextType,
    EmailType,
    PasswordType,
    UrlType,
    TelType,
    TextareaType,
    HiddenType,
    NumberType,
    IntegerType,
    DateType,
    DateTimeType,
    TimeType,
    ChoiceType,
    SelectType,
    RadioType,
    CheckboxType,
    FileType,
    GenericType,
]


def create_default_registry() -> TypeRegistry:
    """Registry holding every built-in type and the default aliases."""
    registry = TypeRegistry()
    for field_type in BUILTIN_TYPES:
        registry.register(field_type())
    for alias, target in DEFAULT_ALIASES.items():
        registry.alias(alias, target)
    return registry

