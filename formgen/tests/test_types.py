"""
Unit tests for field types and the type registry.

Tests cover:
- Parent chains, hierarchy and is_type_of
- Options accumulating from root ancestor to leaf type
- Auto-attached constraints (email, url, date, numeric, choices)
- Transformers contributed by types (trim, numbers, dates, checkbox, url)
- Unknown tags falling back to the generic type
- Aliases, registration of custom types, cycle detection
- Eager option validation at build time
- Data-source backed choices
- Type extensions adding options and build steps to a type and its
  descendants
"""

from datetime import datetime

import pytest

from formgen.core.field import FieldDescriptor
from formgen.core.form import FormFactory
from formgen.core.options import InvalidOptionTypeError, UndefinedOptionError
from formgen.core.types import (
    FieldType,
    TypeExtension,
    TypeRegistry,
    UnknownTypeError,
    create_default_registry,
)


@pytest.fixture
def registry() -> TypeRegistry:
    return create_default_registry()


def _rules(descriptor: FieldDescriptor) -> list[str]:
    return [c.rule_name for c in descriptor.constraints]


# =============================================================
# Test: Hierarchy
# =============================================================


class TestHierarchy:

    @pytest.mark.parametrize("name,parent", [
        ("email", "text"),
        ("password", "text"),
        ("url", "text"),
        ("tel", "text"),
        ("integer", "number"),
        ("select", "choice"),
        ("radio", "choice"),
        ("submit", "button"),
        ("text", "field"),
        ("button", None),
    ])
    def test_declared_parents(self, registry, name, parent):
        assert registry.get(name).get_parent() == parent
        assert registry.get(name).get_name() == name

    def test_hierarchy_is_leaf_first(self, registry):
        assert registry.hierarchy("email") == ["email", "text", "field"]
        assert registry.hierarchy("collection") == ["collection", "form", "field"]

    def test_is_type_of(self, registry):
        assert registry.is_type_of("password", "text")
        assert registry.is_type_of("integer", "field")
        assert not registry.is_type_of("checkbox", "text")

    def test_descriptor_records_parent_type(self, registry):
        assert registry.build_field("email", "email").parent_type == "text"
        assert registry.build_field("ok", "submit").parent_type == "button"


# =============================================================
# Test: Options and descriptors
# =============================================================


class TestOptions:

    def test_options_accumulate_down_the_chain(self, registry):
        descriptor = registry.build_field("email", "email", {"label": "E-mail", "maxlength": 120})
        assert descriptor.options["label"] == "E-mail"
        assert descriptor.options["maxlength"] == 120
        assert descriptor.options["required"] is False
        assert descriptor.options["trim"] is True

    def test_descriptor_options_are_resolved(self, registry):
        descriptor = registry.build_field("age", "integer")
        assert descriptor.options["step"] == 1
        assert descriptor.options["min"] is None

    def test_unknown_option_fails_at_build_time(self, registry):
        with pytest.raises(UndefinedOptionError):
            registry.build_field("name", "text", {"colour": "red"})

    def test_wrong_option_type_fails_at_build_time(self, registry):
        with pytest.raises(InvalidOptionTypeError):
            registry.build_field("name", "text", {"required": "yes"})

    def test_descriptor_is_immutable(self, registry):
        descriptor = registry.build_field("name", "text")
        with pytest.raises(Exception):
            descriptor.label = "Changed"

    def test_attributes(self, registry):
        descriptor = registry.build_field("bio", "textarea", {"rows": 4, "required": True})
        assert descriptor.input_type == "textarea"
        assert descriptor.attributes["rows"] == 4
        assert descriptor.attributes["required"] is True
        assert "cols" not in descriptor.attributes


# =============================================================
# Test: Auto-attached constraints
# =============================================================


class TestConstraints:

    def test_required_comes_first(self, registry):
        descriptor = registry.build_field("email", "email", {"required": True, "rules": "max:255"})
        assert _rules(descriptor) == ["required", "max", "email"]

    def test_email_not_duplicated(self, registry):
        descriptor = registry.build_field("email", "email", {"rules": "email"})
        assert _rules(descriptor).count("email") == 1

    def test_url_date_number(self, registry):
        assert "url" in _rules(registry.build_field("site", "url"))
        assert _rules(registry.build_field("day", "date", {"min": "today"})) == ["date", "after_or_equal"]
        assert _rules(registry.build_field("qty", "integer", {"min": 1})) == ["numeric", "min", "integer"]

    def test_text_length_and_pattern(self, registry):
        descriptor = registry.build_field("code", "text", {"minlength": 2, "maxlength": 4, "pattern": "[A-Z]+"})
        assert _rules(descriptor) == ["min_length", "max_length", "regex"]

    def test_choice_membership(self, registry):
        descriptor = registry.build_field("role", "select", {"choices": ["user", "admin"]})
        assert descriptor.options["choices"] == {"user": "user", "admin": "admin"}
        assert _rules(descriptor) == ["in"]

    def test_required_checkbox_must_be_accepted(self, registry):
        assert _rules(registry.build_field("terms", "checkbox", {"required": True})) == ["required", "accepted"]

    def test_file_constraints(self, registry):
        descriptor = registry.build_field("avatar", "file", {"max_size": 1024, "mime_types": ["image/png"]})
        assert _rules(descriptor) == ["file_size", "file_type"]


# =============================================================
# Test: Transformers
# =============================================================


class TestTransformers:

    def test_text_trims_submitted_values(self, registry):
        chain = registry.build_field("name", "text").transformer_chain
        assert chain.reverse_transform("  Ada ") == "Ada"

    def test_password_is_not_trimmed(self, registry):
        chain = registry.build_field("pw", "password").transformer_chain
        assert chain.reverse_transform(" secret ") == " secret "

    def test_url_gets_default_protocol(self, registry):
        chain = registry.build_field("site", "url").transformer_chain
        assert chain.reverse_transform(" example.org ") == "http://example.org"
        assert chain.reverse_transform("https://example.org") == "https://example.org"

    def test_number_parsing(self, registry):
        assert registry.build_field("n", "number").transformer_chain.reverse_transform("2.5") == 2.5
        assert registry.build_field("n", "integer").transformer_chain.reverse_transform("42") == 42

    def test_scaled_number_uses_localized_format(self, registry):
        descriptor = registry.build_field("price", "number", {
            "scale": 2, "decimal_separator": ",", "thousands_separator": ".",
        })
        assert descriptor.transformer_chain.transform(1234.5) == "1.234,50"

    def test_date_format(self, registry):
        chain = registry.build_field("born", "date", {"format": "d/m/Y"}).transformer_chain
        assert chain.reverse_transform("15/05/1990") == datetime(1990, 5, 15)

    def test_datetime_default_format(self, registry):
        chain = registry.build_field("at", "datetime").transformer_chain
        assert chain.transform(datetime(2024, 1, 2, 3, 4)) == "2024-01-02T03:04"

    def test_checkbox_values(self, registry):
        chain = registry.build_field("news", "checkbox", {"value": "yes"}).transformer_chain
        assert chain.reverse_transform("yes") is True
        assert chain.transform(False) == "0"

    def test_multiple_choice_becomes_list(self, registry):
        chain = registry.build_field("tags", "select", {"choices": ["a", "b"], "multiple": True}).transformer_chain
        assert chain.reverse_transform("a") == ["a"]

    def test_custom_transformers_are_kept(self, registry):
        from formgen.core.transformers import StringToArrayTransformer

        descriptor = registry.build_field("tags", "text", {"transformers": [StringToArrayTransformer(",")]})
        assert descriptor.transformer_chain.reverse_transform(" a, b ") == ["a", "b"]


# =============================================================
# Test: Fallback, aliases and registration
# =============================================================


class RatingType(FieldType):
    name = "rating"
    parent = "integer"

    def configure_options(self, resolver, context=None):
        resolver.set_default("stars", 5)
        resolver.set_allowed_types("stars", "int")

    def build_field(self, builder, options):
        builder.set_input_type("rating")
        builder.set_attribute("data-stars", options["stars"])
        builder.add_constraint(f"between:1,{options['stars']}")


class TestRegistry:

    def test_unknown_type_falls_back_to_generic(self, registry):
        descriptor = registry.build_field("tree", "checkbox_tree", {"levels": 3})
        assert descriptor.type == "checkbox_tree"
        assert descriptor.input_type == "checkbox_tree"
        assert descriptor.options["levels"] == 3

    def test_unknown_type_without_fallback(self):
        registry = TypeRegistry(fallback=None)
        with pytest.raises(UnknownTypeError):
            registry.get("anything")

    def test_aliases(self, registry):
        assert registry.build_field("n", "int").type == "integer"
        assert registry.build_field("p", "phone").input_type == "tel"
        assert registry.has("dropdown")

    def test_custom_type_inherits_options(self, registry):
        registry.register(RatingType())
        descriptor = registry.build_field("score", "rating", {"stars": 10, "required": True})
        assert descriptor.input_type == "rating"
        assert descriptor.attributes["data-stars"] == 10
        assert descriptor.options["step"] == 1
        assert _rules(descriptor) == ["required", "numeric", "integer", "between"]
        assert registry.hierarchy("rating") == ["rating", "integer", "number", "field"]

    def test_unregister(self, registry):
        registry.register(RatingType())
        assert registry.unregister("rating")
        assert not registry.has("rating")
        assert not registry.unregister("rating")

    def test_cycle_detection(self):
        class A(FieldType):
            name = "a"
            parent = "b"

        class B(FieldType):
            name = "b"
            parent = "a"

        registry = TypeRegistry(fallback=None).register(A()).register(B())
        with pytest.raises(ValueError):
            registry.chain("a")

    def test_missing_parent(self):
        registry = TypeRegistry(fallback=None).register(RatingType())
        with pytest.raises(UnknownTypeError):
            registry.chain("rating")

    def test_type_names(self, registry):
        names = registry.type_names()
        for builtin in ("text", "email", "number", "select", "checkbox", "date", "file", "generic"):
            assert builtin in names


# =============================================================
# Test: Type extensions
# =============================================================


class HelpIconExtension(TypeExtension):
    extended_types = ("text",)

    def configure_options(self, resolver, context=None):
        resolver.set_default("help_icon", None)
        resolver.set_allowed_types("help_icon", ["null", "string"])

    def build_field(self, builder, options):
        builder.set_attribute("data-help-icon", options["help_icon"])
        builder.set_attribute("data-built-after", builder.input_type)


class TestTypeExtensions:

    def test_option_reaches_descendant_types(self, registry):
        registry.add_extension(HelpIconExtension())
        descriptor = registry.build_field("email", "email", {"help_icon": "info"})
        assert descriptor.options["help_icon"] == "info"
        assert descriptor.attributes["data-help-icon"] == "info"

    def test_unrelated_types_reject_the_option(self, registry):
        registry.add_extension(HelpIconExtension())
        with pytest.raises(UndefinedOptionError):
            registry.build_field("price", "number", {"help_icon": "info"})

    def test_hooks_run_right_after_the_extended_type(self, registry):
        registry.add_extension(HelpIconExtension())
        descriptor = registry.build_field("email", "email")
        assert descriptor.attributes["data-built-after"] == "text"
        assert descriptor.input_type == "email"
        assert "data-help-icon" not in descriptor.attributes

    def test_extensions_for(self, registry):
        first, second = HelpIconExtension(), HelpIconExtension()
        registry.add_extension(first).add_extension(second)
        assert registry.extensions_for("text") == [first, second]
        assert registry.extensions_for("email") == []
        assert registry.extensions == [first, second]

    def test_extension_needs_a_type(self, registry):
        with pytest.raises(ValueError):
            registry.add_extension(TypeExtension())

    def test_remove_extension(self, registry):
        extension = HelpIconExtension()
        registry.add_extension(extension)
        assert registry.remove_extension(extension)
        assert not registry.remove_extension(extension)
        with pytest.raises(UndefinedOptionError):
            registry.build_field("name", "text", {"help_icon": "info"})

    def test_factory_forms_use_extensions(self):
        factory = FormFactory()
        factory.registry.add_extension(HelpIconExtension())
        form = factory.create("f").add_password("secret", help_icon="lock")
        assert form["secret"].descriptor.attributes["data-help-icon"] == "lock"


# =============================================================
# Test: Data-source choices
# =============================================================


class TestDataSourceChoices:

    def test_key_label_source(self, registry):
        descriptor = registry.build_field("size", "select", {
            "data_source": {"kind": "key_label", "options": {"s": "Small", "l": "Large"}},
        })
        assert descriptor.options["choices"] == {"s": "Small", "l": "Large"}

    def test_provider_source_uses_factory_providers(self, countries):
        factory = FormFactory(data_providers={"countries": countries})
        descriptor = factory.create_field("country", "select", {
            "data_source": {"kind": "provider", "provider": "countries", "key": "code", "criteria": {"region": "eu"}},
        })
        assert descriptor.options["choices"] == {"de": "Germany", "fr": "France"}

    def test_unknown_provider(self, registry):
        with pytest.raises(LookupError):
            registry.build_field("country", "select", {
                "data_source": {"kind": "provider", "provider": "missing"},
            })
