"""
Unit tests for OptionsResolver.

Tests cover:
- Defaults merged under caller input
- Required options (missing, satisfied by default or input)
- Unknown keys rejected unless extra options are allowed
- Allowed types: unions, aliases, Python classes, bool vs int
- Allowed values: enumerations and predicates
- Normalizers run in order after validation
- Idempotent resolution and introspection helpers
"""

import pytest

from formgen.core.options import (
    InvalidOptionTypeError,
    InvalidOptionValueError,
    MissingOptionError,
    OptionsError,
    OptionsResolver,
    UndefinedOptionError,
)


@pytest.fixture
def resolver() -> OptionsResolver:
    r = OptionsResolver()
    r.set_defaults({"label": None, "required": False, "size": 10})
    r.set_allowed_types("label", ["null", "string"])
    r.set_allowed_types("required", "bool")
    r.set_allowed_types("size", "int")
    return r


# =============================================================
# Test: Defaults and required options
# =============================================================


class TestDefaults:

    def test_defaults_fill_missing_keys(self, resolver):
        assert resolver.resolve({}) == {"label": None, "required": False, "size": 10}

    def test_input_wins_over_default(self, resolver):
        resolved = resolver.resolve({"label": "Name", "size": 3})
        assert resolved["label"] == "Name"
        assert resolved["size"] == 3

    def test_input_not_mutated(self, resolver):
        options = {"label": "Name"}
        resolver.resolve(options)
        assert options == {"label": "Name"}

    def test_missing_required_option(self, resolver):
        resolver.set_required("name")
        with pytest.raises(MissingOptionError) as exc_info:
            resolver.resolve({})
        assert exc_info.value.options == ["name"]

    def test_required_satisfied_by_default(self, resolver):
        resolver.set_required("size")
        assert resolver.resolve({})["size"] == 10

    def test_required_satisfied_by_input(self, resolver):
        resolver.set_required(["name"])
        assert resolver.resolve({"name": "x"})["name"] == "x"

    def test_defined_option_without_default_is_omitted(self, resolver):
        resolver.set_defined("extra")
        assert "extra" not in resolver.resolve({})
        assert resolver.resolve({"extra": 1})["extra"] == 1


# =============================================================
# Test: Unknown keys
# =============================================================


class TestUndefinedOptions:

    def test_unknown_key_fails(self, resolver):
        with pytest.raises(UndefinedOptionError) as exc_info:
            resolver.resolve({"colour": "red"})
        assert exc_info.value.options == ["colour"]
        assert "colour" in str(exc_info.value)

    def test_allow_extra_options(self, resolver):
        resolver.allow_extra_options()
        assert resolver.resolve({"colour": "red"})["colour"] == "red"

    def test_configuring_undefined_option_fails(self, resolver):
        with pytest.raises(UndefinedOptionError):
            resolver.set_allowed_types("missing", "string")

    def test_options_errors_are_value_errors(self):
        assert issubclass(OptionsError, ValueError)


# =============================================================
# Test: Allowed types
# =============================================================


class TestAllowedTypes:

    def test_union_accepts_either_type(self, resolver):
        assert resolver.resolve({"label": None})["label"] is None
        assert resolver.resolve({"label": "x"})["label"] == "x"

    def test_type_mismatch_names_key_and_types(self, resolver):
        with pytest.raises(InvalidOptionTypeError) as exc_info:
            resolver.resolve({"label": 5})
        error = exc_info.value
        assert error.option == "label"
        assert error.expected == ["null", "string"]
        assert error.actual == "int"

    def test_bool_is_not_an_int(self, resolver):
        with pytest.raises(InvalidOptionTypeError):
            resolver.resolve({"size": True})

    def test_type_aliases(self):
        r = OptionsResolver().set_default("flag", False)
        r.set_allowed_types("flag", "boolean")
        assert r.resolve({"flag": True})["flag"] is True

    def test_python_class_as_type(self):
        class Widget:
            pass

        r = OptionsResolver().set_default("widget", None)
        r.set_allowed_types("widget", ["null", Widget])
        widget = Widget()
        assert r.resolve({"widget": widget})["widget"] is widget
        with pytest.raises(InvalidOptionTypeError) as exc_info:
            r.resolve({"widget": "nope"})
        assert "Widget" in exc_info.value.expected

    def test_unknown_type_name_fails_when_declared(self, resolver):
        with pytest.raises(OptionsError):
            resolver.set_allowed_types("size", "bigint")

    def test_add_allowed_types_extends_union(self, resolver):
        resolver.add_allowed_types("size", "null")
        assert resolver.resolve({"size": None})["size"] is None

    def test_array_accepts_lists_and_dicts(self):
        r = OptionsResolver().set_default("choices", [])
        r.set_allowed_types("choices", "array")
        assert r.resolve({"choices": {"a": 1}})["choices"] == {"a": 1}
        with pytest.raises(InvalidOptionTypeError):
            r.resolve({"choices": "a,b"})


# =============================================================
# Test: Allowed values and normalizers
# =============================================================


class TestAllowedValuesAndNormalizers:

    def test_enumeration(self):
        r = OptionsResolver().set_default("method", "POST")
        r.set_allowed_values("method", ["GET", "POST"])
        assert r.resolve({"method": "GET"})["method"] == "GET"
        with pytest.raises(InvalidOptionValueError) as exc_info:
            r.resolve({"method": "TRACE"})
        assert exc_info.value.allowed == ["GET", "POST"]

    def test_predicate(self, resolver):
        resolver.set_allowed_values("size", lambda v: v > 0)
        with pytest.raises(InvalidOptionValueError):
            resolver.resolve({"size": 0})

    def test_normalizer_receives_resolved_options(self, resolver):
        resolver.set_normalizer("label", lambda options, value: value or f"size {options['size']}")
        assert resolver.resolve({"size": 4})["label"] == "size 4"

    def test_normalizers_chain_in_order(self, resolver):
        resolver.set_normalizer("size", lambda options, value: value + 1)
        resolver.set_normalizer("size", lambda options, value: value * 10)
        assert resolver.resolve({"size": 1})["size"] == 20

    def test_normalizer_runs_after_type_check(self, resolver):
        calls = []
        resolver.set_normalizer("size", lambda options, value: calls.append(value) or value)
        with pytest.raises(InvalidOptionTypeError):
            resolver.resolve({"size": "big"})
        assert calls == []


# =============================================================
# Test: Idempotence and introspection
# =============================================================


class TestIntrospection:

    def test_resolve_is_idempotent(self, resolver):
        once = resolver.resolve({"label": "A"})
        assert resolver.resolve(once) == once

    def test_introspection(self, resolver):
        resolver.set_required("name")
        resolver.set_info("size", "Visible width")
        assert resolver.is_defined("size")
        assert resolver.has_default("size")
        assert resolver.get_default("size") == 10
        assert resolver.is_required("name")
        assert resolver.required_options == ["name"]
        assert resolver.defined_options == ["label", "required", "size", "name"]
        assert resolver.get_info("size") == "Visible width"

    def test_clear(self, resolver):
        resolver.clear()
        assert resolver.defined_options == []
        assert resolver.resolve({}) == {}
