"""
Unit tests for the validation engine.

Tests cover:
- The registration scenario: valid payload, and exactly the failing keys
- Aggregation of every field's violations (no fail-fast)
- Rule-string parsing, unknown rules and bad rule parameters failing at
  configuration time, rules following a regex
- Rules after a failed required check still run, and tolerate empty input
- Custom messages per (field, rule), attributes, bail mode
- Size rules on numbers, numeric strings, strings and lists
- Format, date, cross-field and file rules
- Callback constraints reporting at arbitrary paths
- Validation groups and non-blocking levels
- ValidationException accessors
"""

import json
from datetime import date, timedelta

import pytest

from formgen.core.errors import ErrorLevel
from formgen.validation import (
    Callback,
    Constraint,
    InvalidRuleError,
    UnknownRuleError,
    ValidationException,
    Validator,
    parse_rules,
    register_rule,
    validate_data,
)
from formgen.validation.constraints import RULES, Email, Min, Regex
from formgen.validation.context import ExecutionContext

from conftest import REGISTRATION_RULES, VALID_REGISTRATION


def _errors(rules, data, **kwargs):
    return Validator(rules, **kwargs).validate(data).errors


# =============================================================
# Test: Registration scenario
# =============================================================


class TestRegistrationScenario:

    def test_valid_payload_returns_declared_keys_unmodified(self):
        result = validate_data(VALID_REGISTRATION, REGISTRATION_RULES)
        assert result == VALID_REGISTRATION

    def test_extra_keys_are_dropped(self):
        payload = {**VALID_REGISTRATION, "is_admin": True, "csrf": "x"}
        assert validate_data(payload, REGISTRATION_RULES) == VALID_REGISTRATION

    def test_age_and_role_errors_only(self):
        payload = {**VALID_REGISTRATION, "age": 15, "role": "superadmin"}
        with pytest.raises(ValidationException) as exc_info:
            validate_data(payload, REGISTRATION_RULES)
        errors = exc_info.value.errors()
        assert set(errors) == {"age", "role"}
        assert errors["age"] == ["The age must be between 18 and 100."]
        assert errors["role"] == ["The selected role is invalid."]

    def test_numeric_string_age_compares_by_value(self):
        payload = {**VALID_REGISTRATION, "age": "25"}
        assert Validator(REGISTRATION_RULES).passes(payload)

    def test_n_invalid_fields_produce_n_entries(self):
        payload = {"username": "x!", "email": "nope", "password": "short", "age": 150, "role": "root"}
        errors = _errors(REGISTRATION_RULES, payload)
        assert set(errors) == set(REGISTRATION_RULES)

    def test_field_can_carry_several_messages(self):
        errors = _errors(REGISTRATION_RULES, {**VALID_REGISTRATION, "username": "a!"})
        assert len(errors["username"]) == 2


# =============================================================
# Test: Rule parsing
# =============================================================


class TestRuleParsing:

    def test_rule_string_parses_in_order(self):
        constraints = parse_rules("required|email|min:5|max:255")
        assert [c.rule_name for c in constraints] == ["required", "email", "min", "max"]

    def test_unknown_rule_fails_at_configuration_time(self):
        with pytest.raises(UnknownRuleError) as exc_info:
            Validator({"name": "required|shiny"})
        assert exc_info.value.rule == "shiny"

    def test_list_of_rules_and_constraints(self):
        constraints = parse_rules(["required", Email(), "max:10"])
        assert [c.rule_name for c in constraints] == ["required", "email", "max"]

    def test_regex_with_pipe_and_comma_stays_whole(self):
        constraints = parse_rules("required|regex:/^(a|b){1,3}$/")
        assert [c.rule_name for c in constraints] == ["required", "regex"]
        assert constraints[1].pattern.pattern == "^(a|b){1,3}$"

    @pytest.mark.parametrize("rules, pattern", [
        ("regex:/^a/|max:5", "^a"),
        ("regex:/^(a|b)$/i|max:1", "^(a|b)$"),
        ("not_regex:/x|y/ | max:5", "x|y"),
    ])
    def test_rules_after_a_delimited_regex_are_kept(self, rules, pattern):
        constraints = parse_rules(rules)
        assert [c.rule_name for c in constraints][1:] == ["max"]
        assert constraints[0].pattern.pattern == pattern

    def test_rules_after_a_delimited_regex_still_run(self):
        assert _errors({"code": "regex:/^a/|max:3"}, {"code": "abc"}) == {}
        assert list(_errors({"code": "regex:/^a/|max:3"}, {"code": "abcd"})) == ["code"]

    def test_undelimited_regex_takes_the_rest(self):
        constraints = parse_rules("required|regex:^(a|max:5)$")
        assert [c.rule_name for c in constraints] == ["required", "regex"]
        assert constraints[1].pattern.pattern == "^(a|max:5)$"

    def test_aliases(self):
        assert parse_rules("alpha_num")[0].rule_name == "alpha_numeric"
        assert parse_rules("int")[0].rule_name == "integer"

    def test_bad_parameters_are_configuration_errors(self):
        with pytest.raises(ValueError):
            parse_rules("min:abc")
        with pytest.raises(ValueError):
            parse_rules("between:5,1")

    @pytest.mark.parametrize("rule, name", [
        ("between:5,1", "between"),
        ("min:abc", "min"),
        ("regex:[", "regex"),
        ("digits:x", "digits"),
    ])
    def test_bad_parameters_name_the_rule(self, rule, name):
        with pytest.raises(InvalidRuleError) as exc_info:
            Validator({"field": rule})
        assert exc_info.value.rule == name
        assert str(exc_info.value).startswith(f"Invalid parameters for rule '{name}'")

    def test_register_custom_rule(self):
        class Even(Constraint):
            rule_name = "even"
            default_message = "The {{ attribute }} must be even."

            def passes(self, value, context):
                return int(value) % 2 == 0

        register_rule("even", Even)
        try:
            assert _errors({"n": "even"}, {"n": 3}) == {"n": ["The n must be even."]}
            assert _errors({"n": "even"}, {"n": 4}) == {}
        finally:
            RULES.pop("even")


# =============================================================
# Test: Ordering and empty input
# =============================================================


class TestOrderingAndEmptyValues:

    def test_rules_after_failed_required_still_run(self):
        seen = []

        class Spy(Constraint):
            rule_name = "spy"
            implicit = True

            def passes(self, value, context):
                seen.append(value)
                return True

        Validator({"name": ["required", Spy()]}).validate({})
        assert seen == [None]

    def test_non_required_rules_pass_on_missing_input(self):
        assert _errors({"email": "email|min:5"}, {}) == {}
        assert _errors({"email": "email|min:5"}, {"email": ""}) == {}

    def test_required_message_only_for_missing_value(self):
        assert _errors({"email": "required|email|min:5"}, {}) == {
            "email": ["The email field is required."]
        }

    def test_bail_stops_at_first_failure(self):
        errors = _errors({"username": "alpha|min:5"}, {"username": "a1"}, bail=True)
        assert len(errors["username"]) == 1


# =============================================================
# Test: Messages
# =============================================================


class TestMessages:

    def test_custom_message_for_field_and_rule(self):
        errors = _errors(
            {"email": "required|email"},
            {"email": "bad"},
            messages={"email.email": "Please give us a real address."},
        )
        assert errors == {"email": ["Please give us a real address."]}

    def test_custom_message_does_not_leak_to_other_rules(self):
        errors = _errors(
            {"email": "required|email"},
            {},
            messages={"email.email": "Please give us a real address."},
        )
        assert errors == {"email": ["The email field is required."]}

    def test_field_wide_message(self):
        errors = _errors({"age": "integer|min:18"}, {"age": 3}, messages={"age": "Too young."})
        assert errors == {"age": ["Too young."]}

    def test_attribute_display_names(self):
        errors = _errors({"email": "required"}, {}, attributes={"email": "E-mail address"})
        assert errors == {"email": ["The E-mail address field is required."]}

    def test_constraint_message_override(self):
        errors = _errors({"code": [Regex("^[A-Z]{3}$", message="Use three capitals.")]}, {"code": "ab"})
        assert errors == {"code": ["Use three capitals."]}


# =============================================================
# Test: Size rules
# =============================================================


class TestSizeRules:

    def test_string_length(self):
        assert _errors({"name": "min:3"}, {"name": "ab"}) == {
            "name": ["The name must be at least 3 characters."]
        }

    def test_numeric_string_without_numeric_rule_uses_length(self):
        assert _errors({"code": "max:3"}, {"code": "12345"}) != {}
        assert _errors({"code": "numeric|max:99999"}, {"code": "12345"}) == {}

    def test_list_item_count(self):
        assert _errors({"tags": "array|max:2"}, {"tags": ["a", "b", "c"]}) == {
            "tags": ["The tags may not have more than 2 items."]
        }

    def test_min_length_and_max_length(self):
        assert _errors({"pin": "min_length:4|max_length:4"}, {"pin": "1234"}) == {}
        assert "pin" in _errors({"pin": "min_length:4"}, {"pin": "12"})


# =============================================================
# Test: Format, type and enumeration rules
# =============================================================


class TestFormatRules:

    @pytest.mark.parametrize("rule,good,bad", [
        ("email", "a.b@example.org", "a@b"),
        ("url", "https://example.org/x", "example.org"),
        ("ip", "192.168.0.1", "999.1.1.1"),
        ("ip:ipv6", "::1", "127.0.0.1"),
        ("alpha", "abc", "ab1"),
        ("alpha_num", "ab1", "ab-1"),
        ("digits:4", "0042", "42"),
        ("digits", "123", "12a"),
        ("json", '{"a": 1}', "{a: 1}"),
        ("integer", "42", "4.2"),
        ("numeric", "4.2", "four"),
        ("boolean", "1", "maybe"),
        ("string", "x", 5),
        ("type:array", [1], "x"),
        ("in:a,b", "a", "c"),
        ("not_in:a,b", "c", "a"),
        ("regex:/^x+$/i", "XX", "xy"),
        ("not_regex:/\\d/", "abc", "a1"),
        ("date", "2024-02-29", "2024-02-30"),
        ("date_format:d/m/Y", "29/02/2024", "2024-02-29"),
    ])
    def test_rule(self, rule, good, bad):
        assert _errors({"f": rule}, {"f": good}) == {}
        assert "f" in _errors({"f": rule}, {"f": bad})

    def test_in_checks_every_item_of_a_list(self):
        assert _errors({"f": "in:a,b"}, {"f": ["a", "b"]}) == {}
        assert "f" in _errors({"f": "in:a,b"}, {"f": ["a", "z"]})

    def test_in_compares_loosely(self):
        assert _errors({"f": "in:1,2"}, {"f": 2}) == {}

    def test_unknown_type_name(self):
        with pytest.raises(ValueError):
            parse_rules("type:decimal")


# =============================================================
# Test: Date and cross-field rules
# =============================================================


class TestDateAndCrossFieldRules:

    def test_after_today(self):
        tomorrow = (date.today() + timedelta(days=1)).isoformat()
        yesterday = (date.today() - timedelta(days=1)).isoformat()
        assert _errors({"start": "after:today"}, {"start": tomorrow}) == {}
        assert _errors({"start": "after:today"}, {"start": yesterday}) == {
            "start": ["The start must be a date after today."]
        }

    def test_before_or_equal_other_field(self):
        rules = {"start": "date|before_or_equal:end", "end": "date"}
        assert _errors(rules, {"start": "2024-01-01", "end": "2024-01-01"}) == {}
        assert "start" in _errors(rules, {"start": "2024-02-01", "end": "2024-01-01"})

    def test_confirmed(self):
        rules = {"password": "required|confirmed"}
        assert _errors(rules, {"password": "abc", "password_confirmation": "abc"}) == {}
        assert _errors(rules, {"password": "abc", "password_confirmation": "abd"}) == {
            "password": ["The password confirmation does not match."]
        }

    def test_same(self):
        rules = {"repeat": "same:email"}
        assert "repeat" in _errors(rules, {"email": "a@b.c", "repeat": "x@b.c"})

    def test_nested_paths(self):
        rules = {"address.city": "required", "address.zip": "digits:5"}
        errors = _errors(rules, {"address": {"zip": "123"}})
        assert set(errors) == {"address.city", "address.zip"}

    def test_file_rules(self):
        rules = {"upload": "file_size:1000|file_type:image/png,image/jpeg"}
        ok = {"size": 500, "type": "image/png"}
        too_big = {"size": 5000, "type": "image/png"}
        wrong_type = {"size": 10, "content_type": "application/pdf"}
        assert _errors(rules, {"upload": ok}) == {}
        assert _errors(rules, {"upload": too_big}) == {
            "upload": ["The upload may not be greater than 1000 bytes."]
        }
        assert _errors(rules, {"upload": wrong_type}) == {
            "upload": ["The upload must be a file of type: image/png, image/jpeg."]
        }


# =============================================================
# Test: Callback constraints
# =============================================================


def passwords_match(data, context):
    if data.get("password") != data.get("password_repeat"):
        (
            context.build_violation("{{ first }} and {{ second }} differ.")
            .at_path("password_repeat")
            .set_parameter("first", "Password")
            .set_parameter("second", "repeat")
            .add_violation()
        )


class TestCallback:

    def test_callback_reports_at_any_path(self):
        validator = Validator({"password": "required"}, constraints=[Callback(passwords_match)])
        errors = validator.validate({"password": "a", "password_repeat": "b"}).errors
        assert errors == {"password_repeat": ["Password and repeat differ."]}

    def test_callback_in_field_rules_sees_full_data(self):
        seen = {}

        def capture(data, context):
            seen.update(data)

        Validator({"a": [Callback(capture)]}).validate({"a": 1, "b": 2})
        assert seen == {"a": 1, "b": 2}

    def test_form_level_violation_uses_reserved_key(self):
        def reject(data, context):
            context.add_violation("Nothing may be submitted today.")

        errors = Validator({}, constraints=[Callback(reject)]).validate({}).errors
        assert errors == {"_form": ["Nothing may be submitted today."]}

    def test_callback_requires_callable(self):
        with pytest.raises(ValueError):
            Callback("not callable")


# =============================================================
# Test: Groups and levels
# =============================================================


class TestGroupsAndLevels:

    def test_constraints_outside_active_groups_are_skipped(self):
        rules = {"email": [Min(100, groups={"Strict"}), "email"]}
        validator = Validator(rules)
        assert validator.validate({"email": "a@b.co"}).valid
        assert not validator.validate({"email": "a@b.co"}, groups={"Strict"}).valid

    def test_warnings_do_not_block(self):
        weak = Min(12, message="Consider a longer password.", level=ErrorLevel.WARNING)
        result = Validator({"password": ["required", weak]}).validate({"password": "short-pass"})
        assert result.valid is True
        assert result.errors == {}
        assert result.warnings == {"password": ["Consider a longer password."]}

    def test_result_serializes_without_violations(self):
        result = Validator({"a": "required"}).validate({})
        dumped = json.loads(result.model_dump_json())
        assert set(dumped) == {"valid", "data", "errors", "warnings"}


# =============================================================
# Test: ValidationException and context
# =============================================================


class TestValidationException:

    def test_accessors(self):
        error = ValidationException({"a": ["A1", "A2"], "b": ["B1"]})
        assert error.has_errors()
        assert error.has_error("a")
        assert not error.has_error("c")
        assert error.get_field_errors("a") == ["A1", "A2"]
        assert error.first() == "A1"
        assert error.first("b") == "B1"
        assert error.all() == ["A1", "A2", "B1"]
        assert json.loads(error.to_json())["errors"]["b"] == ["B1"]

    def test_errors_returns_a_copy(self):
        error = ValidationException({"a": ["A1"]})
        error.errors()["a"].append("mutated")
        assert error.get_field_errors("a") == ["A1"]

    def test_violation_builder_defaults_to_current_path(self):
        context = ExecutionContext({"name": "x"})
        context.current_path = "name"
        context.current_attribute = "Name"
        violation = context.build_violation("{{ attribute }} is bad.").add_violation()
        assert violation.path == "name"
        assert violation.message == "Name is bad."
        assert context.has_violations("name")
        assert context.violations_at("name") == [violation]
