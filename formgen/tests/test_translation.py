"""
Unit tests for FormTranslator and catalog loading.

Tests cover:
- Lookups with placeholders, locale fallback and key passthrough
- Nested catalogs flattened to dotted keys
- Lazy loading of forms.<locale>.yaml resources
- Broken catalog files
"""

import pytest

from formgen.core.translation import FormTranslator, flatten_catalog, load_catalog


@pytest.fixture
def translator() -> FormTranslator:
    return FormTranslator(
        locale="fr",
        fallback_locale="en",
        translations={
            "fr": {"Email": "Courriel", "greeting": "Bonjour {{ name }}"},
            "en": {"Email": "Email", "form": {"save": "Save"}},
        },
    )


class TestFormTranslator:

    def test_translates_in_current_locale(self, translator):
        assert translator.trans("Email") == "Courriel"

    def test_parameters(self, translator):
        assert translator.trans("greeting", {"name": "Ada"}) == "Bonjour Ada"

    def test_falls_back_to_fallback_locale(self, translator):
        assert translator.trans("form.save") == "Save"

    def test_missing_key_returns_key(self, translator):
        assert translator.trans("The %field% is required.", {"field": "name"}) == "The name is required."
        assert not translator.has("Unknown")

    def test_explicit_locale(self, translator):
        assert translator.trans("Email", locale="en") == "Email"

    def test_set_locale(self, translator):
        translator.set_locale("en")
        assert translator.trans("Email") == "Email"

    def test_all(self, translator):
        assert translator.all("en") == {"Email": "Email", "form.save": "Save"}


class TestCatalogs:

    def test_flatten(self):
        assert flatten_catalog({"a": {"b": "x", "c": None}, "d": 1}) == {"a.b": "x", "d": "1"}

    def test_load_yaml_resource(self, tmp_path):
        (tmp_path / "forms.de.yaml").write_text(
            'labels:\n  email: E-Mail\n"The {{ attribute }} field is required.": "Das Feld {{ attribute }} ist erforderlich."\n',
            encoding="utf-8",
        )
        translator = FormTranslator("de").add_resource(tmp_path)
        assert translator.trans("labels.email") == "E-Mail"
        assert (
            translator.trans("The {{ attribute }} field is required.", {"attribute": "Name"})
            == "Das Feld Name ist erforderlich."
        )

    def test_explicit_translations_win_over_files(self, tmp_path):
        (tmp_path / "forms.de.yml").write_text("Save: Speichern\n", encoding="utf-8")
        translator = FormTranslator("de", translations={"de": {"Save": "Sichern"}}).add_resource(tmp_path)
        assert translator.trans("Save") == "Sichern"

    def test_broken_catalog_is_empty(self, tmp_path):
        path = tmp_path / "forms.de.yaml"
        path.write_text("key: [unclosed\n", encoding="utf-8")
        assert load_catalog(path) == {}

    def test_non_mapping_catalog_is_empty(self, tmp_path):
        path = tmp_path / "forms.de.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        assert load_catalog(path) == {}

    def test_missing_file_is_empty(self, tmp_path):
        assert load_catalog(tmp_path / "nope.yaml") == {}
