"""
Translation of labels and validation messages.

FormTranslator holds per-locale catalogs of dotted keys. Catalogs can be
registered from dicts or loaded lazily from ``forms.<locale>.yaml``
files in resource directories. Lookups fall back to the fallback locale
and finally to the key itself, so an untranslated message template is
still usable as-is.
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

import yaml

from formgen.core.utils import interpolate

logger = logging.getLogger(__name__)

CATALOG_PREFIX = "forms"
CATALOG_SUFFIXES = (".yaml", ".yml")


class Translator(Protocol):
    def trans(self, key: str, parameters: Mapping[str, Any] | None = None, locale: str | None = None) -> str: ...


def flatten_catalog(catalog: Mapping[str, Any], prefix: str = "") -> dict[str, str]:
    """Flatten nested catalog keys into dotted keys."""
    flat: dict[str, str] = {}
    for key, value in catalog.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten_catalog(value, full_key))
        elif value is not None:
            flat[full_key] = str(value)
    return flat


def load_catalog(path: str | Path) -> dict[str, str]:
    """Load and flatten a YAML catalog file.

    Returns an empty catalog if the file is unreadable or not a mapping.
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
        catalog = yaml.safe_load(content)
    except OSError as e:
        logger.warning("Failed to read translation catalog %s: %s", path, e)
        return {}
    except yaml.YAMLError as e:
        logger.warning("Failed to parse translation catalog %s: %s", path, e)
        return {}

    if catalog is None:
        return {}
    if not isinstance(catalog, Mapping):
        logger.warning("Translation catalog %s is not a mapping, ignoring", path)
        return {}
    return flatten_catalog(catalog)


class FormTranslator:
    """Catalog-based translator with locale fallback.

    Args:
        locale: Locale used when none is passed to ``trans``.
        fallback_locale: Locale consulted when a key is missing.
        translations: Optional initial catalogs, ``{locale: {key: text}}``.
    """

    def __init__(
        self,
        locale: str = "en_US",
        fallback_locale: str | None = "en_US",
        translations: Mapping[str, Mapping[str, Any]] | None = None,
    ):
        self.locale = locale
        self.fallback_locale = fallback_locale
        self._catalogs: dict[str, dict[str, str]] = {}
        self._resource_dirs: list[Path] = []
        self._loaded: set[str] = set()
        for catalog_locale, catalog in (translations or {}).items():
            self.add_translations(catalog_locale, catalog)

    def set_locale(self, locale: str) -> None:
        self.locale = locale

    def add_translations(self, locale: str, translations: Mapping[str, Any]) -> "FormTranslator":
        self._catalogs.setdefault(locale, {}).update(flatten_catalog(translations))
        return self

    def add_resource(self, directory: str | Path) -> "FormTranslator":
        """Register a directory holding ``forms.<locale>.yaml`` catalogs."""
        self._resource_dirs.append(Path(directory))
        self._loaded.clear()
        return self

    def _catalog(self, locale: str) -> dict[str, str]:
        if locale not in self._loaded:
            self._loaded.add(locale)
            for directory in self._resource_dirs:
                for suffix in CATALOG_SUFFIXES:
                    path = directory / f"{CATALOG_PREFIX}.{locale}{suffix}"
                    if path.is_file():
                        loaded = load_catalog(path)
                        # Explicitly added translations win over files.
                        merged = {**loaded, **self._catalogs.get(locale, {})}
                        self._catalogs[locale] = merged
                        logger.debug("Loaded %d translations from %s", len(loaded), path)
        return self._catalogs.get(locale, {})

    def _lookup(self, key: str, locale: str) -> str | None:
        for candidate in (locale, self.fallback_locale):
            if candidate is None:
                continue
            text = self._catalog(candidate).get(key)
            if text is not None:
                return text
        return None

    def trans(self, key: str, parameters: Mapping[str, Any] | None = None, locale: str | None = None) -> str:
        """Translate a key, interpolating ``{{ name }}`` and ``%name%`` placeholders.

        Returns the key itself (interpolated) when no translation exists.
        """
        text = self._lookup(key, locale or self.locale)
        return interpolate(text if text is not None else key, parameters)

    def has(self, key: str, locale: str | None = None) -> bool:
        return self._lookup(key, locale or self.locale) is not None

    def all(self, locale: str | None = None) -> dict[str, str]:
        return dict(self._catalog(locale or self.locale))
