"""
Shared test fixtures for the formgen test suite.

Provides a default FormFactory, a CSRF-enabled factory backed by the
in-memory token store, and the registration-form rules used by several
validation scenarios.
"""

import pytest

from formgen.core.data_sources import ArrayDataProvider
from formgen.core.form import FormFactory
from formgen.core.security import CsrfTokenManager, InMemoryTokenStore

REGISTRATION_RULES = {
    "username": "required|alpha_num|between:3,20",
    "email": "required|email",
    "password": "required|min:8",
    "age": "integer|between:18,100",
    "role": "required|in:user,admin",
}

VALID_REGISTRATION = {
    "username": "jdoe42",
    "email": "jdoe@example.com",
    "password": "s3cretpassword",
    "age": 30,
    "role": "user",
}


@pytest.fixture
def factory() -> FormFactory:
    return FormFactory()


@pytest.fixture
def csrf_manager() -> CsrfTokenManager:
    return CsrfTokenManager(InMemoryTokenStore(), ttl_seconds=60)


@pytest.fixture
def csrf_factory(csrf_manager) -> FormFactory:
    return FormFactory(csrf_manager=csrf_manager)


@pytest.fixture
def countries() -> ArrayDataProvider:
    return ArrayDataProvider([
        {"id": 1, "code": "de", "name": "Germany", "region": "eu"},
        {"id": 2, "code": "fr", "name": "France", "region": "eu"},
        {"id": 3, "code": "jp", "name": "Japan", "region": "asia"},
    ])
