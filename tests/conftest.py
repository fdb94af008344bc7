"""Shared test fixtures for lingua-progress."""

import datetime as dt

import pytest

from lingua_progress import VocabularyStore

TODAY = dt.date(2024, 3, 15)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def store():
    """Create an in-memory store for testing."""
    with VocabularyStore(":memory:") as st:
        yield st


@pytest.fixture
def other_store():
    """A second, independent in-memory store (the other device)."""
    with VocabularyStore(":memory:") as st:
        yield st


@pytest.fixture
def store_with_list(store):
    """Store with one list 'Spanish' pre-created."""
    word_list = store.create_word_list("Spanish", "Basic words")
    return store, word_list


@pytest.fixture
def store_with_data(store_with_list, today):
    """Store with a list holding two rated words."""
    store, word_list = store_with_list
    hola = store.add_word_with_familiarity(
        word_list.id, "hola", "hello", 2, source_language="es", today=today,
    )
    gato = store.add_word_with_familiarity(
        word_list.id, "gato", "cat", 4, source_language="es", today=today,
    )
    return store, word_list, hola, gato
