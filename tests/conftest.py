# tests/conftest.py
from unittest.mock import MagicMock

import pytest


class FakeDatabase:
    """Hands out one MagicMock collection per name, like db[name] on pymongo"""

    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        if name not in self.collections:
            collection = MagicMock(name=name)
            collection.name = name
            self.collections[name] = collection
        return self.collections[name]

    def list_collection_names(self):
        return list(self.collections)


def make_cursor(docs):
    cursor = MagicMock()
    cursor.__iter__.return_value = iter(list(docs))
    return cursor


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def reporter():
    return MagicMock()
