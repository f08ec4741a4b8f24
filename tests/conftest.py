# tests/conftest.py

import pytest

from gradecalc.models import Settings
from gradecalc.persistence import MemoryBlobStore
from gradecalc.session import GradebookSession
from gradecalc.store import SheetStore


@pytest.fixture
def default_settings():
    return Settings(min_grade=1.0, passing_grade=4.0, max_grade=7.0)


@pytest.fixture
def store():
    return SheetStore()


@pytest.fixture
def sample_sheet(store):
    """A sheet with three evaluations and three students, partially graded."""
    sheet = store.create_sheet("Matemáticas")
    store.add_evaluation(sheet.id, "Prueba 1", 10, 60)
    store.add_evaluation(sheet.id, "Prueba 2", 20, 50)
    store.add_evaluation(sheet.id, "Control", 5, 60)
    for name in ("Ana", "Benito", "Carla"):
        store.add_student(sheet.id, name)

    for row, scores in enumerate([("8", "10", ""), ("3", "", "5"), ("", "20", "2,5")]):
        for col, raw in enumerate(scores):
            store.set_score(sheet.id, row, col, raw)
            store.commit_score(sheet.id, row, col)
    return sheet


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def session(blob_store):
    return GradebookSession(blob_store)
