import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from candidate_management import CandidateStore
from config.registry import clear_models
from config.settings import settings
from services.sessions import InterviewRuntime
from services.timer import TimerController


@pytest.fixture(autouse=True)
def tmp_db(monkeypatch):
    td = tempfile.TemporaryDirectory()
    db_path = os.path.join(td.name, "test.db")
    monkeypatch.setattr(settings, "DB_PATH", db_path, raising=False)
    try:
        yield db_path
    finally:
        td.cleanup()


@pytest.fixture(autouse=True)
def clean_registry():
    clear_models()
    yield
    clear_models()


def manual_timer(on_expired):
    return TimerController(on_expired, threaded=False)


@pytest.fixture
def store(tmp_db):
    return CandidateStore(Path(tmp_db))


@pytest.fixture
def runtime(store):
    rt = InterviewRuntime(store, timer_factory=manual_timer)
    try:
        yield rt
    finally:
        rt.shutdown()


@pytest.fixture
def full_profile(store):
    return store.create_candidate(name="Ada Lovelace", email="ada@example.com", phone="+44 20 7946 0958")
