# tests/conftest.py

import pytest

from wizard_backend.database import init_db, make_engine, make_session_factory
from wizard_backend.job_store import JobStore
from wizard_backend.schemas import JobSubmission


@pytest.fixture
def session_factory(tmp_path):
    """A fresh SQLite file per test, shared safely between the loop and worker threads."""
    engine = make_engine(f"sqlite:///{tmp_path / 'jobs.db'}")
    init_db(bind=engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def valid_body():
    return {
        "sessionId": "s1",
        "videoType": "tutorial",
        "style": "modern",
        "duration": "short",
        "format": "landscape",
        "userPrompt": "Tampilkan cara membuat kopi tubruk step by step dengan detail",
    }


@pytest.fixture
def submission():
    return JobSubmission(
        session_id="s1",
        video_type="tutorial",
        style="modern",
        duration="short",
        format="landscape",
        user_prompt="Tampilkan cara membuat kopi tubruk step by step dengan detail",
    )


@pytest.fixture(autouse=True)
def no_provider_key(monkeypatch):
    """Tests run in demo mode unless they set a credential themselves."""
    monkeypatch.delenv("REPLICATE_API_TOKEN", raising=False)
    monkeypatch.delenv("REPLICATE_API_KEY", raising=False)
