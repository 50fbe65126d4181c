"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown
- FastAPI test client with a supervisor that records dispatches
- Fake LLM and storage backends for the queue executors
- Sample job postings and candidates
"""

import os

# Must be set before the app is imported: settings and the engine are built at import time
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
os.environ.setdefault("ENABLE_SCHEDULERS", "false")

import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.storage import StorageBackend, StorageError
from app.core.task_supervisor import TaskSupervisor
from app.models.candidate import Candidate, CandidateStatus
from app.models.job_posting import JobPosting, JobPostingStatus
from app.models.tag import Tag, TagCategory
from app.services.llm_client import LLMError
from app.services.match_progress import MatchProgressStore
from app.tasks.context import ExecutionContext
from main import app


# Use in-memory SQLite for testing (fast, isolated)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeLLM:
    """
    Stands in for LLMClient.

    `responder(system_prompt, user_prompt)` returns the parsed JSON answer
    or raises. Tracks how many calls were in flight at once.
    """

    def __init__(self, responder: Optional[Callable[[str, str], Dict[str, Any]]] = None, delay: float = 0):
        self.responder = responder or (lambda system, user: {})
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def complete_json(self, system_prompt, user_prompt, temperature=0.3, timeout=None):
        self.calls.append(user_prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.responder(system_prompt, user_prompt)
        finally:
            self.in_flight -= 1


class FakeStorage(StorageBackend):
    """In-memory object storage"""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    def upload(self, data: bytes, object_name: str, content_type: str) -> str:
        self.objects[object_name] = data
        return object_name

    def download(self, object_name: str) -> bytes:
        if object_name not in self.objects:
            raise StorageError(f"File not found: {object_name}")
        return self.objects[object_name]

    def delete(self, object_name: str) -> bool:
        return self.objects.pop(object_name, None) is not None

    def exists(self, object_name: str) -> bool:
        return object_name in self.objects


class RecordingSupervisor(TaskSupervisor):
    """Supervisor whose dispatch only records what would have been started"""

    def __init__(self, ctx: ExecutionContext):
        super().__init__(ctx=ctx)
        self.dispatched: List[tuple] = []

    def dispatch(self, kind, task_id, claimed=False, reporter=None, progress=None):
        self.dispatched.append((kind, task_id, claimed))
        if reporter is not None:
            reporter.close()
        return None


def failing_llm(system_prompt, user_prompt):
    raise LLMError("LLM request timed out after 60s")


@pytest.fixture
def db_session():
    """
    Create a fresh database session for each test.
    Tables are dropped after the test completes.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def execution_context(db_session, fake_llm, fake_storage):
    """Executor collaborators bound to the test database"""
    return ExecutionContext(
        session_factory=TestingSessionLocal,
        storage=fake_storage,
        llm=fake_llm,
        progress=MatchProgressStore(cleanup_delay=60),
    )


@pytest.fixture
def supervisor(execution_context):
    return RecordingSupervisor(execution_context)


@pytest.fixture
def client(db_session, supervisor):
    """
    FastAPI test client with overridden database dependency and a
    recording task supervisor.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        app.state.task_supervisor = supervisor
        yield test_client

    app.dependency_overrides.clear()


def make_tag(db, name: str, category: TagCategory = TagCategory.SKILL) -> Tag:
    tag = db.query(Tag).filter(Tag.name == name, Tag.category == category).first()
    if tag is None:
        tag = Tag(name=name, category=category)
        db.add(tag)
        db.flush()
    return tag


@pytest.fixture
def sample_job(db_session):
    """An ACTIVE backend job posting tagged Python / FastAPI / PostgreSQL"""
    job = JobPosting(
        title="Senior Python Developer",
        department="Engineering",
        description="Build and operate our recruiting platform APIs.",
        requirements="5+ years of Python, FastAPI and PostgreSQL.",
        status=JobPostingStatus.ACTIVE,
    )
    job.tags = [
        make_tag(db_session, "Python"),
        make_tag(db_session, "FastAPI"),
        make_tag(db_session, "PostgreSQL"),
    ]
    db_session.add(job)
    db_session.commit()
    db_session.refresh(job)
    return job


@pytest.fixture
def make_candidate(db_session):
    """Factory for candidates with the given skill tags"""
    counter = {"n": 0}

    def _make(name: Optional[str] = None, tags: Optional[List[str]] = None,
              status: CandidateStatus = CandidateStatus.NEW) -> Candidate:
        counter["n"] += 1
        candidate = Candidate(
            name=name or f"Candidate {counter['n']}",
            email=f"candidate{counter['n']}@example.com",
            work_experience="Backend developer",
            status=status,
        )
        candidate.tags = [make_tag(db_session, tag) for tag in (tags or [])]
        db_session.add(candidate)
        db_session.commit()
        db_session.refresh(candidate)
        return candidate

    return _make
