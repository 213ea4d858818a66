"""Shared fixtures: in-memory database, record factories and collaborator fakes."""

from __future__ import annotations

from datetime import timedelta
from typing import Callable, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dreamboat.core.database import Base, new_id, utcnow
from dreamboat.models import GeneratedResult, PaymentCredit, SourcePhoto, ValidationStatus
from dreamboat.services.gemini_image import SynthesisResponse
from dreamboat.workers.base import RetryableError


@pytest.fixture
def engine():
    """Single-connection in-memory SQLite engine."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_photo(db):
    """Factory for source photos (validated by default)."""

    def _make(owner_id: str = "user_1", status: str = ValidationStatus.VALIDATED, key: Optional[str] = None):
        photo_id = new_id("photo")
        photo = SourcePhoto(
            id=photo_id,
            owner_id=owner_id,
            storage_key=key or f"uploads/{owner_id}/{photo_id}.jpg",
            validation_status=status,
            validation_warnings=[],
        )
        db.add(photo)
        db.commit()
        return photo

    return _make


@pytest.fixture
def make_credit(db):
    """Factory for payment credits; minutes_ago orders them by paid_at."""

    def _make(owner_id: str = "user_1", minutes_ago: int = 0, redeemed: bool = False, transaction_id: Optional[str] = None):
        credit = PaymentCredit(
            id=new_id("pay"),
            owner_id=owner_id,
            transaction_id=transaction_id or new_id("iap_ios"),
            amount=9999,
            currency="usd",
            redeemed=redeemed,
            paid_at=utcnow() - timedelta(minutes=minutes_ago),
            redeemed_at=utcnow() if redeemed else None,
        )
        db.add(credit)
        db.commit()
        return credit

    return _make


@pytest.fixture
def make_result(db, make_photo):
    """Factory for generated results outside any job."""

    def _make(owner_id: str = "user_1", scenario: str = "beach", photo: Optional[SourcePhoto] = None, **fields):
        photo = photo or make_photo(owner_id)
        result = GeneratedResult(
            id=new_id("res"),
            owner_id=owner_id,
            source_photo_id=photo.id,
            scenario=scenario,
            prompt=f"{scenario} prompt",
            storage_key=f"generated/{new_id('req')}.jpg",
            **fields,
        )
        db.add(result)
        db.commit()
        return result

    return _make


class FakeSynthesizer:
    """ImageSynthesizer double that records calls and fails on demand."""

    def __init__(self, fail_when: Optional[Callable[[str, str], bool]] = None):
        self.fail_when = fail_when or (lambda source_key, prompt: False)
        self.calls: List[tuple] = []

    async def generate(self, source_key: str, prompt: str) -> SynthesisResponse:
        self.calls.append((source_key, prompt))
        if self.fail_when(source_key, prompt):
            raise RetryableError(f"provider error for {source_key}")
        request_id = f"req_{len(self.calls)}"
        return SynthesisResponse(result_key=f"generated/{request_id}.jpg", request_id=request_id)


class FakeAnalyzer:
    """ContentAnalyzer double returning queued responses (or raising queued errors)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0

    async def analyze(self, image_bytes: bytes, criteria_prompt: str) -> str:
        self.calls += 1
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeStorage:
    def __init__(self, data: bytes = b"\xff\xd8fake-jpeg", missing: tuple = ()):
        self.data = data
        self.missing = set(missing)
        self.downloads: List[str] = []

    async def exists(self, key: str) -> bool:
        return key not in self.missing

    async def download_bytes(self, locator: str) -> bytes:
        self.downloads.append(locator)
        return self.data


class RecordingSleep:
    """Awaitable sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def storage():
    return FakeStorage()
