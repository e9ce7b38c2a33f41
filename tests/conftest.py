"""Shared fixtures – an in-memory SQLite store and fake event publishers."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("KAFKA_ENABLED", "false")

import pytest  # noqa: E402
from sqlalchemy import create_engine, func, select  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ingestion.models.database import Base  # noqa: E402
from ingestion.models.job import UploadJob  # noqa: E402,F401
from ingestion.models.patient import Patient  # noqa: E402
from ingestion.services.encryption import EncryptionService  # noqa: E402
from ingestion.services.events import IngestionEvents  # noqa: E402


class RecordingPublisher:
    def __init__(self):
        self.sent = []

    def publish(self, topic, key, event):
        self.sent.append((topic, key, event))

    def flush(self, timeout=10.0):
        pass

    def of_type(self, event_type):
        return [event for _, _, event in self.sent if event.event_type == event_type]


class FailingPublisher:
    def __init__(self):
        self.attempts = 0

    def publish(self, topic, key, event):
        self.attempts += 1
        raise RuntimeError("broker unavailable")

    def flush(self, timeout=10.0):
        pass


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def failing_publisher():
    return FailingPublisher()


@pytest.fixture
def events(publisher):
    return IngestionEvents(publisher)


@pytest.fixture
def encryption():
    return EncryptionService()


@pytest.fixture
def add_patient(session_factory):
    """Insert a patient directly and return its id."""

    def _add(first_name="Jane", last_name="Doe", email=None):
        with session_factory() as db:
            patient = Patient(
                first_name=first_name,
                last_name=last_name,
                full_name=f"{first_name} {last_name}",
                email=email,
            )
            db.add(patient)
            db.commit()
            return patient.id

    return _add


@pytest.fixture
def count_rows(session_factory):
    def _count(model):
        with session_factory() as db:
            return db.scalar(select(func.count()).select_from(model))

    return _count
