"""Shared fixtures: an isolated in-memory database and a ClinicService over it."""
import os

# Must be set before anything imports app.core.config
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SEED_DEMO_DATA", "false")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: F401, E402
from app.models.base import Base  # noqa: E402
from app.services.clinic_service import ClinicService  # noqa: E402
from app.services.store import SqlAlchemyStore  # noqa: E402


@pytest.fixture()
def test_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture()
def store(db_session):
    return SqlAlchemyStore(db_session)


@pytest.fixture()
def service(store):
    return ClinicService(
        store,
        low_stock_threshold=10,
        orphan_policy="drop",
        write_back=True,
        report_number_start=2001,
    )


@pytest.fixture()
def patient(service):
    return service.register_patient(
        {"name": "Ali Khan", "age": 9, "gender": "Male", "phone_number": "0300111222", "category": "Thalassemic"}
    )


@pytest.fixture()
def medicine(service):
    return service.create_medicine("Paracetamol", "tablet", quantity=20)
