import os
import sqlite3
import uuid
from datetime import datetime

import pytest
from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base

load_dotenv(os.path.join(os.getcwd(), ".env"))

# Register UUID adapter for SQLite - store as string
sqlite3.register_adapter(uuid.UUID, lambda u: str(u))

# Monkey-patch SQLAlchemy's UUID type for SQLite compatibility
# This must happen before any models are imported
from sqlalchemy.sql import sqltypes  # noqa: E402

_original_uuid_bind_processor = sqltypes.Uuid.bind_processor
_original_uuid_result_processor = sqltypes.Uuid.result_processor


def _sqlite_uuid_bind_processor(self, dialect):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return str(value)
                return str(uuid.UUID(value)) if value else None
            return None
        return process
    return _original_uuid_bind_processor(self, dialect)


def _sqlite_uuid_result_processor(self, dialect, coltype):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return value
                return uuid.UUID(value) if value else None
            return None
        return process
    return _original_uuid_result_processor(self, dialect, coltype)


sqltypes.Uuid.bind_processor = _sqlite_uuid_bind_processor
sqltypes.Uuid.result_processor = _sqlite_uuid_result_processor

import app.models  # noqa: F401,E402
from app.models.activity import TLDailyActivity  # noqa: E402
from app.models.dataset import DashboardDataset, DatasetType, SalesFLP  # noqa: E402
from app.models.kpi import InputSource, KPIItem, Pillar  # noqa: E402
from app.models.person import Person, PersonRole  # noqa: E402
from app.services.evaluation.catalog import kpi_catalog  # noqa: E402


def _resolve_test_database_url() -> str | None:
    def _running_in_container() -> bool:
        return os.path.exists("/.dockerenv") or os.getenv("RUNNING_IN_DOCKER") == "1"

    raw_url = os.getenv("TEST_DATABASE_URL")
    if not raw_url:
        return None

    url = make_url(raw_url)
    if url.drivername.startswith("postgresql"):
        if url.database != "tl_evaluation_test":
            url = url.set(database="tl_evaluation_test")
        if url.host == "db" and not _running_in_container():
            url = url.set(host="localhost")
        return url.render_as_string(hide_password=False)

    return raw_url


@pytest.fixture(scope="session")
def engine():
    database_url = _resolve_test_database_url()
    if database_url:
        engine = create_engine(database_url)
    else:
        engine = create_engine(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        @event.listens_for(engine, "connect")
        def _configure_sqlite(dbapi_connection, _connection_record):
            # Hand transaction control to SQLAlchemy so SAVEPOINT works.
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _begin_sqlite(conn):
            conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)

    return engine


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(bind=connection, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def _fresh_kpi_catalog():
    kpi_catalog.invalidate()
    yield
    kpi_catalog.invalidate()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_person(db_session):
    def _make(name: str | None = None, role: PersonRole = PersonRole.tl, **kwargs) -> Person:
        kwargs.setdefault("honda_id", f"H-{uuid.uuid4().hex[:10]}")
        person = Person(name=name or f"Person {uuid.uuid4().hex[:6]}", role=role, **kwargs)
        db_session.add(person)
        db_session.commit()
        db_session.refresh(person)
        return person

    return _make


@pytest.fixture()
def make_pillar(db_session):
    def _make(name: str, weight: float) -> Pillar:
        pillar = Pillar(name=name, weight=weight)
        db_session.add(pillar)
        db_session.commit()
        db_session.refresh(pillar)
        return pillar

    return _make


@pytest.fixture()
def make_kpi(db_session):
    def _make(pillar: Pillar, name: str, weight: float, target_value: float | None = None, **kwargs) -> KPIItem:
        kwargs.setdefault("input_source", InputSource.ADMIN)
        kpi = KPIItem(
            pillar_id=pillar.id,
            name=name,
            weight=weight,
            target_value=target_value,
            **kwargs,
        )
        db_session.add(kpi)
        db_session.commit()
        db_session.refresh(kpi)
        return kpi

    return _make


@pytest.fixture()
def make_dataset(db_session):
    def _make(dataset_type: DatasetType, month: int, year: int) -> DashboardDataset:
        dataset = DashboardDataset(type=dataset_type, period_month=month, period_year=year, file_name="upload.xlsx")
        db_session.add(dataset)
        db_session.commit()
        db_session.refresh(dataset)
        return dataset

    return _make


@pytest.fixture()
def team_leader(make_person):
    return make_person(name="Budi Santoso", dealer_code="DLR-01")


@pytest.fixture()
def sales_setup(db_session, make_pillar, make_kpi):
    """Pillar "Sales" (50) with "Sales FLP" (25, target 1000) and "Quantity Activity" (25, presence)."""
    pillar = make_pillar("Sales", 50)
    flp = make_kpi(pillar, "Sales FLP", 25, 1000)
    activity = make_kpi(pillar, "Quantity Activity", 25, None, input_source=InputSource.TL)
    return {"pillar": pillar, "sales_flp": flp, "quantity_activity": activity}


@pytest.fixture()
def march_metrics(db_session, make_dataset):
    """Twelve March 2025 activities and an FLP total of 800 for the given person."""

    def _seed(person: Person, activities: int = 12, flp_amounts: tuple[float, ...] = (500.0, 300.0)) -> None:
        for day in range(1, activities + 1):
            db_session.add(
                TLDailyActivity(
                    person_id=person.id,
                    date=datetime(2025, 3, day, 9, 0),
                    activity_type="canvassing",
                )
            )
        dataset = make_dataset(DatasetType.sales_flp, 3, 2025)
        for amount in flp_amounts:
            db_session.add(SalesFLP(dataset_id=dataset.id, person_id=person.id, flp_amount=amount))
        db_session.commit()

    return _seed
