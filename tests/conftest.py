import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from breaker_panel import repository
from breaker_panel.db import Base, get_db, make_engine
from breaker_panel.main import app


@pytest.fixture()
def engine():
    # in-memory database, one shared connection (StaticPool) per test
    eng = make_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    # not used as a context manager: lifespan (init_db on the real database) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def add_breaker(db):
    """Create a breaker through the repository; `where` is '5', '5A' or '5-7'."""
    def _add(panel, where, critical=False, amperage=15, label=None):
        if "-" in where:
            position, slot, kind = int(where.split("-")[0]), "single", "double_pole"
        elif where[-1] in "AB":
            position, slot, kind = int(where[:-1]), where[-1], "tandem"
        else:
            position, slot, kind = int(where), "single", "single"
        return repository.create_breaker(
            db,
            panel_id=panel.id,
            position=position,
            slot_position=slot,
            breaker_type=kind,
            amperage=amperage,
            critical=critical,
            label=label or f"{panel.name} {where}",
        )
    return _add


@pytest.fixture()
def main_and_critical(db):
    """A 42-position main panel and an empty 12-position critical panel."""
    main = repository.create_panel(db, "Main", 42)
    critical = repository.create_panel(db, "Critical", 12)
    return main, critical
