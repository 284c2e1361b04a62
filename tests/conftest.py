from collections.abc import Generator
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cortex.core.db import Base, get_db
from cortex.main import app
from cortex.models import DfcCategory, DfcEntry
from cortex.services.assistant import get_cases_client
from cortex.services.dfc import dfc_cache
from cortex.services.llm import get_llm
from tests.fakes import FakeCasesClient, FakeLLM


SAMPLE_CATEGORIES = [
    ("03.01.01", "Fee Mensal", "RECEITA"),
    ("03.01.02", "Projetos Pontuais", "RECEITA"),
    ("04.01.01", "Salários", "DESPESA"),
    ("04.02.01", "Licenças SaaS", "DESPESA"),
]

SAMPLE_ENTRIES = [
    ("03.01.01", "RECEITA", date(2024, 1, 10), "1000.00"),
    ("03.01.01", "RECEITA", date(2024, 2, 10), "1200.00"),
    ("03.01.01", "RECEITA", date(2024, 3, 10), "1500.00"),
    ("03.01.02", "RECEITA", date(2024, 2, 20), "300.00"),
    ("04.01.01", "DESPESA", date(2024, 1, 5), "600.00"),
    ("04.01.01", "DESPESA", date(2024, 2, 5), "600.00"),
    ("04.01.01", "DESPESA", date(2024, 3, 5), "600.00"),
    ("04.02.01", "DESPESA", date(2024, 3, 15), "100.00"),
    ("04.02.01", "DESPESA", date(2023, 12, 15), "999.00"),
]


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    monkeypatch.setenv("SKIP_MAINTENANCE_WINDOW", "true")
    dfc_cache.clear()
    yield
    dfc_cache.clear()


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    db.add_all([DfcCategory(categoria_id=c, nome=n, tipo=t) for c, n, t in SAMPLE_CATEGORIES])
    db.add_all(
        [
            DfcEntry(categoria_id=c, tipo=t, descricao=f"{c} {d}", valor_pago=Decimal(v), data_vencimento=d)
            for c, t, d, v in SAMPLE_ENTRIES
        ]
    )
    db.commit()
    db.close()
    return TestingSessionLocal


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def fake_cases() -> FakeCasesClient:
    return FakeCasesClient()


@pytest.fixture()
def client(session_factory, fake_llm, fake_cases) -> Generator[TestClient, None, None]:
    def override_get_db():
        test_db = session_factory()
        try:
            yield test_db
        finally:
            test_db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_llm] = lambda: fake_llm
    app.dependency_overrides[get_cases_client] = lambda: fake_cases
    app.state.testing_sessionmaker = session_factory

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
