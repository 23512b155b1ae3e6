from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

import db_engine
from config import reload_settings
from repositories import AssetRepository, TickerRepository, TransactionRepository
from services.ledger import LedgerEntry


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    monkeypatch.delenv("FOLIO_LEDGER_SCOPE", raising=False)
    monkeypatch.setenv("FOLIO_DATABASE_URL", "sqlite://")
    reload_settings()
    yield
    reload_settings()


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    db_engine.enable_foreign_keys(eng)
    db_engine.init_db(eng)
    db_engine.set_engine(eng)
    yield eng
    db_engine.set_engine(None)
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as sess:
        yield sess


@pytest.fixture
def ticker(session):
    return TickerRepository.add("ACME", "USD", exchange="NYSE", name="Acme Corp", session=session)


def entry(no, kind, quantity, price, fees="0"):
    return LedgerEntry(
        transaction_no=no,
        transaction_type=kind,
        quantity=Decimal(quantity),
        price=Decimal(price),
        fees=Decimal(fees),
    )


def record(session, ticker_id, no, kind, quantity, price, fees="0", day=1):
    return TransactionRepository.add(
        transaction_no=no,
        date=datetime(2024, 1, day),
        transaction_type=kind,
        ticker_id=ticker_id,
        broker="IBKR",
        currency="USD",
        quantity=Decimal(quantity),
        price=Decimal(price),
        fees=Decimal(fees),
        session=session,
    )


@pytest.fixture
def asset_with_two_tickers(session):
    asset = AssetRepository.add("Volkswagen AG Vz", session=session)
    xetra = TickerRepository.add("VOW3.DE", "EUR", exchange="XETRA", session=session)
    frankfurt = TickerRepository.add("VOW3.F", "EUR", exchange="FRA", session=session)
    AssetRepository.attach_ticker(asset.id, xetra.id, session=session)
    AssetRepository.attach_ticker(asset.id, frankfurt.id, session=session)
    return asset, xetra, frankfurt
