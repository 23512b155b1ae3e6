from datetime import datetime
from decimal import Decimal

import pytest

from config import reload_settings
from models import TransactionType
from repositories import LedgerScope, TickerRepository, TransactionRepository
from services.errors import OversellError
from services.portfolio import PortfolioService

from conftest import record


@pytest.fixture
def worked_example(session, ticker):
    record(session, ticker.id, 1, TransactionType.BUY, "10", "100", "1", day=1)
    record(session, ticker.id, 2, TransactionType.SELL, "4", "150", "2", day=2)
    record(session, ticker.id, 3, TransactionType.DIVIDEND, "1", "20", day=3)
    return ticker


def test_recompute_persists_derived_fields(session, worked_example):
    annotated = PortfolioService.recompute(LedgerScope.ticker(worked_example.id), session=session)
    assert len(annotated) == 3

    session.expire_all()
    rows = TransactionRepository.get_by_ticker(worked_example.id, session=session)
    assert [r.cumulative_units for r in rows] == [Decimal("10"), Decimal("6"), Decimal("6")]
    assert rows[1].realized_gains == Decimal("197.6")
    assert rows[2].dividends_collected == Decimal("20")
    assert rows[2].cost_of_units_sold == 0


def test_recompute_is_repeatable(session, worked_example):
    scope = LedgerScope.ticker(worked_example.id)
    first = PortfolioService.recompute(scope, session=session)
    second = PortfolioService.recompute(scope, session=session)
    assert [a.derived for a in first] == [a.derived for a in second]


def test_failed_recompute_leaves_stored_fields_untouched(session, worked_example):
    PortfolioService.recompute(LedgerScope.ticker(worked_example.id), session=session)
    record(session, worked_example.id, 4, TransactionType.SELL, "7", "150", day=4)

    with pytest.raises(OversellError):
        PortfolioService.recompute_ticker(worked_example.id, session=session)

    session.expire_all()
    rows = TransactionRepository.get_by_ticker(worked_example.id, session=session)
    assert rows[1].realized_gains == Decimal("197.6")
    assert rows[3].cumulative_units == 0
    assert rows[3].realized_gains == 0


def test_holding_is_valued_with_last_price(session, worked_example):
    TickerRepository.update_price(worked_example.id, Decimal("160"), updated_at=datetime(2024, 2, 1), session=session)

    positions = PortfolioService.get_positions(session=session)
    assert len(positions) == 1
    holding = positions[0]

    assert holding['symbol'] == "ACME"
    assert holding['quantity'] == Decimal("6.0000")
    assert holding['cost_per_share'] == Decimal("100.10")
    assert holding['total_cost'] == Decimal("600.60")
    assert holding['market_value'] == Decimal("960.00")
    assert holding['unrealized_gain'] == Decimal("359.40")
    assert holding['unrealized_gain_pct'] == Decimal("59.84")
    assert holding['realized_gain'] == Decimal("197.60")
    assert holding['dividends_collected'] == Decimal("20.00")
    assert holding['total_gain'] == Decimal("557.00")


def test_holding_without_price_is_left_unvalued(session, worked_example):
    holding = PortfolioService.get_positions(session=session)[0]
    assert holding['market_value'] is None
    assert holding['unrealized_gain'] is None
    assert holding['total_gain'] is None
    assert holding['quantity'] == Decimal("6")


def test_closed_positions_are_hidden_by_default(session, ticker):
    record(session, ticker.id, 1, TransactionType.BUY, "2", "10", day=1)
    record(session, ticker.id, 2, TransactionType.SELL, "2", "15", day=2)

    assert PortfolioService.get_positions(session=session) == []

    closed = PortfolioService.get_positions(include_closed=True, session=session)
    assert len(closed) == 1
    assert closed[0]['realized_gain'] == Decimal("10.00")


def test_positions_frame_is_indexed_by_symbol(session, worked_example):
    TickerRepository.update_price(worked_example.id, Decimal("160"), session=session)

    df = PortfolioService.positions_frame(session=session)
    assert list(df.index) == ["ACME"]
    assert df.loc["ACME", "market_value"] == Decimal("960.00")
    assert "unrealized_gain_pct" in df.columns


def test_summary_groups_by_currency(session, worked_example):
    TickerRepository.update_price(worked_example.id, Decimal("160"), session=session)
    euro = TickerRepository.add("SAP.DE", "EUR", exchange="XETRA", session=session)
    record(session, euro.id, 10, TransactionType.BUY, "3", "120", "5", day=5)

    summary = PortfolioService.get_summary(session=session)

    assert set(summary) == {"USD", "EUR"}
    assert summary["USD"]["market_value"] == Decimal("960.00")
    assert summary["USD"]["total_gain"] == Decimal("557.00")
    assert summary["EUR"]["total_cost"] == Decimal("365.00")
    assert summary["EUR"]["unvalued_positions"] == 1


def test_recompute_all_covers_every_ticker(session, worked_example):
    other = TickerRepository.add("BETA", "USD", session=session)
    record(session, other.id, 5, TransactionType.BUY, "1", "5", day=5)

    counts = PortfolioService.recompute_all(session=session)
    assert counts == {f"ticker:{worked_example.id}": 3, f"ticker:{other.id}": 1}


def test_asset_scope_aggregates_alternate_listings(session, monkeypatch, asset_with_two_tickers):
    monkeypatch.setenv("FOLIO_LEDGER_SCOPE", "asset")
    reload_settings()
    asset, xetra, frankfurt = asset_with_two_tickers

    record(session, xetra.id, 1, TransactionType.BUY, "10", "120")
    record(session, frankfurt.id, 2, TransactionType.BUY, "5", "114", day=2)
    # Sells more than the XETRA listing alone holds
    record(session, xetra.id, 3, TransactionType.SELL, "12", "130", day=3)

    assert PortfolioService.scope_for(xetra) == LedgerScope.asset(asset.id)
    annotated = PortfolioService.recompute_ticker(frankfurt.id, session=session)

    assert annotated[-1].cumulative_units == Decimal("3")
    assert annotated[-1].cost_of_units_sold == Decimal("12") * Decimal("1770") / Decimal("15")
    assert PortfolioService.list_scopes(session=session) == [LedgerScope.asset(asset.id)]


def test_ticker_scope_rejects_cross_listing_sell(session, asset_with_two_tickers):
    asset, xetra, frankfurt = asset_with_two_tickers
    record(session, xetra.id, 1, TransactionType.BUY, "10", "120")
    record(session, frankfurt.id, 2, TransactionType.BUY, "5", "114", day=2)
    record(session, xetra.id, 3, TransactionType.SELL, "12", "130", day=3)

    with pytest.raises(OversellError):
        PortfolioService.recompute_ticker(xetra.id, session=session)


def test_asset_scope_holdings_value_the_combined_ledger(session, monkeypatch, asset_with_two_tickers):
    monkeypatch.setenv("FOLIO_LEDGER_SCOPE", "asset")
    reload_settings()
    asset, xetra, frankfurt = asset_with_two_tickers

    record(session, xetra.id, 1, TransactionType.BUY, "10", "120")
    record(session, frankfurt.id, 2, TransactionType.BUY, "5", "114", day=2)
    record(session, xetra.id, 3, TransactionType.SELL, "12", "130", day=3)
    PortfolioService.recompute_all(session=session)

    TickerRepository.update_price(xetra.id, Decimal("125"), updated_at=datetime(2024, 3, 1), session=session)
    TickerRepository.update_price(frankfurt.id, Decimal("124"), updated_at=datetime(2024, 3, 2), session=session)

    positions = PortfolioService.get_positions(session=session)
    assert len(positions) == 1
    holding = positions[0]

    assert holding['scope'] == f"asset:{asset.id}"
    assert holding['ticker_id'] is None
    assert holding['symbol'] == "VOW3.DE/VOW3.F"
    assert holding['asset_name'] == "Volkswagen AG Vz"
    assert holding['quantity'] == Decimal("3")
    assert holding['total_cost'] == Decimal("354.00")
    assert holding['realized_gain'] == Decimal("144.00")
    # Priced with the most recent quote among the listings
    assert holding['price'] == Decimal("124")
    assert holding['market_value'] == Decimal("372.00")
    assert holding['unrealized_gain'] == Decimal("18.00")
    assert holding['unrealized_gain_pct'] == Decimal("5.08")
    assert holding['total_gain'] == Decimal("162.00")

    assert PortfolioService.get_ticker_holding(xetra, session=session) == holding
    summary = PortfolioService.get_summary(session=session)
    assert summary["EUR"]["market_value"] == Decimal("372.00")
    assert list(PortfolioService.positions_frame(session=session).index) == ["VOW3.DE/VOW3.F"]
