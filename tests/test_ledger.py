import random
from decimal import Decimal

import pytest

from models import TransactionType
from repositories import TransactionRepository
from services.errors import InvalidEntryError, InvalidTypeError, OutOfOrderError, OversellError
from services.ledger import LedgerEntry, replay, replay_summary

from conftest import entry, record


def test_worked_example_buy_sell_dividend():
    out = replay([
        entry(1, TransactionType.BUY, "10", "100", "1"),
        entry(2, TransactionType.SELL, "4", "150", "2"),
        entry(3, TransactionType.DIVIDEND, "1", "20"),
    ])

    buy, sell, div = out
    assert buy.cumulative_units == Decimal("10")
    assert buy.cumulative_cost == Decimal("1001")
    assert buy.cost_of_units_sold == 0

    assert sell.cost_of_units_sold == Decimal("400.4")
    assert sell.realized_gains == Decimal("197.6")
    assert sell.cumulative_units == Decimal("6")
    assert sell.cumulative_cost == Decimal("600.6")

    assert div.dividends_collected == Decimal("20")
    assert div.cumulative_units == Decimal("6")
    assert div.cumulative_cost == Decimal("600.6")
    assert div.cost_of_units_sold == 0
    assert div.realized_gains == Decimal("197.6")


def test_buy_only_sequence_sums_quantities_and_costs():
    rows = [
        entry(1, "Buy", "20", "88.851", "0"),
        entry(2, "Buy", "20", "82.954", "0"),
        entry(5, "Buy", "20", "109.503", "0"),
        entry(9, "Buy", "3.5", "12.25", "4.95"),
    ]
    out = replay(rows)

    expected_units = sum((r.quantity for r in rows), Decimal("0"))
    expected_cost = sum((r.quantity * r.price + r.fees for r in rows), Decimal("0"))
    assert out[-1].cumulative_units == expected_units
    assert out[-1].cumulative_cost == expected_cost
    assert all(a.realized_gains == 0 for a in out)


def test_string_types_are_accepted():
    out = replay([
        entry(1, "buy", "5", "10"),
        entry(2, "SELL", "5", "12"),
        entry(3, "Div", "5", "0.5"),
        entry(4, "Dividend", "0", "3"),
    ])
    assert out[1].realized_gains == Decimal("10")
    assert out[3].dividends_collected == Decimal("5.5")


def test_replay_is_idempotent_and_does_not_mutate_input():
    rows = [
        entry(1, TransactionType.BUY, "3", "33.33", "0.99"),
        entry(2, TransactionType.BUY, "7", "41.17", "0.99"),
        entry(3, TransactionType.SELL, "6", "45", "1.25"),
        entry(4, TransactionType.DIVIDEND, "4", "0.37"),
    ]
    snapshot = list(rows)

    first = replay(rows)
    second = replay(rows)

    assert first == second
    assert [a.derived for a in first] == [a.derived for a in second]
    assert rows == snapshot


def test_oversell_fails_instead_of_clamping():
    with pytest.raises(OversellError) as exc:
        replay([
            entry(1, TransactionType.BUY, "5", "10"),
            entry(2, TransactionType.SELL, "5.0001", "12"),
        ])
    assert exc.value.transaction_no == 2


def test_sell_from_flat_position_is_oversell():
    with pytest.raises(OversellError):
        replay([entry(1, TransactionType.SELL, "1", "10")])

    with pytest.raises(OversellError):
        replay([
            entry(1, TransactionType.BUY, "2", "10"),
            entry(2, TransactionType.SELL, "2", "11"),
            entry(3, TransactionType.SELL, "1", "11"),
        ])


def test_swapped_sequence_numbers_fail():
    with pytest.raises(OutOfOrderError) as exc:
        replay([
            entry(2, TransactionType.BUY, "1", "10"),
            entry(1, TransactionType.BUY, "1", "10"),
        ])
    assert exc.value.transaction_no == 1


def test_repeated_sequence_number_fails():
    with pytest.raises(OutOfOrderError):
        replay([
            entry(7, TransactionType.BUY, "1", "10"),
            entry(7, TransactionType.BUY, "1", "10"),
        ])


def test_gaps_in_sequence_are_tolerated():
    out = replay([
        entry(10, TransactionType.BUY, "1", "10"),
        entry(250, TransactionType.BUY, "1", "20"),
    ])
    assert out[-1].cumulative_units == Decimal("2")


def test_unknown_type_fails():
    with pytest.raises(InvalidTypeError):
        replay([entry(1, "Split", "2", "0")])


def test_negative_and_zero_quantities_are_rejected():
    with pytest.raises(InvalidEntryError):
        replay([entry(1, TransactionType.BUY, "-1", "10")])
    with pytest.raises(InvalidEntryError):
        replay([entry(1, TransactionType.BUY, "0", "10")])
    with pytest.raises(InvalidEntryError):
        replay([entry(1, TransactionType.BUY, "1", "10", "-0.5")])


def test_no_partial_result_on_failure():
    rows = [
        entry(1, TransactionType.BUY, "1", "10"),
        entry(2, TransactionType.SELL, "3", "10"),
    ]
    result = None
    with pytest.raises(OversellError):
        result = replay(rows)
    assert result is None


def test_closing_position_resets_cost_basis():
    out = replay([
        entry(1, TransactionType.BUY, "3", "10", "1"),
        entry(2, TransactionType.SELL, "1", "12"),
        entry(3, TransactionType.SELL, "2", "12"),
    ])
    # 31 / 3 does not divide evenly; a flat position must still carry zero cost
    assert out[-1].cumulative_units == 0
    assert out[-1].cumulative_cost == 0
    assert out[-1].realized_gains == Decimal("36") - Decimal("31")


def test_float_inputs_do_not_drift():
    rows = [
        LedgerEntry(transaction_no=i, transaction_type=TransactionType.BUY, quantity=0.1, price=0.1, fees=0.0)
        for i in range(1, 1001)
    ]
    out = replay(rows)
    assert out[-1].cumulative_units == Decimal("100.0")
    assert out[-1].cumulative_cost == Decimal("10.00")


def test_realized_gains_equal_sum_of_sell_deltas():
    rng = random.Random(42)
    rows = []
    held = Decimal("0")
    for no in range(1, 301):
        if held > 0 and rng.random() < 0.4:
            qty = (held * Decimal(rng.randint(1, 100)) / 100).quantize(Decimal("0.0001"))
            if qty == 0:
                continue
            rows.append(entry(no, TransactionType.SELL, str(qty), str(rng.randint(50, 150)), "1.5"))
            held -= qty
        elif rng.random() < 0.2:
            rows.append(entry(no, TransactionType.DIVIDEND, str(held or 1), "0.21"))
        else:
            qty = Decimal(rng.randint(1, 40))
            rows.append(entry(no, TransactionType.BUY, str(qty), str(rng.randint(50, 150)), "0.99"))
            held += qty

    out = replay(rows)

    running = Decimal("0")
    previous_cost = Decimal("0")
    for annotated in out:
        e = annotated.entry
        if e.transaction_type is TransactionType.SELL:
            running += e.quantity * e.price - annotated.cost_of_units_sold - e.fees
            if annotated.cumulative_units != 0:
                assert annotated.cumulative_cost == previous_cost - annotated.cost_of_units_sold
        assert annotated.realized_gains == running
        previous_cost = annotated.cumulative_cost

    assert out[-1].cumulative_units == held


def test_replay_accepts_stored_transaction_objects(session, ticker):
    record(session, ticker.id, 1, TransactionType.BUY, "10", "100", "1")
    record(session, ticker.id, 2, TransactionType.SELL, "4", "150", "2", day=2)

    out = replay(TransactionRepository.get_by_ticker(ticker.id, session=session))
    assert out[-1].realized_gains == Decimal("197.6")
    assert out[-1].entry.ticker_id == ticker.id


def test_replay_summary_reports_final_state():
    state = replay_summary([
        entry(1, TransactionType.BUY, "10", "100", "1"),
        entry(2, TransactionType.SELL, "4", "150", "2"),
    ])
    assert state.units == Decimal("6")
    assert state.average_cost == Decimal("100.1")
    assert state.last_transaction_no == 2
    assert state.entries_applied == 2

    empty = replay_summary([])
    assert empty.units == 0
    assert empty.average_cost == 0
