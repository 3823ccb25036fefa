"""Tests for execution.trade_executor."""
import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from execution.aster_client import AsterDexClient
from execution.jupiter_client import SOL_MINT, SOLANA_MINTS, JupiterClient
from execution.oneinch_client import NATIVE_TOKEN_ADDRESS, TOKEN_ADDRESSES, OneInchClient
from execution.trade_executor import TradeExecutor, build_trade
from helpers import make_debate, make_decision, make_principal
from shared.schemas import (
    ExecutionResult,
    TradeStatus,
    TradeType,
    Venue,
    VenueSelection,
)

PERP = VenueSelection(venue=Venue.ASTERDEX, reason="perp", leverage=5)
SOLANA = VenueSelection(venue=Venue.JUPITER, reason="sol", chain="solana")
SPOT = VenueSelection(venue=Venue.ONEINCH, reason="spot", chain="base")


def _aster():
    aster = MagicMock()
    aster.round_quantity = AsterDexClient(api_key="", api_secret="").round_quantity
    aster.set_leverage = AsyncMock(return_value={})
    aster.place_order = AsyncMock(
        return_value={"orderId": 42, "avgPrice": "3001.5", "executedQty": "0.001"}
    )
    return aster


def _jupiter(balance=1.0):
    jupiter = MagicMock()
    jupiter.mint_for = JupiterClient.mint_for
    jupiter.get_sol_balance = AsyncMock(return_value=balance)
    jupiter.get_quote = AsyncMock(return_value={"inAmount": "33333333", "outAmount": "2500000"})
    jupiter.swap = AsyncMock(
        return_value={"signature": "5sig", "input_amount": 33333333.0, "output_amount": 2500000.0}
    )
    return jupiter


def _oneinch(balance=1.0):
    oneinch = MagicMock()
    oneinch.get_token = OneInchClient.get_token
    oneinch.native_symbol = OneInchClient.native_symbol
    oneinch.get_native_balance = AsyncMock(return_value=balance)
    oneinch.ensure_allowance = AsyncMock(return_value=None)
    oneinch.get_swap_data = AsyncMock(return_value={"tx": {"to": "0xrouter", "data": "0x", "value": "0"}})
    oneinch.sign_and_broadcast = AsyncMock(return_value={"tx_hash": "0xabc", "block_number": 123})
    return oneinch


def _market_data(price=150.0):
    market_data = MagicMock()
    market_data.get_current_price = AsyncMock(return_value=price)
    return market_data


def test_allocation_uses_suggested_size_or_default():
    executor = TradeExecutor()
    principal = make_principal(200.0)
    assert executor.allocate(principal, make_decision(suggested_size=20.0)) == pytest.approx(40.0)
    assert executor.allocate(principal, make_decision()) == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_paper_mode_simulates_fill():
    aster = _aster()
    executor = TradeExecutor(aster=aster, live=False)
    result = await executor.execute(make_debate(price=3000.0), make_decision(), PERP, make_principal())

    assert result.success is True
    assert result.is_real is False
    assert result.tx_ref.startswith("paper-")
    assert result.executed_price == 3000.0
    assert result.usd_amount == pytest.approx(5.0)
    assert result.executed_quantity == pytest.approx(0.001)
    aster.place_order.assert_not_called()


@pytest.mark.asyncio
async def test_paper_perpetual_fill_rounding_to_zero_fails():
    executor = TradeExecutor(aster=_aster(), live=False)
    debate = make_debate(symbol="BTCUSDT", price=65000.0)
    result = await executor.execute(debate, make_decision(), PERP, make_principal(100.0))

    assert result.success is False
    assert result.error == "Order quantity rounds to zero"
    assert result.tx_ref is None


@pytest.mark.asyncio
async def test_hold_is_not_executed():
    executor = TradeExecutor()
    result = await executor.execute(make_debate(), make_decision("HOLD"), PERP, make_principal())
    assert result.success is False
    assert "not actionable" in result.error


@pytest.mark.asyncio
async def test_oversized_allocation_is_rejected():
    executor = TradeExecutor(live=False)
    result = await executor.execute(
        make_debate(), make_decision(suggested_size=150.0), PERP, make_principal(100.0)
    )
    assert result.success is False
    assert "Insufficient principal balance" in result.error


@pytest.mark.asyncio
async def test_perpetual_sets_leverage_and_places_market_order():
    aster = _aster()
    executor = TradeExecutor(aster=aster, live=True)
    debate = make_debate(symbol="ETHUSDT", price=3000.0)

    result = await executor.execute(debate, make_decision("SELL", suggested_size=10.0), PERP, make_principal())

    assert result.success is True
    assert result.is_real is True
    assert result.tx_ref == "42"
    assert result.executed_price == 3001.5
    assert result.executed_quantity == 0.001
    aster.set_leverage.assert_awaited_once_with("ETHUSDT", 5)
    symbol, side, quantity = aster.place_order.call_args.args
    assert (symbol, side) == ("ETHUSDT", "SELL")
    assert quantity == pytest.approx(0.003)


@pytest.mark.asyncio
async def test_perpetual_quantity_rounding_to_zero_fails():
    aster = _aster()
    executor = TradeExecutor(aster=aster, live=True)
    result = await executor.execute(
        make_debate(price=100_000.0), make_decision(), PERP, make_principal()
    )
    assert result.success is False
    assert "rounds to zero" in result.error
    aster.place_order.assert_not_called()


@pytest.mark.asyncio
async def test_venue_error_becomes_failed_result():
    aster = _aster()
    aster.place_order = AsyncMock(side_effect=RuntimeError("AsterDEX /fapi/v1/order error 400"))
    executor = TradeExecutor(aster=aster, live=True)

    result = await executor.execute(make_debate(), make_decision(), PERP, make_principal())

    assert result.success is False
    assert result.venue == Venue.ASTERDEX
    assert "400" in result.error
    assert result.usd_amount == pytest.approx(5.0)


@pytest.mark.asyncio
async def test_venue_timeout_becomes_failed_result():
    async def hang(*args, **kwargs):
        await asyncio.sleep(5)

    aster = _aster()
    aster.place_order = hang
    executor = TradeExecutor(aster=aster, live=True, timeout_seconds=0.05)

    result = await executor.execute(make_debate(), make_decision(), PERP, make_principal())

    assert result.success is False
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_solana_buy_swaps_sol_for_token():
    jupiter = _jupiter(balance=1.0)
    executor = TradeExecutor(jupiter=jupiter, market_data=_market_data(150.0), live=True)
    debate = make_debate(symbol="JUP", price=0.8)

    result = await executor.execute(debate, make_decision(), SOLANA, make_principal())

    assert result.success is True
    assert result.tx_ref == "5sig"
    assert result.executed_quantity == pytest.approx(2.5)
    input_mint, output_mint, lamports = jupiter.get_quote.call_args.args
    assert input_mint == SOL_MINT
    assert output_mint == SOLANA_MINTS["JUP"][0]
    assert lamports == int(5.0 / 150.0 * 1_000_000_000)


@pytest.mark.asyncio
async def test_solana_insufficient_balance():
    jupiter = _jupiter(balance=0.01)
    executor = TradeExecutor(jupiter=jupiter, market_data=_market_data(150.0), live=True)

    result = await executor.execute(make_debate(symbol="BONK"), make_decision(), SOLANA, make_principal())

    assert result.success is False
    assert "Insufficient SOL balance" in result.error
    jupiter.swap.assert_not_called()


@pytest.mark.asyncio
async def test_solana_sell_and_sol_buy_are_rejected():
    executor = TradeExecutor(jupiter=_jupiter(), market_data=_market_data(), live=True)

    sell = await executor.execute(make_debate(symbol="JUP"), make_decision("SELL"), SOLANA, make_principal())
    assert sell.success is False
    assert "not supported" in sell.error

    sol = await executor.execute(make_debate(symbol="SOL"), make_decision(), SOLANA, make_principal())
    assert sol.success is False
    assert sol.error == "Already holding SOL, no trade needed"


@pytest.mark.asyncio
async def test_spot_buy_swaps_native_for_token():
    oneinch = _oneinch(balance=1.0)
    executor = TradeExecutor(oneinch=oneinch, market_data=_market_data(2500.0), live=True)
    debate = make_debate(symbol="AERO", price=1.25)

    result = await executor.execute(debate, make_decision(), SPOT, make_principal())

    assert result.success is True
    assert result.tx_ref == "0xabc"
    assert result.block_number == 123
    assert result.executed_quantity == pytest.approx(4.0)
    chain, src, dst, amount = oneinch.get_swap_data.call_args.args
    assert chain == "base"
    assert src == NATIVE_TOKEN_ADDRESS
    assert dst == TOKEN_ADDRESSES["base"]["AERO"][0]
    assert amount == int(5.0 / 2500.0 * 10**18)
    oneinch.ensure_allowance.assert_not_called()


@pytest.mark.asyncio
async def test_spot_buy_requires_gas_buffer():
    # needed = 5 / 2500 = 0.002 ETH; 0.0021 < 0.002 * 1.1
    oneinch = _oneinch(balance=0.0021)
    executor = TradeExecutor(oneinch=oneinch, market_data=_market_data(2500.0), live=True)

    result = await executor.execute(make_debate(symbol="AERO"), make_decision(), SPOT, make_principal())

    assert result.success is False
    assert "Insufficient ETH balance" in result.error
    oneinch.sign_and_broadcast.assert_not_called()


@pytest.mark.asyncio
async def test_spot_sell_approves_token_first():
    oneinch = _oneinch()
    executor = TradeExecutor(oneinch=oneinch, market_data=_market_data(), live=True)
    debate = make_debate(symbol="AERO", price=1.25)

    result = await executor.execute(debate, make_decision("SELL"), SPOT, make_principal())

    assert result.success is True
    token_address = TOKEN_ADDRESSES["base"]["AERO"][0]
    oneinch.ensure_allowance.assert_awaited_once_with("base", token_address, int(4.0 * 10**18))
    chain, src, dst, amount = oneinch.get_swap_data.call_args.args
    assert (src, dst) == (token_address, NATIVE_TOKEN_ADDRESS)


@pytest.mark.asyncio
async def test_spot_unknown_token_fails():
    executor = TradeExecutor(oneinch=_oneinch(), market_data=_market_data(), live=True)
    result = await executor.execute(make_debate(symbol="NOPE"), make_decision(), SPOT, make_principal())
    assert result.success is False
    assert "not supported" in result.error


def test_build_trade_open_and_cancelled():
    debate = make_debate(symbol="ETHUSDT", price=3000.0)
    decision = make_decision(confidence=75.0)

    ok = build_trade(
        "principal-1", debate, decision, PERP,
        ExecutionResult(success=True, venue=Venue.ASTERDEX, tx_ref="42",
                        executed_price=3001.0, executed_quantity=0.002, usd_amount=6.0, is_real=True),
    )
    assert ok.status == TradeStatus.OPEN
    assert ok.trade_type == TradeType.PERPETUAL
    assert ok.entry_price == 3001.0
    assert ok.usd_value == 6.0
    assert ok.leverage == 5
    assert ok.decision_id == decision.id

    failed = build_trade(
        "principal-1", debate, decision, SPOT,
        ExecutionResult(success=False, venue=Venue.ONEINCH, usd_amount=5.0, error="reverted"),
    )
    assert failed.status == TradeStatus.CANCELLED
    assert failed.trade_type == TradeType.SPOT
    assert failed.entry_price == 3000.0
    assert failed.quantity == 0.0
    assert failed.error_message == "reverted"
