"""Trade execution: turn an actionable decision into a venue order."""
import asyncio
import logging
import uuid
from typing import Optional

from execution.aster_client import AsterDexClient
from execution.jupiter_client import LAMPORTS_PER_SOL, SOL_MINT, JupiterClient
from execution.oneinch_client import NATIVE_DECIMALS, NATIVE_TOKEN_ADDRESS, OneInchClient
from shared.market_data import MarketDataClient
from shared.schemas import (
    Debate,
    Decision,
    ExecutionResult,
    Principal,
    Recommendation,
    Trade,
    TradeStatus,
    TradeType,
    Venue,
    VenueSelection,
)

logger = logging.getLogger(__name__)

# Native balance must cover the trade plus fees
SOL_FEE_BUFFER = 1.02
EVM_GAS_BUFFER = 1.1


class TradeExecutor:
    """Executes consensus trades on the selected venue.

    ``execute`` never raises: every failure, including a venue timeout, comes
    back as an ExecutionResult with ``success=False`` and an error message.
    In paper mode fills are simulated at the debate's reference price.
    """

    def __init__(
        self,
        aster: Optional[AsterDexClient] = None,
        jupiter: Optional[JupiterClient] = None,
        oneinch: Optional[OneInchClient] = None,
        market_data: Optional[MarketDataClient] = None,
        live: bool = False,
        default_position_size_pct: float = 5.0,
        timeout_seconds: float = 60.0,
    ):
        self.aster = aster
        self.jupiter = jupiter
        self.oneinch = oneinch
        self.market_data = market_data
        self.live = live
        self.default_position_size_pct = default_position_size_pct
        self.timeout_seconds = timeout_seconds

    def allocate(self, principal: Principal, decision: Decision) -> float:
        """USD notional: balance * suggested size (percent, default 5%)."""
        size_pct = decision.suggested_size or self.default_position_size_pct
        return principal.balance_usd * size_pct / 100.0

    async def execute(
        self,
        debate: Debate,
        decision: Decision,
        selection: VenueSelection,
        principal: Principal,
    ) -> ExecutionResult:
        venue = selection.venue
        if decision.action not in (Recommendation.BUY, Recommendation.SELL):
            return ExecutionResult(
                success=False, venue=venue, error=f"{decision.action.value} is not actionable"
            )

        usd_amount = self.allocate(principal, decision)
        if usd_amount <= 0 or usd_amount > principal.balance_usd:
            return ExecutionResult(
                success=False,
                venue=venue,
                usd_amount=usd_amount,
                error=f"Insufficient principal balance: need ${usd_amount:.2f}, have ${principal.balance_usd:.2f}",
            )

        try:
            if self.live:
                result = await asyncio.wait_for(
                    self._dispatch(debate, decision, selection, usd_amount),
                    timeout=self.timeout_seconds,
                )
            else:
                result = self._simulate(debate, selection, usd_amount)
        except asyncio.TimeoutError:
            result = ExecutionResult(
                success=False,
                venue=venue,
                error=f"Venue call timed out after {self.timeout_seconds:g}s",
            )
        except Exception as e:
            result = ExecutionResult(success=False, venue=venue, error=str(e) or type(e).__name__)

        result.usd_amount = usd_amount

        if result.success:
            logger.info(
                "Trade executed",
                extra={
                    "debate_id": debate.id,
                    "symbol": debate.symbol,
                    "venue": venue.value,
                    "side": decision.action.value,
                    "usd_amount": round(usd_amount, 2),
                    "tx_ref": result.tx_ref,
                    "is_real": result.is_real,
                },
            )
        else:
            logger.warning(
                "Trade execution failed",
                extra={
                    "debate_id": debate.id,
                    "symbol": debate.symbol,
                    "venue": venue.value,
                    "error": result.error,
                },
            )
        return result

    def _simulate(self, debate: Debate, selection: VenueSelection, usd_amount: float) -> ExecutionResult:
        """Paper fill at the debate's reference price."""
        quantity = usd_amount / debate.current_price
        if selection.venue == Venue.ASTERDEX and self.aster is not None:
            quantity = self.aster.round_quantity(quantity)
        if quantity <= 0:
            return ExecutionResult(
                success=False, venue=selection.venue, error="Order quantity rounds to zero"
            )
        return ExecutionResult(
            success=True,
            venue=selection.venue,
            tx_ref=f"paper-{uuid.uuid4().hex[:12]}",
            executed_price=debate.current_price,
            executed_quantity=quantity,
            is_real=False,
        )

    async def _dispatch(
        self,
        debate: Debate,
        decision: Decision,
        selection: VenueSelection,
        usd_amount: float,
    ) -> ExecutionResult:
        if selection.venue == Venue.ASTERDEX:
            return await self._execute_perpetual(debate, decision, selection, usd_amount)
        if selection.venue == Venue.JUPITER:
            return await self._execute_solana(debate, decision, usd_amount)
        return await self._execute_spot(debate, decision, selection, usd_amount)

    async def _execute_perpetual(
        self,
        debate: Debate,
        decision: Decision,
        selection: VenueSelection,
        usd_amount: float,
    ) -> ExecutionResult:
        if self.aster is None:
            raise RuntimeError("AsterDEX client not configured")

        quantity = self.aster.round_quantity(usd_amount / debate.current_price)
        if quantity <= 0:
            return ExecutionResult(
                success=False, venue=Venue.ASTERDEX, error="Order quantity rounds to zero"
            )

        if selection.leverage:
            await self.aster.set_leverage(debate.symbol, selection.leverage)
        order = await self.aster.place_order(debate.symbol, decision.action.value, quantity)

        executed_price = float(order.get("avgPrice") or 0) or float(order.get("price") or 0)
        executed_qty = float(order.get("executedQty") or 0)
        return ExecutionResult(
            success=True,
            venue=Venue.ASTERDEX,
            tx_ref=str(order.get("orderId")),
            executed_price=executed_price or debate.current_price,
            executed_quantity=executed_qty or quantity,
            is_real=True,
        )

    async def _execute_solana(
        self, debate: Debate, decision: Decision, usd_amount: float
    ) -> ExecutionResult:
        if self.jupiter is None or self.market_data is None:
            raise RuntimeError("Jupiter client not configured")

        symbol = debate.symbol.upper()
        if decision.action == Recommendation.SELL:
            return ExecutionResult(
                success=False,
                venue=Venue.JUPITER,
                error="SELL on Solana is not supported without token balance tracking",
            )
        if symbol == "SOL":
            return ExecutionResult(
                success=False, venue=Venue.JUPITER, error="Already holding SOL, no trade needed"
            )

        output_mint, output_decimals = self.jupiter.mint_for(symbol)
        sol_price = await self.market_data.get_current_price("SOL")
        sol_needed = usd_amount / sol_price
        sol_balance = await self.jupiter.get_sol_balance()
        if sol_balance < sol_needed * SOL_FEE_BUFFER:
            return ExecutionResult(
                success=False,
                venue=Venue.JUPITER,
                error=f"Insufficient SOL balance: need {sol_needed:.4f}, have {sol_balance:.4f}",
            )

        quote = await self.jupiter.get_quote(SOL_MINT, output_mint, int(sol_needed * LAMPORTS_PER_SOL))
        swap = await self.jupiter.swap(quote)
        return ExecutionResult(
            success=True,
            venue=Venue.JUPITER,
            tx_ref=swap["signature"],
            executed_price=debate.current_price,
            executed_quantity=swap["output_amount"] / 10 ** output_decimals,
            is_real=True,
        )

    async def _execute_spot(
        self,
        debate: Debate,
        decision: Decision,
        selection: VenueSelection,
        usd_amount: float,
    ) -> ExecutionResult:
        if self.oneinch is None or self.market_data is None:
            raise RuntimeError("1inch client not configured")

        chain = selection.chain or "base"
        token_address, token_decimals = self.oneinch.get_token(debate.symbol, chain)

        if decision.action == Recommendation.BUY:
            native_symbol = self.oneinch.native_symbol(chain)
            native_price = await self.market_data.get_current_price(native_symbol)
            native_needed = usd_amount / native_price
            native_balance = await self.oneinch.get_native_balance(chain)
            if native_balance < native_needed * EVM_GAS_BUFFER:
                return ExecutionResult(
                    success=False,
                    venue=Venue.ONEINCH,
                    error=(
                        f"Insufficient {native_symbol} balance: need {native_needed:.6f}, "
                        f"have {native_balance:.6f}"
                    ),
                )
            src, dst = NATIVE_TOKEN_ADDRESS, token_address
            amount = int(native_needed * 10 ** NATIVE_DECIMALS)
        else:
            src, dst = token_address, NATIVE_TOKEN_ADDRESS
            amount = int(usd_amount / debate.current_price * 10 ** token_decimals)
            await self.oneinch.ensure_allowance(chain, token_address, amount)

        swap_data = await self.oneinch.get_swap_data(chain, src, dst, amount)
        receipt = await self.oneinch.sign_and_broadcast(chain, swap_data["tx"])
        return ExecutionResult(
            success=True,
            venue=Venue.ONEINCH,
            tx_ref=receipt["tx_hash"],
            executed_price=debate.current_price,
            executed_quantity=usd_amount / debate.current_price,
            block_number=receipt["block_number"],
            is_real=True,
        )


def build_trade(
    principal_id: str,
    debate: Debate,
    decision: Decision,
    selection: VenueSelection,
    result: ExecutionResult,
) -> Trade:
    """Audit row for an execution attempt: OPEN on success, CANCELLED otherwise."""
    return Trade(
        agent_id=principal_id,
        symbol=debate.symbol,
        venue=selection.venue,
        trade_type=TradeType.PERPETUAL if selection.venue == Venue.ASTERDEX else TradeType.SPOT,
        side=decision.action,
        quantity=result.executed_quantity or 0.0,
        entry_price=result.executed_price or debate.current_price,
        usd_value=result.usd_amount,
        status=TradeStatus.OPEN if result.success else TradeStatus.CANCELLED,
        tx_ref=result.tx_ref,
        debate_id=debate.id,
        decision_id=decision.id,
        confidence=decision.confidence,
        leverage=selection.leverage,
        error_message=result.error,
        is_real=result.is_real,
    )
