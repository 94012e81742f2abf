"""1inch plugin: token prices, gas and swap quotes from the 1inch aggregator.

Swaps are never signed here. ``swap`` fetches a quote and returns a
TransactionRequest; the ``swap`` handler tells the host what to present
to the user's wallet.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple

from ...config import Settings
from ...core.intents import TransactionRequest
from ...core.types import Command, CommandResult, ExecutionContext
from ..models import PluginConfig, ProtocolPlugin
from .base import ApiClient, ProviderError

logger = logging.getLogger(__name__)

PROTOCOL_ID = "1inch"

SUPPORTED_CHAINS = frozenset({1, 10, 56, 137, 8453, 42161, 43114})

NATIVE_TOKEN = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

# Ethereum mainnet tokens: symbol -> (address, decimals)
MAINNET_TOKENS: Dict[str, Tuple[str, int]] = {
    "ETH": (NATIVE_TOKEN, 18),
    "WETH": ("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", 18),
    "USDC": ("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6),
    "USDT": ("0xdAC17F958D2ee523a2206206994597C13D831ec7", 6),
    "DAI": ("0x6B175474E89094C44Da98b954EedeAC495271d0F", 18),
    "WBTC": ("0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", 8),
}


class OneInchClient(ApiClient):
    """Client for the 1inch developer API."""

    def __init__(self, base_url: str, api_key: str = "", timeout_s: float = 15.0):
        super().__init__(base_url, timeout_s)
        self.set_api_key(api_key)

    def set_api_key(self, api_key: str) -> None:
        self.api_key = api_key
        if api_key:
            self._session.headers["Authorization"] = f"Bearer {api_key}"
        else:
            self._session.headers.pop("Authorization", None)

    def token_price(self, chain_id: int, address: str) -> Optional[float]:
        data = self.get(f"/price/v1.1/{chain_id}/{address}", params={"currency": "USD"})
        if not isinstance(data, dict):
            return None
        for key, value in data.items():
            if key.lower() == address.lower():
                try:
                    return float(value)
                except (TypeError, ValueError):
                    return None
        return None

    def gas_price(self, chain_id: int) -> dict:
        data = self.get(f"/gas-price/v1.6/{chain_id}")
        return data if isinstance(data, dict) else {}

    def quote(self, chain_id: int, src: str, dst: str, amount: int) -> dict:
        data = self.get(
            f"/swap/v6.0/{chain_id}/quote",
            params={"src": src, "dst": dst, "amount": str(amount)},
        )
        return data if isinstance(data, dict) else {}


def resolve_token(text: str, chain_id: int) -> Optional[Tuple[str, int]]:
    """(address, decimals) for a symbol or raw address. Raw addresses assume 18 decimals."""
    if text.startswith("0x") and len(text) == 42:
        return text, 18
    if chain_id == 1:
        return MAINNET_TOKENS.get(text.upper())
    return None


def _chain_from(arg: Optional[str], context: ExecutionContext) -> int:
    if arg is not None:
        return int(arg)
    return context.wallet.chain_id or 1


def to_base_units(amount: str, decimals: int) -> int:
    value = Decimal(amount)
    if value <= 0:
        raise ValueError("amount must be positive")
    return int(value * (Decimal(10) ** decimals))


def create_plugin(
    settings: Optional[Settings] = None,
    client: Optional[OneInchClient] = None,
) -> ProtocolPlugin:
    settings = settings or Settings()
    client = client or OneInchClient(
        settings.oneinch_base_url, settings.oneinch_api_key, settings.http_timeout_s
    )

    async def initialize(context: ExecutionContext, config: PluginConfig) -> None:
        api_key = config.credentials.get("api_key")
        if api_key:
            client.set_api_key(api_key)
        if not client.api_key:
            logger.warning("1inch: API key not configured, requests may be rejected")

    async def price_run(args: str, context: ExecutionContext) -> CommandResult:
        parts = args.split()
        if not parts:
            return CommandResult.fail("Usage: price <token> [chain]")
        try:
            chain_id = _chain_from(parts[1] if len(parts) > 1 else None, context)
        except ValueError:
            return CommandResult.fail(f"Invalid chain id: {parts[1]}")
        if chain_id not in SUPPORTED_CHAINS:
            return CommandResult.fail(f"Chain {chain_id} is not supported by 1inch")

        token = resolve_token(parts[0], chain_id)
        if token is None:
            return CommandResult.fail(f"Unknown token on chain {chain_id}: {parts[0]}")

        try:
            price = await client.call(client.token_price, chain_id, token[0])
        except ProviderError as e:
            return CommandResult.fail(str(e))
        if price is None:
            return CommandResult.fail(f"No price for {parts[0]}")
        return CommandResult.ok({"token": parts[0].upper(), "chain_id": chain_id, "price_usd": price})

    async def gas_run(args: str, context: ExecutionContext) -> CommandResult:
        parts = args.split()
        try:
            chain_id = _chain_from(parts[0] if parts else None, context)
        except ValueError:
            return CommandResult.fail(f"Invalid chain id: {parts[0]}")
        if chain_id not in SUPPORTED_CHAINS:
            return CommandResult.fail(f"Chain {chain_id} is not supported by 1inch")
        try:
            data = await client.call(client.gas_price, chain_id)
        except ProviderError as e:
            return CommandResult.fail(str(e))

        result = {"chain_id": chain_id, "base_fee": data.get("baseFee")}
        for tier in ("low", "medium", "high", "instant"):
            if isinstance(data.get(tier), dict):
                result[tier] = data[tier].get("maxFeePerGas")
        return CommandResult.ok(result)

    async def swap_run(args: str, context: ExecutionContext) -> CommandResult:
        wallet = context.wallet
        if not wallet.is_connected or not wallet.address:
            return CommandResult.fail("Wallet not connected. Please connect your wallet first.")

        parts = args.split()
        if len(parts) != 3:
            return CommandResult.fail("Usage: swap <fromToken> <toToken> <amount>")
        src_text, dst_text, amount_text = parts
        chain_id = wallet.chain_id or 1

        src = resolve_token(src_text, chain_id)
        dst = resolve_token(dst_text, chain_id)
        if src is None or dst is None:
            missing = src_text if src is None else dst_text
            return CommandResult.fail(f"Unknown token on chain {chain_id}: {missing}")

        try:
            amount = to_base_units(amount_text, src[1])
        except (InvalidOperation, ValueError):
            return CommandResult.fail(f"Invalid amount: {amount_text}")

        try:
            quote = await client.call(client.quote, chain_id, src[0], dst[0], amount)
        except ProviderError as e:
            return CommandResult.fail(str(e))

        raw_amount = quote.get("dstAmount")
        if raw_amount is None:
            return CommandResult.fail("1inch returned no quote")
        try:
            dst_amount = Decimal(raw_amount) / (Decimal(10) ** dst[1])
        except (InvalidOperation, TypeError):
            return CommandResult.fail(f"Invalid quote from 1inch: {raw_amount!r}")
        return CommandResult.ok(TransactionRequest(
            protocol=PROTOCOL_ID,
            action="swap",
            chain_id=chain_id,
            payload={
                "from": wallet.address,
                "src": src[0],
                "dst": dst[0],
                "src_symbol": src_text.upper(),
                "dst_symbol": dst_text.upper(),
                "amount": str(amount),
                "amount_display": amount_text,
                "dst_amount_display": format(dst_amount.normalize(), "f"),
            },
        ))

    async def swap_handler(value: TransactionRequest, context: ExecutionContext) -> CommandResult:
        payload = value.payload
        return CommandResult.ok(
            f"Swap {payload['amount_display']} {payload['src_symbol']} -> "
            f"~{payload['dst_amount_display']} {payload['dst_symbol']} on chain {value.chain_id} "
            f"is ready. Review and sign it in the wallet {payload['from']}."
        )

    async def health_check(context: ExecutionContext) -> bool:
        try:
            await client.call(client.gas_price, 1)
            return True
        except ProviderError:
            return False

    return ProtocolPlugin(
        id=PROTOCOL_ID,
        name="1inch Aggregator",
        description="DEX aggregator with best swap rates across multiple protocols",
        commands=(
            Command("price", price_run, "Get the USD price of a token", frozenset({"p"})),
            Command("gas", gas_run, "Get current gas prices", frozenset({"g"})),
            Command("swap", swap_run, "Quote a swap and prepare it for signing", frozenset({"s"})),
        ),
        handlers={"swap": swap_handler},
        supported_chains=SUPPORTED_CHAINS,
        initialize=initialize,
        health_check=health_check,
    )
