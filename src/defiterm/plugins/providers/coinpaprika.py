"""CoinPaprika plugin: market prices and charts, no credentials needed."""

from __future__ import annotations

from typing import Dict, List, Optional

from ...config import Settings
from ...core.intents import AddChart
from ...core.types import Command, CommandResult, ExecutionContext
from ..models import PluginConfig, ProtocolPlugin
from .base import ApiClient, ProviderError

PROTOCOL_ID = "coinpaprika"

CHART_MODES = ("line", "candlestick")


class CoinPaprikaClient(ApiClient):
    """Client for the public CoinPaprika API."""

    def list_coins(self) -> List[dict]:
        data = self.get("/coins")
        return data if isinstance(data, list) else []

    def ticker(self, coin_id: str) -> dict:
        data = self.get(f"/tickers/{coin_id}")
        return data if isinstance(data, dict) else {}

    def search(self, query: str, limit: int = 10) -> List[dict]:
        data = self.get("/search", params={"q": query, "c": "currencies", "limit": limit})
        return data.get("currencies", []) if isinstance(data, dict) else []


class CoinRegistry:
    """Maps ticker symbols to CoinPaprika coin ids (best ranked coin wins)."""

    def __init__(self):
        self._by_symbol: Dict[str, str] = {}
        self._ids: set = set()

    def load(self, coins: List[dict]) -> None:
        def rank(coin: dict) -> int:
            # rank 0 means unranked
            return coin.get("rank") or 10**9

        for coin in sorted(coins, key=rank):
            coin_id = coin.get("id")
            symbol = str(coin.get("symbol", "")).lower()
            if not coin_id or not coin.get("is_active", True):
                continue
            self._ids.add(coin_id)
            if symbol and symbol not in self._by_symbol:
                self._by_symbol[symbol] = coin_id

    def resolve(self, text: str) -> Optional[str]:
        lowered = text.strip().lower()
        if lowered in self._by_symbol:
            return self._by_symbol[lowered]
        if lowered in self._ids:
            return lowered
        return None

    def __len__(self) -> int:
        return len(self._ids)


def create_plugin(
    settings: Optional[Settings] = None,
    client: Optional[CoinPaprikaClient] = None,
) -> ProtocolPlugin:
    settings = settings or Settings()
    client = client or CoinPaprikaClient(settings.coinpaprika_base_url, settings.http_timeout_s)
    coins = CoinRegistry()

    async def initialize(context: ExecutionContext, config: PluginConfig) -> None:
        coins.load(await client.call(client.list_coins))
        if not len(coins):
            raise ProviderError("CoinPaprika returned an empty coin list")

    async def lookup(text: str) -> Optional[str]:
        coin_id = coins.resolve(text)
        if coin_id:
            return coin_id
        matches = await client.call(client.search, text, 1)
        return matches[0].get("id") if matches else None

    async def price_run(args: str, context: ExecutionContext) -> CommandResult:
        parts = args.split()
        if not parts:
            return CommandResult.fail("Usage: price <symbol|coin-id>")
        try:
            coin_id = await lookup(parts[0])
            if not coin_id:
                return CommandResult.fail(f"Unknown coin: {parts[0]}")
            ticker = await client.call(client.ticker, coin_id)
        except ProviderError as e:
            return CommandResult.fail(str(e))

        usd = (ticker.get("quotes") or {}).get("USD") or {}
        return CommandResult.ok({
            "coin": ticker.get("name", coin_id),
            "symbol": ticker.get("symbol", parts[0].upper()),
            "price_usd": usd.get("price"),
            "change_24h_pct": usd.get("percent_change_24h"),
            "market_cap_usd": usd.get("market_cap"),
        })

    async def search_run(args: str, context: ExecutionContext) -> CommandResult:
        query = args.strip()
        if not query:
            return CommandResult.fail("Usage: search <query>")
        try:
            matches = await client.call(client.search, query, 10)
        except ProviderError as e:
            return CommandResult.fail(str(e))
        return CommandResult.ok([
            {"id": m.get("id"), "name": m.get("name"), "symbol": m.get("symbol"), "rank": m.get("rank")}
            for m in matches
        ])

    async def chart_run(args: str, context: ExecutionContext) -> CommandResult:
        parts = args.split()
        if not parts:
            return CommandResult.fail("Usage: chart <symbol> [line|candlestick]")
        mode = parts[1].lower() if len(parts) > 1 else "line"
        if mode not in CHART_MODES:
            return CommandResult.fail(f"Chart mode must be one of: {', '.join(CHART_MODES)}")
        try:
            coin_id = await lookup(parts[0])
        except ProviderError as e:
            return CommandResult.fail(str(e))
        if not coin_id:
            return CommandResult.fail(f"Unknown coin: {parts[0]}")
        return CommandResult.ok(AddChart(chart_type="price", symbol=coin_id, mode=mode))

    async def health_check(context: ExecutionContext) -> bool:
        try:
            await client.call(client.get, "/global")
            return True
        except ProviderError:
            return False

    return ProtocolPlugin(
        id=PROTOCOL_ID,
        name="CoinPaprika",
        description="Market data: prices, search and charts",
        commands=(
            Command("price", price_run, "Get the USD price of a coin", frozenset({"p"})),
            Command("search", search_run, "Search coins by name or symbol", frozenset({"find"})),
            Command("chart", chart_run, "Add a price chart", frozenset({"c"})),
        ),
        initialize=initialize,
        health_check=health_check,
    )
