"""Tests for terminal rendering."""

import asyncio

import pytest
from rich.console import Console

from defiterm.core.intents import ClientIntent, EnterProtocol, TransactionRequest
from defiterm.plugins.loader import PluginLoader
from defiterm.render import describe_intent, render_outcome
from defiterm.session import Session


def output_of(outcome):
    console = Console(record=True, width=120)
    render_outcome(console, outcome)
    return console.export_text()


class TestDescribeIntent:
    """Tests for describe_intent."""

    def test_known_intents(self):
        """Intents describe themselves in one line."""
        assert "1inch Aggregator" in describe_intent(EnterProtocol("1inch", "1inch Aggregator"))
        assert "on chain 10" in describe_intent(TransactionRequest("1inch", "swap", chain_id=10))

    def test_unknown_intent(self):
        """Unknown intents are a bug and raise."""
        class Teleport(ClientIntent):
            pass

        with pytest.raises(TypeError):
            describe_intent(Teleport())


class TestRenderOutcome:
    """Tests for render_outcome."""

    def test_help_and_history(self, loaded):
        """help and history render as tables."""
        session = Session(loaded, PluginLoader(loaded))

        async def scenario():
            help_outcome = await session.execute("help")
            return help_outcome, await session.execute("history")

        help_outcome, history_outcome = asyncio.run(scenario())
        text = output_of(help_outcome)
        assert "Core Commands" in text
        assert "stargate" in text
        assert "help" in output_of(history_outcome)

    def test_not_found_and_error(self, loaded):
        """Failures print their message."""
        session = Session(loaded, PluginLoader(loaded))
        assert "Command not found: nope" in output_of(asyncio.run(session.execute("nope")))
        assert "Not inside a protocol" in output_of(asyncio.run(session.execute("exit")))
