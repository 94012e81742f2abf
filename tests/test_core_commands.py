"""Tests for the built-in commands."""

import asyncio

from defiterm import __version__
from defiterm.core.commands import HelpListing, ProtocolSummary, register_core_commands
from defiterm.core.context import create_execution_context
from defiterm.core.intents import ClearScreen, EnterProtocol, ExitProtocol, FetchBalance, SetPreference
from defiterm.core.types import ExecutionContext, Fiber, WalletState


def run(registry, command_id, args="", context=None):
    command = registry.get_core(command_id)
    return asyncio.run(command.run(args, context or create_execution_context()))


def in_fiber(protocol):
    return ExecutionContext(namespace=Fiber(protocol))


class TestRegisterCoreCommands:
    """Tests for register_core_commands."""

    def test_idempotent(self, registry):
        """Registering twice keeps one copy of each command."""
        before = registry.core_commands()
        again = register_core_commands(registry)
        assert registry.core_commands() == before
        assert [c.id for c in again] == [c.id for c in before]

    def test_expected_ids(self, registry):
        """The core set contains the shell basics."""
        ids = {c.id for c in registry.core_commands()}
        assert {"help", "protocols", "use", "exit", "whoami", "balance", "history", "clear", "prefer", "version"} <= ids


class TestHelp:
    """Tests for the help command."""

    def test_global_help_lists_everything(self, loaded):
        """Global help shows core plus every protocol."""
        result = run(loaded, "help")
        assert result.success
        listing = result.value
        assert isinstance(listing, HelpListing)
        assert listing.fiber is None
        assert [p.id for p in listing.protocols] == ["1inch", "uniswap-v4", "stargate"]
        help_entry = next(e for e in listing.core if e.id == "help")
        assert set(help_entry.aliases) == {"h", "?"}

    def test_fiber_help_is_scoped(self, loaded):
        """Inside a fiber help shows that protocol and curated core commands."""
        listing = run(loaded, "help", context=in_fiber("1inch")).value
        assert listing.fiber == "1inch"
        assert [p.id for p in listing.protocols] == ["1inch"]
        assert "exit" in {e.id for e in listing.core}
        assert "protocols" not in {e.id for e in listing.core}
        assert listing.exit_hint


class TestProtocols:
    """Tests for the protocols command."""

    def test_summaries(self, loaded):
        """One summary per loaded protocol."""
        summaries = run(loaded, "protocols").value
        assert all(isinstance(s, ProtocolSummary) for s in summaries)
        first = summaries[0]
        assert first.id == "1inch"
        assert first.command_count == 2
        assert first.supported_chains == (1, 137)


class TestUseAndExit:
    """Tests for entering and leaving protocols."""

    def test_use_returns_enter_intent(self, loaded):
        """use <protocol> asks to enter the fiber."""
        result = run(loaded, "use", "stargate")
        assert result.value == EnterProtocol(protocol="stargate", name="Stargate")

    def test_use_requires_argument(self, loaded):
        """use without an id fails."""
        assert run(loaded, "use").success is False

    def test_use_unknown_lists_available(self, loaded):
        """Unknown protocols fail with the available ids."""
        result = run(loaded, "use", "curve")
        assert result.success is False
        assert "1inch" in result.error

    def test_use_other_protocol_inside_fiber(self, loaded):
        """Switching fibers directly is refused."""
        result = run(loaded, "use", "stargate", context=in_fiber("1inch"))
        assert result.success is False
        assert "exit" in result.error

    def test_exit(self, loaded):
        """exit leaves the fiber; in Global it fails."""
        assert run(loaded, "exit", context=in_fiber("1inch")).value == ExitProtocol(previous="1inch")
        assert run(loaded, "exit").success is False


class TestOtherCommands:
    """whoami, history, clear, prefer and version."""

    def test_whoami(self, registry):
        """whoami needs a connected wallet."""
        assert run(registry, "whoami").success is False
        context = ExecutionContext(wallet=WalletState(address="0xabc", chain_id=10, is_connected=True))
        assert run(registry, "whoami", context=context).value == {"address": "0xabc", "chain_id": 10}

    def test_balance(self, registry):
        """balance asks the host wallet for a token balance."""
        assert run(registry, "balance").success is False
        context = ExecutionContext(wallet=WalletState(address="0xabc", chain_id=10, is_connected=True))
        assert run(registry, "balance", "usdc", context=context).value == FetchBalance(
            address="0xabc", token="USDC", chain_id=10
        )

    def test_history_and_clear(self, registry):
        """history lists executions, clear returns a ClearScreen intent."""
        assert run(registry, "history").value == []
        assert isinstance(run(registry, "clear").value, ClearScreen)

    def test_prefer(self, loaded):
        """prefer validates the pair and returns a SetPreference intent."""
        result = run(loaded, "prefer", "swap uniswap-v4")
        assert result.value == SetPreference(command_id="swap", protocol="uniswap-v4")
        assert run(loaded, "prefer", "bridge 1inch").success is False
        assert run(loaded, "prefer", "swap curve").success is False
        assert run(loaded, "prefer", "swap").success is False

    def test_prefer_lists_current(self, loaded):
        """prefer with no arguments shows current preferences."""
        context = ExecutionContext(protocol_preferences={"swap": "1inch"})
        assert run(loaded, "prefer", context=context).value == {"swap": "1inch"}

    def test_version(self, registry):
        """version reports the package version."""
        assert run(registry, "version").value["version"] == __version__
