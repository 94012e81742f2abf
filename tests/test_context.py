"""Tests for the execution context and the fiber state machine."""

import asyncio

import pytest

from defiterm.core import context as ctx_module
from defiterm.core.context import (
    FiberTransitionError,
    create_execution_context,
    transition,
    update_execution_context,
    with_wallet,
)
from defiterm.core.intents import EnterProtocol, ExitProtocol, SetPreference
from defiterm.core.types import (
    GLOBAL,
    Command,
    CommandResult,
    Fiber,
    Global,
    ResolutionRequest,
    WalletState,
)

from conftest import echo

NOOP = Command("noop", echo("noop"))


class TestTransition:
    """Tests for the Global | Fiber transition table."""

    def test_enter_from_global(self):
        """EnterProtocol moves Global into the protocol fiber."""
        assert transition(GLOBAL, EnterProtocol("1inch")) == Fiber("1inch")

    def test_exit_from_fiber(self):
        """ExitProtocol moves a fiber back to Global."""
        assert transition(Fiber("1inch"), ExitProtocol()) == GLOBAL

    def test_other_values_keep_state(self):
        """Non-intent values leave the namespace alone."""
        assert transition(GLOBAL, {"price": 1}) == GLOBAL
        assert transition(GLOBAL, ExitProtocol()) == GLOBAL
        assert transition(Fiber("1inch"), "text") == Fiber("1inch")

    def test_reenter_same_fiber(self):
        """Entering the active protocol again is a self-loop."""
        assert transition(Fiber("1inch"), EnterProtocol("1inch")) == Fiber("1inch")

    def test_fiber_to_fiber_is_illegal(self):
        """Switching fibers directly raises."""
        with pytest.raises(FiberTransitionError):
            transition(Fiber("1inch"), EnterProtocol("stargate"))

    def test_unknown_namespace(self):
        """Unknown namespace values are rejected."""
        with pytest.raises(TypeError):
            transition("1inch", ExitProtocol())


class TestExecutionContext:
    """Tests for create/update of the execution context."""

    def test_new_context_is_global(self):
        """A fresh context is Global with empty history."""
        context = create_execution_context()
        assert isinstance(context.namespace, Global)
        assert context.active_protocol is None
        assert context.history == ()
        assert context.wallet.is_connected is False

    def test_round_trip_enter_exit(self, loaded):
        """Entering via a protocol id then exiting restores Global."""
        context = create_execution_context()
        resolved = loaded.resolve(ResolutionRequest(input="1inch", execution_context=context))
        args = resolved.protocol_name_as_command
        result = asyncio.run(resolved.command.run(args, context))
        context = update_execution_context(context, resolved.command, args, result)
        assert context.active_protocol == "1inch"

        exit_command = loaded.get_core("exit")
        result = asyncio.run(exit_command.run("", context))
        context = update_execution_context(context, exit_command, "", result)
        assert context.active_protocol is None
        assert [h.command_id for h in context.history] == ["use", "exit"]

    def test_failed_result_may_carry_fiber_signal(self):
        """Fiber signals apply even when the command failed."""
        context = create_execution_context()
        result = CommandResult.fail("partial failure", value=EnterProtocol("1inch"))
        context = update_execution_context(context, NOOP, "", result)
        assert context.active_protocol == "1inch"
        assert context.history[-1].success is False
        assert context.history[-1].error == "partial failure"

    def test_illegal_signal_keeps_namespace(self):
        """A fiber-to-fiber signal is ignored, the history still records it."""
        context = update_execution_context(
            create_execution_context(), NOOP, "", CommandResult.ok(EnterProtocol("1inch"))
        )
        context = update_execution_context(context, NOOP, "", CommandResult.ok(EnterProtocol("stargate")))
        assert context.active_protocol == "1inch"
        assert len(context.history) == 2

    def test_preference_only_on_success(self):
        """SetPreference is applied for successful results only."""
        context = create_execution_context()
        signal = SetPreference(command_id="swap", protocol="uniswap-v4")
        failed = update_execution_context(context, NOOP, "", CommandResult.fail("no", value=signal))
        assert dict(failed.protocol_preferences) == {}
        ok = update_execution_context(context, NOOP, "", CommandResult.ok(signal))
        assert dict(ok.protocol_preferences) == {"swap": "uniswap-v4"}

    def test_protocol_is_recorded_not_sticky(self):
        """The resolved protocol lands in history without changing namespace."""
        context = update_execution_context(
            create_execution_context(), NOOP, "ETH", CommandResult.ok(1), protocol="1inch"
        )
        assert context.history[-1].protocol == "1inch"
        assert context.active_protocol is None
        assert context.last_command == "noop"

    def test_update_is_pure(self):
        """The input context is never mutated."""
        context = create_execution_context()
        update_execution_context(context, NOOP, "", CommandResult.ok(EnterProtocol("1inch")))
        assert context.history == ()
        assert context.active_protocol is None

    def test_history_is_bounded(self, monkeypatch):
        """History keeps only the most recent entries."""
        monkeypatch.setattr(ctx_module, "HISTORY_LIMIT", 3)
        context = create_execution_context()
        for i in range(5):
            context = update_execution_context(context, NOOP, str(i), CommandResult.ok())
        assert [h.args for h in context.history] == ["2", "3", "4"]

    def test_with_wallet(self):
        """with_wallet swaps the wallet and keeps everything else."""
        context = update_execution_context(
            create_execution_context(), NOOP, "", CommandResult.ok(EnterProtocol("1inch"))
        )
        wallet = WalletState(address="0xabc", chain_id=1, is_connected=True)
        updated = with_wallet(context, wallet)
        assert updated.wallet == wallet
        assert updated.active_protocol == "1inch"
