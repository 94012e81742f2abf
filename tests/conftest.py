"""Shared fixtures: a registry with core commands and small fake protocols."""

import asyncio

import pytest

from defiterm.core.commands import register_core_commands
from defiterm.core.registry import CommandRegistry
from defiterm.core.types import Command, CommandResult
from defiterm.plugins.loader import PluginLoader
from defiterm.plugins.models import ProtocolPlugin


def echo(label):
    """Command run function returning ``label`` and the args it got."""
    async def run(args, context):
        return CommandResult.ok({"from": label, "args": args})
    return run


def make_plugin(plugin_id, *commands, **kwargs):
    return ProtocolPlugin(id=plugin_id, name=kwargs.pop("name", plugin_id.title()), commands=commands, **kwargs)


@pytest.fixture
def oneinch():
    return make_plugin(
        "1inch",
        Command("price", echo("1inch.price"), "Token price", frozenset({"p"})),
        Command("swap", echo("1inch.swap"), "Swap tokens"),
        name="1inch Aggregator",
        supported_chains={1, 137},
    )


@pytest.fixture
def uniswap():
    return make_plugin(
        "uniswap-v4",
        Command("swap", echo("uniswap.swap"), "Swap on Uniswap"),
        name="Uniswap V4",
    )


@pytest.fixture
def stargate():
    return make_plugin(
        "stargate",
        Command("bridge", echo("stargate.bridge"), "Bridge tokens"),
        name="Stargate",
    )


@pytest.fixture
def registry():
    reg = CommandRegistry()
    register_core_commands(reg)
    return reg


@pytest.fixture
def loaded(registry, oneinch, uniswap, stargate):
    """Registry with 1inch, uniswap-v4 and stargate loaded, in that order."""
    loader = PluginLoader(registry)
    results = asyncio.run(loader.load_all([oneinch, uniswap, stargate]))
    assert all(r.success for r in results.values())
    return registry
