"""Tests for plugin models and the plugin loader."""

import asyncio

import pytest

from defiterm.config import Settings
from defiterm.core.types import Command, CommandResult
from defiterm.plugins.loader import PluginLoader
from defiterm.plugins.models import (
    PluginConfig,
    PluginValidationError,
    ProtocolPlugin,
    validate_plugin,
)
from defiterm.plugins.providers import oneinch as oneinch_provider

from conftest import echo, make_plugin


class TestPluginConfig:
    """Tests for PluginConfig."""

    def test_default_values(self):
        """Test default configuration values."""
        config = PluginConfig()
        assert config.enabled is True
        assert config.config == {}
        assert config.credentials == {}

    def test_round_trip(self):
        """Test to_dict / from_dict."""
        config = PluginConfig(enabled=False, config={"slippage": 1}, credentials={"api_key": "k"})
        assert PluginConfig.from_dict(config.to_dict()) == config


class TestValidatePlugin:
    """Tests for validate_plugin."""

    def test_valid(self, oneinch):
        """A well-formed plugin passes."""
        validate_plugin(oneinch, frozenset({"help"}))

    @pytest.mark.parametrize("plugin_id", ["", "one inch", "a:b", "core", "help"])
    def test_bad_ids(self, plugin_id):
        """Empty, spaced, namespaced, reserved and core-colliding ids fail."""
        with pytest.raises(PluginValidationError):
            validate_plugin(make_plugin(plugin_id), frozenset({"help"}))

    def test_duplicate_command_id(self):
        """Two commands with one id fail."""
        plugin = make_plugin("dex", Command("swap", echo("a")), Command("swap", echo("b")))
        with pytest.raises(PluginValidationError):
            validate_plugin(plugin)

    def test_alias_clash(self):
        """An alias taken by another command fails."""
        plugin = make_plugin(
            "dex",
            Command("swap", echo("a"), aliases=frozenset({"s"})),
            Command("stake", echo("b"), aliases=frozenset({"s"})),
        )
        with pytest.raises(PluginValidationError):
            validate_plugin(plugin)

    def test_reserved_command_names(self):
        """Command ids and aliases may not take reserved names."""
        reserved = frozenset({"exit", "back"})
        validate_plugin(make_plugin("dex", Command("swap", echo("a"))), reserved_commands=reserved)
        with pytest.raises(PluginValidationError):
            validate_plugin(make_plugin("dex", Command("exit", echo("a"))), reserved_commands=reserved)
        with pytest.raises(PluginValidationError):
            validate_plugin(
                make_plugin("dex", Command("leave", echo("a"), aliases=frozenset({"back"}))),
                reserved_commands=reserved,
            )

    def test_handler_without_command(self):
        """Handlers must belong to a command."""
        async def handler(value, context):
            return CommandResult.ok()

        plugin = make_plugin("dex", Command("swap", echo("a")), handlers={"bridge": handler})
        with pytest.raises(PluginValidationError):
            validate_plugin(plugin)


class TestPluginLoader:
    """Tests for PluginLoader."""

    def test_load_twice_is_idempotent(self, registry, oneinch):
        """Loading the same plugin twice succeeds without duplicates."""
        loader = PluginLoader(registry)
        first = asyncio.run(loader.load_plugin(oneinch))
        second = asyncio.run(loader.load_plugin(oneinch))

        assert first.success is True
        assert second.success is True
        assert registry.protocol_ids() == ["1inch"]
        ids = [c.id for p, c in registry.all_commands() if p == "1inch"]
        assert ids == ["price", "swap"]

    def test_different_table_same_id(self, registry, oneinch):
        """A different plugin under a loaded id fails and keeps the first."""
        loader = PluginLoader(registry)
        asyncio.run(loader.load_plugin(oneinch))
        result = asyncio.run(loader.load_plugin(make_plugin("1inch", Command("quote", echo("x")))))

        assert result.success is False
        assert "different command table" in result.error
        assert registry.get_protocol("1inch") is oneinch
        assert loader.is_loaded("1inch")

    def test_initialize_receives_config(self, registry):
        """initialize gets the context and config before registration."""
        seen = {}

        async def initialize(context, config):
            seen["api_key"] = config.credentials.get("api_key")
            seen["registered"] = registry.has_protocol("dex")

        plugin = make_plugin("dex", Command("swap", echo("a")), initialize=initialize)
        loader = PluginLoader(registry)
        result = asyncio.run(loader.load_plugin(plugin, PluginConfig(credentials={"api_key": "k"})))

        assert result.success is True
        assert seen == {"api_key": "k", "registered": False}
        assert loader.get_plugin("dex").loaded_at is not None

    def test_initialize_failure(self, registry):
        """A failing initialize leaves the plugin out of the registry."""
        async def initialize(context, config):
            raise RuntimeError("upstream down")

        plugin = make_plugin("dex", Command("swap", echo("a")), initialize=initialize)
        loader = PluginLoader(registry)
        result = asyncio.run(loader.load_plugin(plugin))

        assert result.success is False
        assert result.error == "upstream down"
        assert not registry.has_protocol("dex")
        assert loader.get_plugin("dex").error == "upstream down"
        assert loader.loaded_ids() == []

    def test_disabled(self, registry, oneinch):
        """Disabled configs are not loaded."""
        loader = PluginLoader(registry)
        result = asyncio.run(loader.load_plugin(oneinch, PluginConfig(enabled=False)))
        assert result.success is False
        assert not registry.has_protocol("1inch")

    def test_validation_failure_is_reported(self, registry):
        """Malformed tables are reported, never raised."""
        loader = PluginLoader(registry)
        result = asyncio.run(loader.load_plugin(make_plugin("use")))
        assert result.success is False
        assert not registry.has_protocol("use")

    def test_exit_command_cannot_be_shadowed(self, registry):
        """A plugin defining exit or its aliases is refused, so fibers stay leavable."""
        loader = PluginLoader(registry)
        plugin = make_plugin("dex", Command("exit", echo("dex.exit"), aliases=frozenset({"back", ".."})))
        result = asyncio.run(loader.load_plugin(plugin))

        assert result.success is False
        assert "reserved" in result.error
        assert not registry.has_protocol("dex")

    def test_same_factory_twice(self, registry):
        """Two instances from one plugin factory load as the same plugin."""
        loader = PluginLoader(registry)
        first = asyncio.run(loader.load_plugin(oneinch_provider.create_plugin(Settings())))
        second = asyncio.run(loader.load_plugin(oneinch_provider.create_plugin(Settings())))

        assert first.success is True
        assert second.success is True
        ids = [c.id for p, c in registry.all_commands() if p == "1inch"]
        assert ids == ["price", "gas", "swap"]

    def test_load_all_keeps_order(self, registry, oneinch, uniswap, stargate):
        """load_all registers in the given order."""
        loader = PluginLoader(registry)
        results = asyncio.run(loader.load_all([stargate, oneinch, uniswap]))
        assert list(results) == ["stargate", "1inch", "uniswap-v4"]
        assert registry.protocol_ids() == ["stargate", "1inch", "uniswap-v4"]

    def test_health_check_all(self, registry):
        """Health covers checks, plugins without checks and failed loads."""
        async def healthy(context):
            return True

        async def broken(context):
            raise RuntimeError("boom")

        async def failing_init(context, config):
            raise RuntimeError("nope")

        loader = PluginLoader(registry)
        asyncio.run(loader.load_all([
            make_plugin("a", Command("x", echo("a")), health_check=healthy),
            make_plugin("b", Command("x", echo("b")), health_check=broken),
            make_plugin("c", Command("x", echo("c"))),
            make_plugin("d", Command("x", echo("d")), initialize=failing_init),
        ]))
        health = asyncio.run(loader.health_check_all())
        assert health == {"a": True, "b": False, "c": True, "d": False}

    def test_plugin_equality_ignores_default_config(self):
        """default_config does not change plugin identity."""
        run = echo("a")
        first = ProtocolPlugin(id="dex", name="Dex", commands=(Command("swap", run),))
        second = ProtocolPlugin(
            id="dex", name="Dex", commands=[Command("swap", run)], default_config=PluginConfig(enabled=False)
        )
        assert first == second
