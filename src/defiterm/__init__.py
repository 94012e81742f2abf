"""defiterm: a command shell for DeFi protocol plugins."""

__version__ = "0.1.0"
