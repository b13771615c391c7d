"""Discovery and ranking engine for stumble-style content recommendation."""

__version__ = "0.1.0"
