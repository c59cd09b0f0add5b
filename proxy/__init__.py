"""TurtleCoin daemon caching API proxy."""

__version__ = "0.1.0"
