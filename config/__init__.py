"""TurtleCoin API proxy configuration."""

from .logging import configure_logging, log_error
from .settings import ProxySettings

__all__ = ['configure_logging', 'log_error', 'ProxySettings']
