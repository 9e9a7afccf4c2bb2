# Core package initialization
# Configuration, logging and the error taxonomy shared by every layer

from . import config, exceptions, logging_config

__all__ = [
    "config",
    "exceptions",
    "logging_config",
]
