from .config import AppConfiguration, ConfigurationManager, Settings, load_settings
from .logging_setup import configure_logging

__all__ = [
    "AppConfiguration",
    "ConfigurationManager",
    "Settings",
    "configure_logging",
    "load_settings",
]
