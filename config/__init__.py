"""Configuration module for loading and managing application settings"""
from typing import Dict, Any
import os

from .lib.load_settings_conf import load_settings_conf, SettingsError, DEFAULTS

__all__ = ['settings_conf', 'SettingsError', 'DEFAULTS', 'load_settings_conf']

try:
    settings_conf: Dict[str, Any] = load_settings_conf(
        os.environ.get('STOREFRONT_SETTINGS_DIR', '.')
    )

except SettingsError as e:
    # Re-raise the error but provide more context
    raise type(e)(
        f"Configuration Error\n"
        "=================\n\n"
        f"{str(e)}\n\n"
        "Please ensure settings.conf is properly configured.\n"
        "See settings.conf.example for the available settings."
    )
