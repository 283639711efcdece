"""Configuration module for loading and managing application settings"""
from .lib.load_settings_conf import (
    load_settings_conf, validate_settings, SettingsError, DEFAULTS, SETTINGS_PATH_ENV
)

__all__ = [
    'load_settings_conf',
    'validate_settings',
    'SettingsError',
    'DEFAULTS',
    'SETTINGS_PATH_ENV'
]
