"""Configuration package."""

from .settings import AppSettings, ChatSettings, RuntimeSettings, get_settings, reload_settings

__all__ = ['AppSettings', 'ChatSettings', 'RuntimeSettings', 'get_settings', 'reload_settings']
