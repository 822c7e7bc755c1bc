"""
Configuration package for the Threads auto-reply service.

Modules:
    settings: Centralized configuration using Pydantic Settings
    prompts: Prompt fragments used to build reply-generation requests
"""

from config.settings import settings, Settings, SettingValidator

__all__ = ["settings", "Settings", "SettingValidator"]
