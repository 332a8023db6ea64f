"""
Configuration management for the Ensembl git tools.
"""

from .config_manager import (
    ConfigManager, AppConfig, GitHubConfig, GitConfig, ModulesConfig,
    CvsConfig, LoggingConfig, get_config_manager, reset_config_manager, get_config
)

__all__ = [
    "ConfigManager",
    "AppConfig",
    "GitHubConfig",
    "GitConfig",
    "ModulesConfig",
    "CvsConfig",
    "LoggingConfig",
    "get_config_manager",
    "reset_config_manager",
    "get_config"
]
