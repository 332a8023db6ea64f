"""
Configuration management system for the Ensembl git tools.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass, asdict
import logging

from ..error_handling import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("~/.ensgit.yaml")


@dataclass
class GitHubConfig:
    """GitHub API configuration."""
    access_token: Optional[str] = None
    token_file: Optional[str] = None
    api_base_url: str = "https://api.github.com"
    organisation: str = "Ensembl"
    timeout: int = 30
    max_retries: int = 3
    per_page: int = 100


@dataclass
class GitConfig:
    """Defaults for git operations."""
    remote: str = "origin"
    primary_branch: str = "master"
    default_topic_branch: str = "dev"
    protocol: str = "ssh"  # ssh, https
    verbose: bool = False
    prompt: bool = True


@dataclass
class ModulesConfig:
    """Location of an optional JSON module table."""
    file: Optional[str] = None


@dataclass
class CvsConfig:
    """CVS export configuration."""
    last_export_config: str = "cvsexportcommit.ens.lastexport"
    max_commits_back: int = 10


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "WARNING"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_file_size: int = 10  # MB
    backup_count: int = 5
    colors: bool = True
    structured: bool = False


@dataclass
class AppConfig:
    """Complete application configuration."""
    github: GitHubConfig
    git: GitConfig
    modules: ModulesConfig
    cvs: CvsConfig
    logging: LoggingConfig

    def to_dict(self, mask_secrets: bool = True) -> Dict[str, Any]:
        """
        Convert configuration to nested dictionaries.

        Args:
            mask_secrets: Replace tokens with asterisks

        Returns:
            Configuration dictionary
        """
        data = asdict(self)
        if mask_secrets and data["github"].get("access_token"):
            data["github"]["access_token"] = "*" * 8
        return data


VALID_PROTOCOLS = {"ssh", "https"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ConfigManager:
    """
    Manages application configuration from multiple sources.

    Configuration is loaded in the following order (later sources override earlier):
    1. Default configuration
    2. Configuration file
    3. Environment variables
    4. Command-line arguments (applied through ``apply_overrides``)
    """

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to configuration file
        """
        self.config_file = self._locate_config_file(config_file)
        self._config: Optional[AppConfig] = None
        self._overrides: Dict[str, Any] = {}
        self._env_var_mapping = self._create_env_var_mapping()

    def _locate_config_file(self, config_file: Optional[Union[str, Path]]) -> Optional[Path]:
        if config_file:
            return Path(config_file)
        env_file = os.getenv("ENSGIT_CONFIG")
        if env_file:
            return Path(env_file)
        default = DEFAULT_CONFIG_FILE.expanduser()
        return default if default.exists() else None

    def _create_env_var_mapping(self) -> Dict[str, str]:
        """Create mapping of environment variables to config paths."""
        return {
            # GitHub configuration
            "GITHUB_TOKEN": "github.access_token",
            "GITHUB_TOKEN_FILE": "github.token_file",
            "GITHUB_API_URL": "github.api_base_url",
            "GITHUB_ORGANISATION": "github.organisation",

            # Git configuration
            "ENSGIT_REMOTE": "git.remote",
            "ENSGIT_PRIMARY_BRANCH": "git.primary_branch",
            "ENSGIT_PROTOCOL": "git.protocol",

            # Module table
            "ENSGIT_MODULES_FILE": "modules.file",

            # Logging configuration
            "ENSGIT_LOG_LEVEL": "logging.level",
            "ENSGIT_LOG_FILE": "logging.file",
        }

    def load_config(self) -> AppConfig:
        """
        Load configuration from all sources.

        Returns:
            Complete application configuration

        Raises:
            ConfigurationError: If a configured value is invalid
        """
        if self._config is not None:
            return self._config

        config_dict = self._get_default_config()

        if self.config_file is not None:
            file_config = self._load_config_file(self.config_file)
            config_dict = self._merge_configs(config_dict, file_config)

        env_config = self._load_env_config()
        config_dict = self._merge_configs(config_dict, env_config)

        config_dict = self._merge_configs(config_dict, self._overrides)

        config_dict = self._substitute_env_vars(config_dict)

        self._validate_config(config_dict)

        self._config = self._dict_to_config(config_dict)
        return self._config

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values."""
        return {
            "github": asdict(GitHubConfig()),
            "git": asdict(GitConfig()),
            "modules": asdict(ModulesConfig()),
            "cvs": asdict(CvsConfig()),
            "logging": asdict(LoggingConfig()),
        }

    def _load_config_file(self, config_path: Path) -> Dict[str, Any]:
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to configuration file

        Returns:
            Configuration dictionary

        Raises:
            ConfigurationError: If the file cannot be read or parsed
        """
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {config_path}", cause=e)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Config file {config_path} is not valid YAML", cause=e)

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")

        logger.info(f"Loaded configuration from {config_path}")
        return config

    def _load_env_config(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        Returns:
            Configuration dictionary from environment variables
        """
        env_config: Dict[str, Any] = {}

        for env_var, config_path in self._env_var_mapping.items():
            value = os.getenv(env_var)
            if value is not None and value != "":
                self._set_nested_value(env_config, config_path, value)

        # Any non-empty NO_PROMPT switches prompts off, as the shell scripts did
        if os.getenv("NO_PROMPT"):
            self._set_nested_value(env_config, "git.prompt", False)

        return env_config

    def _set_nested_value(self, config: Dict[str, Any], path: str, value: Any) -> None:
        """
        Set a nested configuration value using dot notation.

        Args:
            config: Configuration dictionary
            path: Dot-separated path (e.g., 'github.access_token')
            value: Value to set
        """
        keys = path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _substitute_env_vars(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Substitute ``${VAR}`` placeholders with environment variables.

        Args:
            config: Configuration dictionary

        Returns:
            Configuration with environment variables substituted
        """
        def substitute_recursive(obj):
            if isinstance(obj, dict):
                return {k: substitute_recursive(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [substitute_recursive(item) for item in obj]
            elif isinstance(obj, str) and obj.startswith('${') and obj.endswith('}'):
                env_var = obj[2:-1]
                return os.getenv(env_var, obj)
            else:
                return obj

        return substitute_recursive(config)

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge two configuration dictionaries.

        Args:
            base: Base configuration
            override: Override configuration

        Returns:
            Merged configuration
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        Validate configuration values.

        Args:
            config: Configuration dictionary

        Raises:
            ConfigurationError: If configuration is invalid
        """
        for section in ("github", "git", "modules", "cvs", "logging"):
            if not isinstance(config.get(section), dict):
                raise ConfigurationError(
                    f"Configuration section '{section}' must be a mapping",
                    config_section=section
                )

        protocol = str(config["git"].get("protocol", "ssh")).lower()
        if protocol not in VALID_PROTOCOLS:
            raise ConfigurationError(
                f"Invalid protocol: {protocol}. Valid protocols: {sorted(VALID_PROTOCOLS)}",
                config_section="git", config_key="protocol"
            )
        config["git"]["protocol"] = protocol

        log_level = str(config["logging"].get("level", "WARNING")).upper()
        if log_level not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid log level: {log_level}. Valid levels: {sorted(VALID_LOG_LEVELS)}",
                config_section="logging", config_key="level"
            )
        config["logging"]["level"] = log_level

        for section, key in (("github", "timeout"), ("github", "max_retries"),
                             ("github", "per_page"), ("cvs", "max_commits_back")):
            try:
                value = int(config[section].get(key))
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"{section}.{key} must be an integer",
                    config_section=section, config_key=key
                )
            if value <= 0:
                raise ConfigurationError(
                    f"{section}.{key} must be positive",
                    config_section=section, config_key=key
                )
            config[section][key] = value

        boolean_keys = (("git", "verbose"), ("git", "prompt"), ("logging", "colors"), ("logging", "structured"))
        for section, key in boolean_keys:
            config[section][key] = self._to_bool(config[section].get(key))

        if not config["github"].get("access_token") and not config["github"].get("token_file"):
            logger.debug("GitHub access token not configured - API calls will be anonymous")

    @staticmethod
    def _to_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ('true', 'yes', '1', 'on')
        return bool(value)

    def _dict_to_config(self, config_dict: Dict[str, Any]) -> AppConfig:
        """
        Convert configuration dictionary to AppConfig object.

        Raises:
            ConfigurationError: If a section carries unknown keys
        """
        try:
            return AppConfig(
                github=GitHubConfig(**config_dict.get("github", {})),
                git=GitConfig(**config_dict.get("git", {})),
                modules=ModulesConfig(**config_dict.get("modules", {})),
                cvs=CvsConfig(**config_dict.get("cvs", {})),
                logging=LoggingConfig(**config_dict.get("logging", {}))
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key: {e}", cause=e)

    def apply_overrides(self, overrides: Dict[str, Any]) -> AppConfig:
        """
        Apply command-line overrides on top of every other source.

        Args:
            overrides: Dot-separated paths mapped to values; None values are ignored

        Returns:
            Reloaded configuration
        """
        for path, value in overrides.items():
            if value is not None:
                self._set_nested_value(self._overrides, path, value)
        return self.reload_config()

    def get_config(self) -> AppConfig:
        """
        Get the current configuration.

        Returns:
            Application configuration
        """
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(self) -> AppConfig:
        """
        Reload configuration from all sources.

        Returns:
            Reloaded application configuration
        """
        self._config = None
        return self.load_config()


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_file: Optional[Union[str, Path]] = None) -> ConfigManager:
    """
    Get the global configuration manager instance.

    Args:
        config_file: Path to configuration file (only used on first call)

    Returns:
        ConfigManager instance
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_file)
    return _config_manager


def reset_config_manager() -> None:
    """Forget the global configuration manager."""
    global _config_manager
    _config_manager = None


def get_config() -> AppConfig:
    """
    Get the current application configuration.

    Returns:
        Application configuration
    """
    return get_config_manager().get_config()
