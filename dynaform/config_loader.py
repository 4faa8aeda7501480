"""
Configuration loading utilities for dynaform.

Loads the application configuration from config.yaml, deep-merged over the
built-in defaults, and configures logging from it. Any problem with the file
falls back to the defaults.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging
from copy import deepcopy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

LOGGING_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL
}


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get the built-in default configuration.

    Returns:
        Dictionary with default configuration
    """
    return {
        'app': {
            'name': 'Dynaform',
            'version': '0.1.0'
        },
        'logging': {
            'level': 'INFO',
            'format': LOG_FORMAT
        },
        'forms': {
            'directory': 'forms',
            'default_form': 'contact.yaml'
        },
        'ui': {
            'page_title': 'Dynamic Forms',
            'layout': 'centered'
        },
        'lookup': {
            'base_url': 'https://zipcloud.ibsnet.co.jp/api/search',
            'timeout': 5.0
        },
        'submission': {
            'timeout': None
        }
    }


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load application configuration.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)

    Returns:
        Complete configuration dictionary; the defaults when the file is
        missing, empty, not a mapping or not valid YAML
    """
    config_path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return default_config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)

        if user_config is None:
            logger.warning(f"Configuration file is empty: {config_path}")
            return default_config

        if not isinstance(user_config, dict):
            logger.error(f"Configuration file is not a valid dictionary: {config_path}")
            logger.info("Using default configuration")
            return default_config

        config = deep_merge(default_config, user_config)

        logger.info(f"Successfully loaded configuration from {config_path}")
        return config

    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config

    except (IOError, OSError) as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config


def _positive_number(value: Any) -> bool:
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration structure and required fields.

    Args:
        config: Configuration dictionary to validate

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ['app', 'logging', 'forms', 'ui', 'lookup', 'submission']

    for section in required_sections:
        if not isinstance(config.get(section), dict):
            logger.warning(f"Missing required configuration section: {section}")
            return False

    app = config['app']
    if 'name' not in app or 'version' not in app:
        logger.warning("Missing required app configuration (name or version)")
        return False

    level = config['logging'].get('level', 'INFO')
    if not isinstance(level, str) or level.upper() not in LOGGING_LEVELS:
        logger.warning(f"Unknown logging level: {level}")
        return False

    if not isinstance(config['forms'].get('directory'), str):
        logger.warning("forms.directory must be a string")
        return False

    lookup = config['lookup']
    if not isinstance(lookup.get('base_url'), str) or not lookup['base_url'].startswith(('http://', 'https://')):
        logger.warning("lookup.base_url must be an http(s) URL")
        return False

    if not _positive_number(lookup.get('timeout')):
        logger.warning("lookup.timeout must be a positive number")
        return False

    submit_timeout = config['submission'].get('timeout')
    if submit_timeout is not None and not _positive_number(submit_timeout):
        logger.warning("submission.timeout must be a positive number or null")
        return False

    return True


def get_config_value(section: str, key: str, default: Any = None,
                     config: Optional[Dict[str, Any]] = None) -> Any:
    """
    Get a specific configuration value.

    Args:
        section: Configuration section (e.g., 'forms', 'ui')
        key: Configuration key within section
        default: Default value if not found
        config: Already loaded configuration; loaded from disk when omitted

    Returns:
        Configuration value or default
    """
    if config is None:
        config = load_config()
    section_values = config.get(section) or {}
    if not isinstance(section_values, dict):
        return default
    return section_values.get(key, default)


def get_logging_level(level_str: Optional[str]) -> int:
    """Map string logging level to logging constant."""
    if not isinstance(level_str, str):
        return logging.INFO
    return LOGGING_LEVELS.get(level_str.upper(), logging.INFO)


def configure_logging(config: Optional[Dict[str, Any]] = None) -> int:
    """
    Configure root logging from the 'logging' config section.

    Returns:
        The numeric level that was applied
    """
    level_str = get_config_value('logging', 'level', 'INFO', config)
    log_format = get_config_value('logging', 'format', LOG_FORMAT, config)
    level = get_logging_level(level_str)
    logging.basicConfig(level=level, format=log_format)
    logger.info(f"Logging configured to level: {level_str}")
    return level
