"""
Configuration loading and validation for metric tracking and export.

This module provides validation for:
- Metricd client configuration
- Logging configuration
- Extra metadata
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field

from ..export.metricd_client import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT_S

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Raised when a configuration file cannot be loaded."""
    pass


class MetricdSettings(BaseModel):
    """Typed metricd client settings."""
    
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    app: Optional[str] = None
    hostname: Optional[str] = None
    timeout_s: float = Field(default=DEFAULT_TIMEOUT_S, gt=0)


class MetricdConfigValidator:
    """Validates the ``metricd`` section."""
    
    DEFAULTS = {
        'host': DEFAULT_HOST,
        'port': DEFAULT_PORT,
        'timeout_s': DEFAULT_TIMEOUT_S,
    }
    
    @classmethod
    def validate(cls, config: Dict[str, Any]) -> List[str]:
        """Validate a metricd section, filling in missing defaults."""
        errors = []
        
        for key, default in cls.DEFAULTS.items():
            if key not in config:
                config[key] = default
                logger.warning(f"metricd: Added missing {key} (default {default!r})")
        
        if not isinstance(config['host'], str) or not config['host']:
            errors.append(f"metricd: Invalid host {config['host']!r}")
        
        port = config['port']
        if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535:
            errors.append(f"metricd: Invalid port {port!r} (should be 1-65535)")
        
        timeout = config['timeout_s']
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
            errors.append(f"metricd: Invalid timeout_s {timeout!r} (should be > 0)")
        
        if 'app' not in config or not config['app']:
            errors.append("metricd: Missing app name")
        elif not isinstance(config['app'], str):
            errors.append(f"metricd: app should be a string, got {type(config['app']).__name__}")
        
        if config.get('hostname') is not None and not isinstance(config['hostname'], str):
            errors.append("metricd: hostname should be a string")
        
        return errors


class TrackConfigValidator:
    """Validates a complete tracking configuration."""
    
    KNOWN_SECTIONS = {'metricd', 'meta', 'logging'}
    
    @classmethod
    def validate(cls, config: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """Validate complete configuration."""
        all_errors = []
        
        if not isinstance(config, dict):
            return False, ["Configuration should be a mapping of sections"]
        
        if 'metricd' not in config:
            all_errors.append("Missing top-level section: metricd")
            return False, all_errors
        
        unknown = set(config.keys()) - cls.KNOWN_SECTIONS
        if unknown:
            logger.warning(f"Ignoring unknown configuration sections: {sorted(unknown)}")
        
        if not isinstance(config['metricd'], dict):
            all_errors.append("metricd section should be a mapping")
        else:
            all_errors.extend(MetricdConfigValidator.validate(config['metricd']))
        
        all_errors.extend(cls._validate_meta(config.get('meta', {})))
        all_errors.extend(cls._validate_logging(config.get('logging', {})))
        
        return len(all_errors) == 0, all_errors
    
    @classmethod
    def _validate_meta(cls, meta: Any) -> List[str]:
        """Validate extra metadata."""
        errors = []
        
        if not isinstance(meta, dict):
            errors.append("meta section should be a mapping")
            return errors
        
        for key, value in meta.items():
            if not isinstance(key, str):
                errors.append(f"meta: Key {key!r} should be a string")
            if isinstance(value, (dict, list)):
                errors.append(f"meta: Value for {key!r} should be a scalar")
        
        return errors
    
    @classmethod
    def _validate_logging(cls, logging_config: Any) -> List[str]:
        """Validate logging configuration."""
        errors = []
        
        if not isinstance(logging_config, dict):
            errors.append("logging section should be a mapping")
            return errors
        
        level = logging_config.get('level', 'INFO')
        if str(level).upper() not in LOG_LEVELS:
            errors.append(f"Invalid logging level: {level} (must be one of {', '.join(LOG_LEVELS)})")
        
        return errors


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load a YAML or JSON configuration file.
    
    Raises:
        ConfigurationError: If the file is missing, unparseable or not a mapping
    """
    config_file = Path(config_path)
    
    if not config_file.exists():
        raise ConfigurationError(f"Configuration file not found: {config_file}")
    
    try:
        with open(config_file) as f:
            if config_file.suffix in ['.yaml', '.yml']:
                config = yaml.safe_load(f)
            elif config_file.suffix == '.json':
                config = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported configuration format: {config_file.suffix}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Could not parse {config_file}: {e}") from e
    
    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration in {config_file} should be a mapping")
    
    return config


def validate_and_fix_config(config_path: str) -> Tuple[bool, List[str], Optional[Dict[str, Any]]]:
    """
    Load, validate, and attempt to fix a configuration file.
    
    Returns:
        (is_valid, errors, fixed_config)
    """
    config = load_config_file(config_path)
    
    is_valid, errors = TrackConfigValidator.validate(config)
    
    if not is_valid:
        logger.warning(f"Configuration has {len(errors)} validation errors")
        for error in errors[:10]:
            logger.warning(f"  - {error}")
        if len(errors) > 10:
            logger.warning(f"  ... and {len(errors) - 10} more errors")
    
    return is_valid, errors, config


def metricd_settings(config: Dict[str, Any]) -> MetricdSettings:
    """Build typed metricd settings from a validated configuration."""
    return MetricdSettings(**config['metricd'])
