"""
YAML loading of the encoding configuration.

A configuration file mirrors `EncodingConfig`: one top-level mapping with
optional `estimator`, `execution` and `paradigm` sections. Missing keys keep
their defaults and unknown keys are ignored.
"""

from dataclasses import fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Optional, get_type_hints

import yaml

from eegcov.config.encoding_config import EncodingConfig
from eegcov.covariance.errors import ConfigurationError


def load_yaml(config_path: str | Path) -> Dict[str, Any]:
    """Read a YAML file; an empty file gives an empty dictionary.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        yaml.YAMLError: If the YAML is malformed
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def dict_to_dataclass(data: Dict[str, Any], cls: type, section: str = 'configuration'):
    """Build a configuration dataclass, recursing into its dataclass-typed fields.

    Args:
        data: Mapping of field names to values
        cls: Configuration dataclass to instantiate
        section: Name of the mapping, used in error messages

    Returns:
        An instance of `cls`

    Raises:
        TypeError: If `cls` is not a dataclass
        ConfigurationError: If `data` (or a nested section) is not a mapping,
                            or a value fails the dataclass validation
    """
    if not is_dataclass(cls):
        raise TypeError(f"{cls} is not a dataclass")
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"The {section} must be a mapping to build {cls.__name__}, got {type(data).__name__}"
        )

    hints = get_type_hints(cls)
    kwargs = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        if is_dataclass(hints[f.name]):
            value = dict_to_dataclass(value, hints[f.name], section=f"'{f.name}' section")
        kwargs[f.name] = value

    return cls(**kwargs)


def load_encoding_config(config_path: Optional[str | Path] = None) -> EncodingConfig:
    """Load an EncodingConfig from YAML, or the defaults when no path is given."""
    if config_path is None:
        return EncodingConfig()
    return dict_to_dataclass(load_yaml(config_path), EncodingConfig)
