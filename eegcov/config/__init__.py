"""Configuration module for covariance encoding."""

from eegcov.config.encoding_config import (
    EstimatorConfig,
    ExecutionConfig,
    ParadigmConfig,
    EncodingConfig,
)

from eegcov.config.config_loader import (
    load_yaml,
    dict_to_dataclass,
    load_encoding_config,
)

__all__ = [
    # Dataclasses
    'EstimatorConfig',
    'ExecutionConfig',
    'ParadigmConfig',
    'EncodingConfig',
    # Loaders
    'load_yaml',
    'dict_to_dataclass',
    'load_encoding_config',
]
