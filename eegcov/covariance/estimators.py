"""
Estimator selection.

An estimator is a closed variant over the estimators implemented here plus an
open registry of named external estimators. Strings and callables given by
callers are resolved once, before any computation, by `parse_estimator`.
"""

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, Dict, List, Optional, Union

import numpy as np

from eegcov.covariance.errors import ConfigurationError
from eegcov.covariance.shrinkage import (
    linear_shrinkage,
    nonlinear_shrinkage,
    pyriemann_covariance
)


class EstimatorKind(Enum):
    SAMPLE = 'sample'
    LINEAR_SHRINKAGE = 'lwf'
    NONLINEAR_SHRINKAGE = 'nshr'
    TYLER = 'tyler'
    NORMALIZED_REGULARIZED_TYLER = 'nrtyler'
    EXTERNAL = 'external'


@dataclass(frozen=True)
class Estimator:
    """A resolved covariance estimator.

    Attributes:
        kind: Which estimator family this is
        name: Name used in logs, diagnostics and error messages
        func: Covariance routine (n_samples, n_channels) -> (n_channels, n_channels)
              for the shrinkage and external estimators
    """
    kind: EstimatorKind
    name: str
    func: Optional[Callable[[np.ndarray], np.ndarray]] = None

    @property
    def supports_complex(self) -> bool:
        return self.kind is EstimatorKind.SAMPLE

    @property
    def is_m_estimator(self) -> bool:
        return self.kind in (EstimatorKind.TYLER, EstimatorKind.NORMALIZED_REGULARIZED_TYLER)


SAMPLE = Estimator(EstimatorKind.SAMPLE, 'sample')
LINEAR_SHRINKAGE = Estimator(EstimatorKind.LINEAR_SHRINKAGE, 'lwf', linear_shrinkage)
NONLINEAR_SHRINKAGE = Estimator(EstimatorKind.NONLINEAR_SHRINKAGE, 'nshr', nonlinear_shrinkage)
TYLER = Estimator(EstimatorKind.TYLER, 'tyler')
NORMALIZED_REGULARIZED_TYLER = Estimator(EstimatorKind.NORMALIZED_REGULARIZED_TYLER, 'nrtyler')

_ALIASES: Dict[str, Estimator] = {
    'sample': SAMPLE,
    'scm': SAMPLE,
    'lwf': LINEAR_SHRINKAGE,
    'linear_shrinkage': LINEAR_SHRINKAGE,
    'nshr': NONLINEAR_SHRINKAGE,
    'nonlinear_shrinkage': NONLINEAR_SHRINKAGE,
    'tyler': TYLER,
    'nrtyler': NORMALIZED_REGULARIZED_TYLER,
}

_REGISTRY: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    name: partial(pyriemann_covariance, estimator=name)
    for name in ('oas', 'sch', 'mcd', 'corr', 'cov')
}


def register_estimator(name: str, func: Callable[[np.ndarray], np.ndarray]):
    """
    Register a named external covariance estimator.

    Args:
        name: Name under which the estimator can be selected
        func: Routine mapping a trial (n_samples, n_channels) to a covariance matrix
    """
    key = name.lower()
    if key in _ALIASES:
        raise ConfigurationError(f"'{name}' is a built-in estimator and cannot be overridden")
    if not callable(func):
        raise ConfigurationError(f"Estimator '{name}' must be callable")
    _REGISTRY[key] = func


def available_estimators() -> List[str]:
    """Names accepted by `parse_estimator`."""
    return sorted(set(_ALIASES) | set(_REGISTRY))


def parse_estimator(estimator: Union[str, Estimator, Callable]) -> Estimator:
    """
    Resolve an estimator selector.

    Args:
        estimator: An Estimator, a name (case-insensitive) or a callable
                   (n_samples, n_channels) -> (n_channels, n_channels)

    Returns:
        Estimator

    Raises:
        ConfigurationError: If the name is unknown
    """
    if isinstance(estimator, Estimator):
        return estimator
    if isinstance(estimator, str):
        key = estimator.lower()
        if key in _ALIASES:
            return _ALIASES[key]
        if key in _REGISTRY:
            return Estimator(EstimatorKind.EXTERNAL, key, _REGISTRY[key])
        raise ConfigurationError(
            f"Unknown estimator '{estimator}'. Valid estimators are: {', '.join(available_estimators())} "
            f"or a callable"
        )
    if callable(estimator):
        name = getattr(estimator, '__name__', type(estimator).__name__)
        return Estimator(EstimatorKind.EXTERNAL, name, estimator)
    raise ConfigurationError(f"Invalid estimator selector: {estimator!r}")
