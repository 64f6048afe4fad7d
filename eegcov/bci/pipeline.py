"""
End-to-end encoding of a tagged recording into covariance matrices.
"""

import logging
from dataclasses import replace, fields
from typing import Callable, List, Optional, Tuple, Union

import numpy as np

from eegcov.bci.paradigms import Paradigm, build_prototype, parse_paradigm, resolve_target_class
from eegcov.config.encoding_config import (
    EncodingConfig,
    EstimatorConfig,
    ExecutionConfig,
    ParadigmConfig
)
from eegcov.covariance.diagnostics import EncodingReport
from eegcov.covariance.encoder import encode_trials
from eegcov.covariance.errors import ConfigurationError
from eegcov.covariance.estimators import parse_estimator
from eegcov.covariance.regularization import tikhonov
from eegcov.data.erps import mean_erps
from eegcov.data.recording import EEGRecording
from eegcov.data.standardization import standardize_eeg


logger = logging.getLogger(__name__)


def _apply_overrides(config: EncodingConfig, overrides: dict) -> EncodingConfig:
    """Route flat keyword overrides to the nested configuration they belong to."""
    if not overrides:
        return config

    sections = {
        'estimator': (EstimatorConfig, {}),
        'execution': (ExecutionConfig, {}),
        'paradigm': (ParadigmConfig, {}),
    }
    names = {
        section: {f.name for f in fields(cls)} for section, (cls, _) in sections.items()
    }
    for key, value in overrides.items():
        for section, keys in names.items():
            if key in keys:
                sections[section][1][key] = value
                break
        else:
            raise ConfigurationError(f"Unknown encoding option '{key}'")

    return replace(
        config,
        **{section: replace(getattr(config, section), **values)
           for section, (_, values) in sections.items() if values}
    )


def assemble_and_encode(
    recording: EEGRecording,
    paradigm: Union[str, Paradigm, None] = None,
    config: Optional[EncodingConfig] = None,
    *,
    erp_mean_fn: Callable[..., List[np.ndarray]] = mean_erps,
    standardize_fn: Callable[[np.ndarray], np.ndarray] = standardize_eeg,
    tikhonov_fn: Callable[[np.ndarray, float], np.ndarray] = tikhonov,
    return_report: bool = False,
    **overrides
) -> Union[np.ndarray, Tuple[np.ndarray, EncodingReport]]:
    """
    Encode the trials of a recording as covariance matrices, paradigm-aware.

    Steps:
    1. Resolve the paradigm (argument, configuration or recording) and check every
       option, the target label included, before any computation.
    2. Build the paradigm prototype (MI: none; P300: target ERP mean; ERP: all
       class means).
    3. Encode every trial stacked with the prototype.
    4. Apply the Tikhonov regularization to the whole collection if `tikh` > 0.

    Args:
        recording: Tagged recording; its trials are extracted from the stimulations
                   if not stored
        paradigm: 'MI', 'P300' or 'ERP'; None falls back to `config.paradigm.paradigm`
                  and then to `recording.paradigm`
        config: Encoding configuration (defaults: linear shrinkage estimator,
                parallel execution, pcadim 8, adaptive ERP weights, no Tikhonov)
        erp_mean_fn: ERP mean estimator
        standardize_fn: Standardization transform applied to trials and prototypes
        tikhonov_fn: Post-processor (covariances, alpha) -> covariances
        return_report: Also return the EncodingReport
        **overrides: Any field of EstimatorConfig, ExecutionConfig or ParadigmConfig

    Returns:
        covariances: Array (n_trials, n, n) in trial order
        report: (optional) EncodingReport

    Raises:
        ConfigurationError: Unknown paradigm or option, target label not found
    """
    config = _apply_overrides(config if config is not None else EncodingConfig(), overrides)
    est_cfg, exec_cfg, par_cfg = config.estimator, config.execution, config.paradigm

    if paradigm is None:
        paradigm = par_cfg.paradigm if par_cfg.paradigm is not None else recording.paradigm
    if paradigm is None:
        raise ConfigurationError("No BCI paradigm given and none stored in the recording")
    paradigm = parse_paradigm(paradigm)

    estimator = parse_estimator(est_cfg.estimator)
    if paradigm is Paradigm.P300:
        resolve_target_class(recording.clabels, par_cfg.target_label)

    trials = recording.get_trials()
    logger.info(
        f"Encoding {len(trials)} {paradigm.value} trials of {recording.ne} channels "
        f"with estimator '{estimator.name}'"
    )

    prototype = build_prototype(
        recording,
        paradigm,
        target_label=par_cfg.target_label,
        pcadim=par_cfg.pcadim,
        weights=par_cfg.weights,
        standardize=est_cfg.standardize,
        erp_mean_fn=erp_mean_fn,
        standardize_fn=standardize_fn,
    )

    covariances, report = encode_trials(
        trials,
        estimator,
        prototype,
        exec_cfg.parallel,
        n_jobs=exec_cfg.n_jobs,
        on_error=exec_cfg.on_error,
        return_report=True,
        standardize_fn=standardize_fn,
        **est_cfg.to_options()
    )

    if par_cfg.tikh > 0:
        logger.info(f"Applying Tikhonov regularization (alpha={par_cfg.tikh})")
        covariances = tikhonov_fn(covariances, par_cfg.tikh)

    if return_report:
        return covariances, report
    return covariances
