"""
Diagnostics collected while estimating covariance matrices.

Per-trial diagnostics record which code path produced a matrix and, for the
M-estimators, how the iteration went, so that a problem can be traced back to
one trial without re-running with added logging.
"""

import json
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

import numpy as np
import pandas as pd


@dataclass
class EstimationDiagnostics:
    """Diagnostics for the estimation of one covariance matrix."""
    estimator: str
    code_path: str
    index: Optional[int] = None

    # M-estimators only
    n_iter: Optional[int] = None
    residual: Optional[float] = None
    converged: Optional[bool] = None
    zero_norm_samples: int = 0
    degenerate: bool = False
    shrinkage: Optional[float] = None

    warnings: List[str] = field(default_factory=list)

    failed: bool = False
    failure_reason: Optional[str] = None

    def to_dict(self) -> Dict:
        """Convert diagnostics to dictionary."""
        return asdict(self)

    def to_json(self) -> str:
        """Convert diagnostics to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def add_warning(self, warning: str):
        """Add a warning message."""
        self.warnings.append(warning)

    @property
    def summary(self) -> str:
        """One-line human-readable summary."""
        prefix = f"Trial {self.index}" if self.index is not None else "Trial"
        if self.failed:
            return f"{prefix} | {self.estimator} | FAILED: {self.failure_reason}"
        text = f"{prefix} | {self.estimator} ({self.code_path})"
        if self.n_iter is not None:
            state = "converged" if self.converged else "NOT converged"
            text += f" | {state} in {self.n_iter} iterations (residual {self.residual:.2e})"
        if self.warnings:
            text += f" | Warnings: {len(self.warnings)}"
        return text


@dataclass
class EncodingReport:
    """Diagnostics of a batch encoding, index-aligned with the trials."""
    estimator: str
    execution: str
    diagnostics: List[EstimationDiagnostics] = field(default_factory=list)

    @property
    def n_trials(self) -> int:
        return len(self.diagnostics)

    @property
    def failed_indices(self) -> List[int]:
        return [i for i, d in enumerate(self.diagnostics) if d.failed]

    @property
    def n_failed(self) -> int:
        return len(self.failed_indices)

    @property
    def n_not_converged(self) -> int:
        return sum(1 for d in self.diagnostics if d.converged is False)

    def to_dict(self) -> Dict:
        """Convert the report to dictionary."""
        return {
            'estimator': self.estimator,
            'execution': self.execution,
            'n_trials': self.n_trials,
            'n_failed': self.n_failed,
            'n_not_converged': self.n_not_converged,
            'diagnostics': [d.to_dict() for d in self.diagnostics],
        }

    def to_json(self) -> str:
        """Convert the report to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def to_dataframe(self) -> pd.DataFrame:
        """
        Convert per-trial diagnostics to a DataFrame, one row per trial.

        Returns:
            DataFrame indexed by trial index; warnings are reduced to their count
        """
        rows = []
        for d in self.diagnostics:
            row = d.to_dict()
            row['n_warnings'] = len(row.pop('warnings'))
            rows.append(row)

        df = pd.DataFrame(rows)
        if not df.empty:
            df = df.set_index('index')
        return df

    def residual_stats(self) -> Dict[str, Optional[float]]:
        """Summary of the final M-estimator residuals across trials."""
        residuals = [d.residual for d in self.diagnostics if d.residual is not None]
        return {
            'residual_mean': float(np.mean(residuals)) if residuals else None,
            'residual_max': float(np.max(residuals)) if residuals else None,
        }
