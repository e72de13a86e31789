"""Shared configuration and helpers for kidney episode detection.

This module contains:
- KidneyOutcomesConfig: dataclass holding every clinical constant
- InsufficientObservationsError: raised when a patient cannot be put on a daily grid
- Small array helpers shared by the reference and segmentation stages
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Tuple

import numpy as np

from kidneyoutcomes.schemas import AkiDefinition, DuplicatePolicy


class InsufficientObservationsError(ValueError):
    """A patient has too few usable observations for a pipeline stage."""


@dataclass
class KidneyOutcomesConfig:
    """
    Configuration for AKI and CKD episode detection.

    Defaults reproduce the NHS AKI algorithm and the 90-day sustained eGFR
    definition of CKD stages.

    Attributes
    ----------
    egfr_thresholds : tuple of int
        eGFR cut-offs (mL/min/1.73m²) segmented into CKD episodes. Default (60, 45, 30, 15).
    aki_absolute_rise : float
        Rise over the 48-hour minimum (µmol/L) that flags AKI; must be exceeded. Default 26.0.
    aki_relative_rise : float
        Ratio to the 7-day minimum or 365-day median that flags AKI. Default 1.5.
    baseline_override_days : int
        Days after baseline whose short-window references are replaced by the
        baseline creatinine. Default 7.
    min_7d_window_days : int
        Width of the 7-day minimum windows. Default 7.
    median_window_days : int
        Width of the rolling median windows. Default 365.
    median_min_gap_days, median_max_gap_days : int
        Inclusive bounds on the gap to the neighbouring observation for the
        median to be reported. Default 8 and 365.
    gap_bridge_days : int
        Longest run of non-flagged days between two AKI runs that is bridged. Default 7.
    sustained_days : int
        Minimum CKD episode duration. Default 90.
    aki_max_duration_days : int
        AKI episodes must last strictly less than this. Default 90.
    akd_min_duration_days : int
        AKI lasting longer than this is acute kidney disease (AKD). Default 7.
    year1_days : int
        Last day counted for first-year AKI. Default 365.
    late_window_months, late_window_long_months : float
        Windows at the end of follow-up for mean eGFR. Default 6 and 12.
    days_per_month : float
        Default 30.417.
    creatinine_mgdl_to_umol : float
        Default 88.4.
    duplicate_policy : str
        'mean', 'first', 'last' or 'error' for repeated lab dates. Default 'mean'.
    aki_definition : str
        'nhs' (backward-looking references) or 'bidirectional'. Default 'nhs'.
    """

    egfr_thresholds: Tuple[int, ...] = (60, 45, 30, 15)

    # AKI rules
    aki_absolute_rise: float = 26.0
    aki_relative_rise: float = 1.5
    aki_definition: str = 'nhs'

    # Reference windows (days)
    baseline_override_days: int = 7
    min_7d_window_days: int = 7
    median_window_days: int = 365
    median_min_gap_days: int = 8
    median_max_gap_days: int = 365

    # Episodes
    gap_bridge_days: int = 7
    sustained_days: int = 90
    aki_max_duration_days: int = 90
    akd_min_duration_days: int = 7
    year1_days: int = 365

    # Progression
    late_window_months: float = 6
    late_window_long_months: float = 12
    days_per_month: float = 30.417

    # Input normalisation
    creatinine_mgdl_to_umol: float = 88.4
    duplicate_policy: str = 'mean'

    def __post_init__(self):
        self.egfr_thresholds = tuple(int(t) for t in self.egfr_thresholds)
        if not self.egfr_thresholds:
            raise ValueError("egfr_thresholds must contain at least one threshold")
        if len(set(self.egfr_thresholds)) != len(self.egfr_thresholds):
            raise ValueError(f"egfr_thresholds must be unique, got {self.egfr_thresholds}")
        if any(t <= 0 for t in self.egfr_thresholds):
            raise ValueError("egfr_thresholds must be positive")
        if self.aki_relative_rise <= 1:
            raise ValueError("aki_relative_rise must be greater than 1")
        if self.aki_absolute_rise <= 0:
            raise ValueError("aki_absolute_rise must be positive")
        if self.median_min_gap_days > self.median_max_gap_days:
            raise ValueError("median_min_gap_days cannot exceed median_max_gap_days")
        for name in ('baseline_override_days', 'min_7d_window_days', 'median_window_days',
                     'gap_bridge_days', 'sustained_days', 'aki_max_duration_days',
                     'akd_min_duration_days', 'year1_days'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.min_7d_window_days < 1 or self.median_window_days < 1:
            raise ValueError("window widths must be at least 1 day")
        if self.days_per_month <= 0 or self.creatinine_mgdl_to_umol <= 0:
            raise ValueError("days_per_month and creatinine_mgdl_to_umol must be positive")
        # Raises ValueError on unknown values
        self.duplicate_policy = DuplicatePolicy(self.duplicate_policy).value
        self.aki_definition = AkiDefinition(self.aki_definition).value

    @classmethod
    def from_dict(cls, values: Dict[str, Any] | None) -> 'KidneyOutcomesConfig':
        """Build from a mapping, rejecting unknown keys."""
        values = dict(values or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown engine settings: {unknown}. Valid settings: {sorted(known)}")
        return cls(**values)


@dataclass(frozen=True)
class PatientOutcome:
    """Immutable per-patient result collected by the engine."""

    patient_id: str
    aki_episodes: tuple = ()
    ckd_episodes: tuple = ()
    progression: Any = None
    aki_year1_count: int = 0
    aki_skipped_reason: str | None = None
    debug: Dict[str, Any] = field(default_factory=dict, compare=False)


def nanmin_pair(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Element-wise minimum that ignores NaN unless both sides are NaN."""
    return np.fmin(a, b)


def shift(values: np.ndarray, n: int) -> np.ndarray:
    """Shift a float array by ``n`` positions (positive = lag), padding with NaN."""
    out = np.full(values.shape, np.nan)
    if n == 0:
        out[:] = values
    elif n > 0:
        if n < len(values):
            out[n:] = values[:-n]
    else:
        if -n < len(values):
            out[:n] = values[-n:]
    return out
