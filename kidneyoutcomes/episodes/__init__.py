"""Kidney episode detection for kidneyoutcomes.

This module turns per-patient serum-creatinine series into AKI episodes,
sustained CKD-stage episodes and progression summaries relative to a
baseline date.

Public API:
    calculate_kidney_outcomes: Run the full pipeline for a cohort
    KidneyOutcomes: Result tables of a run
    KidneyOutcomesConfig: Configuration dataclass for the clinical constants
    InsufficientObservationsError: Raised when a patient cannot be put on a daily grid
"""

from ._utils import InsufficientObservationsError, KidneyOutcomesConfig, PatientOutcome
from ._core import KidneyOutcomes, calculate_kidney_outcomes, process_patient
from ._grid import build_daily_grid, compute_baselines
from ._references import compute_references
from ._flags import evaluate_aki_flags, evaluate_egfr_flags
from ._segment import bridge_gaps, run_length_episodes, segment_aki, segment_threshold
from ._reconcile import reconcile_aki, year1_count
from ._progression import summarize_progression

__all__ = [
    'calculate_kidney_outcomes',
    'process_patient',
    'KidneyOutcomes',
    'KidneyOutcomesConfig',
    'PatientOutcome',
    'InsufficientObservationsError',
    'build_daily_grid',
    'compute_baselines',
    'compute_references',
    'evaluate_aki_flags',
    'evaluate_egfr_flags',
    'bridge_gaps',
    'run_length_episodes',
    'segment_aki',
    'segment_threshold',
    'reconcile_aki',
    'year1_count',
    'summarize_progression',
]
