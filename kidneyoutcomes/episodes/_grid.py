"""Baseline derivation and daily-grid construction."""

from __future__ import annotations

import duckdb
import numpy as np
import pandas as pd

from ._utils import InsufficientObservationsError
from kidneyoutcomes.utils.logging_config import get_logger

logger = get_logger('episodes.grid')

GRID_COLUMNS = [
    'lab_date',
    'days_since_baseline',
    'creatinine_umol',
    'observed',
    'baseline_date',
    'baseline_creatinine',
]


def compute_baselines(observations: pd.DataFrame) -> pd.DataFrame:
    """
    Baseline creatinine per patient.

    The baseline is the mean creatinine_umol over every row on the baseline
    date itself (days_since_baseline == 0). Call this before duplicate
    dates are collapsed so repeated day-0 results all count.

    Parameters
    ----------
    observations : pd.DataFrame
        Columns [patient_id, baseline_date, days_since_baseline, creatinine_umol]

    Returns
    -------
    pd.DataFrame
        Columns [patient_id, baseline_date, baseline_creatinine], one row per
        patient. baseline_creatinine is NaN when there is no day-0 result.
    """
    obs_df = observations[['patient_id', 'days_since_baseline', 'creatinine_umol']]
    baseline_rel = duckdb.sql("""
        FROM obs_df
        SELECT
            patient_id
            , AVG(creatinine_umol) FILTER(days_since_baseline = 0) AS baseline_creatinine
        GROUP BY patient_id
        ORDER BY patient_id
    """)
    baselines = baseline_rel.df()
    baselines['patient_id'] = baselines['patient_id'].astype(str)
    baselines['baseline_creatinine'] = baselines['baseline_creatinine'].astype(float)

    baseline_dates = (
        observations.groupby('patient_id', sort=True)['baseline_date'].min().reset_index()
    )
    baseline_dates['patient_id'] = baseline_dates['patient_id'].astype(str)
    baselines = baseline_dates.merge(baselines, on='patient_id', how='left')

    missing = baselines.loc[baselines['baseline_creatinine'].isna(), 'patient_id']
    if len(missing):
        preview = ', '.join(missing.head(5))
        logger.warning(
            f"{len(missing)} patients have no creatinine on the baseline date; "
            f"first-week references will be empty for them (e.g. {preview})"
        )
    return baselines[['patient_id', 'baseline_date', 'baseline_creatinine']]


def build_daily_grid(
    patient_obs: pd.DataFrame,
    baseline_date: pd.Timestamp,
    baseline_creatinine: float,
) -> pd.DataFrame:
    """
    Expand one patient's observations to one row per calendar day.

    Day-0 rows are removed first because the baseline value is handled
    through the override, never through the rolling references. Missing
    creatinine on unobserved days is left as NaN; only the baseline
    covariates are filled.

    Parameters
    ----------
    patient_obs : pd.DataFrame
        One patient's observations with unique lab_date values.
    baseline_date : pd.Timestamp
    baseline_creatinine : float
        May be NaN.

    Returns
    -------
    pd.DataFrame
        Columns GRID_COLUMNS, one row per day from the earliest to the latest
        non-day-0 observation.

    Raises
    ------
    InsufficientObservationsError
        If the patient has no observation after the baseline date.
    """
    post = patient_obs.loc[patient_obs['days_since_baseline'] != 0]
    if not (post['days_since_baseline'] > 0).any():
        raise InsufficientObservationsError("no observations after the baseline date")

    series = post.set_index('lab_date')['creatinine_umol'].sort_index()
    days = pd.date_range(series.index.min(), series.index.max(), freq='D')

    grid = pd.DataFrame({'lab_date': days})
    grid['creatinine_umol'] = series.reindex(days).to_numpy(dtype=float)
    grid['observed'] = grid['lab_date'].isin(series.index)
    grid['baseline_date'] = pd.Timestamp(baseline_date)
    grid['baseline_creatinine'] = np.nan if pd.isna(baseline_creatinine) else float(baseline_creatinine)
    grid['days_since_baseline'] = (grid['lab_date'] - grid['baseline_date']).dt.days.astype(int)
    return grid[GRID_COLUMNS]
