"""Rolling creatinine references used by the AKI rules.

All references are computed on the daily grid so window widths are calendar
days. Every reference is NaN on days without an observed creatinine.

- min_48h_*: lowest of the results one and two grid days behind (ahead)
- min_7d_*: lowest result over the 7 days strictly before (after) the day
- median_*_365d: median over the trailing (leading) 365 days including the
  day itself, reported only after a gap of 8-365 days to the neighbouring result
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from ._utils import KidneyOutcomesConfig, nanmin_pair, shift
from kidneyoutcomes.utils.logging_config import get_logger

logger = get_logger('episodes.references')

REFERENCE_COLUMNS = [
    'min_48h_before',
    'min_48h_after',
    'min_48h_combined',
    'min_7d_before',
    'min_7d_after',
    'min_7d_combined',
    'median_pre_365d',
    'median_post_365d',
]

# References replaced by the baseline value during the first week
_SHORT_WINDOW_COLUMNS = REFERENCE_COLUMNS[:6]


def _window_min_before(values: np.ndarray, width: int) -> np.ndarray:
    lagged = pd.Series(shift(values, 1))
    return lagged.rolling(width, min_periods=1).min().to_numpy()


def _window_min_after(values: np.ndarray, width: int) -> np.ndarray:
    return _window_min_before(values[::-1], width)[::-1].copy()


def _rolling_median(values: np.ndarray, width: int) -> np.ndarray:
    return pd.Series(values).rolling(width, min_periods=1).median().to_numpy()


def _neighbour_gaps(grid: pd.DataFrame) -> tuple[np.ndarray, np.ndarray]:
    """Days to the previous and next observed result, NaN where there is none or the day is unobserved."""
    days = grid['days_since_baseline'].to_numpy(dtype=float)
    observed = grid['observed'].to_numpy(dtype=bool)

    obs_days = days[observed]
    prev_gap = np.full(len(obs_days), np.nan)
    next_gap = np.full(len(obs_days), np.nan)
    if len(obs_days) > 1:
        diffs = np.diff(obs_days)
        prev_gap[1:] = diffs
        next_gap[:-1] = diffs

    out_prev = np.full(len(days), np.nan)
    out_next = np.full(len(days), np.nan)
    out_prev[observed] = prev_gap
    out_next[observed] = next_gap
    return out_prev, out_next


def compute_references(
    grid: pd.DataFrame,
    config: KidneyOutcomesConfig | None = None,
) -> pd.DataFrame:
    """
    Attach every reference column to a patient's daily grid.

    Parameters
    ----------
    grid : pd.DataFrame
        Output of ``build_daily_grid``.
    config : KidneyOutcomesConfig, optional

    Returns
    -------
    pd.DataFrame
        Copy of ``grid`` with REFERENCE_COLUMNS added.
    """
    config = config or KidneyOutcomesConfig()
    creat = grid['creatinine_umol'].to_numpy(dtype=float)
    missing = np.isnan(creat)
    out = grid.copy()

    # 48-hour references: neighbours on the daily grid
    out['min_48h_before'] = nanmin_pair(shift(creat, 1), shift(creat, 2))
    out['min_48h_after'] = nanmin_pair(shift(creat, -1), shift(creat, -2))
    out['min_48h_combined'] = nanmin_pair(out['min_48h_before'].to_numpy(), out['min_48h_after'].to_numpy())

    width = config.min_7d_window_days
    out['min_7d_before'] = _window_min_before(creat, width)
    out['min_7d_after'] = _window_min_after(creat, width)
    out['min_7d_combined'] = nanmin_pair(out['min_7d_before'].to_numpy(), out['min_7d_after'].to_numpy())

    # Baseline override for the first week after baseline
    days = out['days_since_baseline'].to_numpy()
    first_week = (days >= 0) & (days <= config.baseline_override_days)
    if first_week.any():
        baseline = out['baseline_creatinine'].to_numpy(dtype=float)
        for col in _SHORT_WINDOW_COLUMNS:
            values = out[col].to_numpy(dtype=float).copy()
            values[first_week] = baseline[first_week]
            out[col] = values

    # 365-day medians gated on the gap to the neighbouring result
    prev_gap, next_gap = _neighbour_gaps(out)
    lo, hi = config.median_min_gap_days, config.median_max_gap_days
    include_pre = (prev_gap >= lo) & (prev_gap <= hi)
    include_post = (next_gap >= lo) & (next_gap <= hi)

    median_width = config.median_window_days
    median_pre = _rolling_median(creat, median_width)
    median_post = _rolling_median(creat[::-1], median_width)[::-1].copy()
    out['median_pre_365d'] = np.where(include_pre, median_pre, np.nan)
    out['median_post_365d'] = np.where(include_post, median_post, np.nan)

    for col in REFERENCE_COLUMNS:
        values = out[col].to_numpy(dtype=float).copy()
        values[missing] = np.nan
        out[col] = values

    return out
