"""Sustained CKD progression and person-time summaries."""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np
import pandas as pd

from ._reconcile import count_akd
from ._utils import KidneyOutcomesConfig
from kidneyoutcomes.schemas import Episode, ProgressionRecord, ThresholdProgression


def late_window_mean(patient_obs: pd.DataFrame, window_months: float) -> Optional[float]:
    """Mean eGFR over the last ``window_months`` of follow-up (None without data)."""
    months = patient_obs['months_since_baseline'].to_numpy(dtype=float)
    egfr = patient_obs['egfr'].to_numpy(dtype=float)
    if len(months) == 0:
        return None
    in_window = months >= months.max() - window_months
    values = egfr[in_window & ~np.isnan(egfr)]
    return float(values.mean()) if len(values) else None


def summarize_progression(
    patient_obs: pd.DataFrame,
    ckd_episodes: Iterable[Episode],
    aki_episodes: Iterable[Episode],
    patient_id: str,
    config: KidneyOutcomesConfig | None = None,
) -> ProgressionRecord:
    """
    Build the progression record for one patient.

    Per threshold t a patient has progressed when a sustained episode below
    t exists and the mean eGFR over the final 6 months is also below t.
    Person-time runs to the earliest sustained onset for progressors and to
    the last observation otherwise.

    Parameters
    ----------
    patient_obs : pd.DataFrame
        Every observation of the patient (all dates, duplicates resolved).
    ckd_episodes : iterable of Episode
        Retained CKD episodes for all thresholds.
    aki_episodes : iterable of Episode
        Reconciled AKI episodes.
    patient_id : str
    config : KidneyOutcomesConfig, optional

    Returns
    -------
    ProgressionRecord
    """
    config = config or KidneyOutcomesConfig()
    ckd_episodes = list(ckd_episodes)
    aki_episodes = list(aki_episodes)

    max_follow_up = float(patient_obs['days_since_baseline'].max())
    last6 = late_window_mean(patient_obs, config.late_window_months)
    last12 = late_window_mean(patient_obs, config.late_window_long_months)

    per_threshold = {}
    for t in config.egfr_thresholds:
        starts = [ep.start_offset_days for ep in ckd_episodes if ep.threshold == t]
        sustained = 1 if starts else 0
        notadjusted = float(min(starts)) if starts else max_follow_up
        followupunder = 1 if (last6 is not None and last6 < t) else 0
        progression = sustained & followupunder
        per_threshold[t] = ThresholdProgression(
            threshold=t,
            sustained90day=sustained,
            followupunder=followupunder,
            progression=progression,
            persontimedays=notadjusted if progression else max_follow_up,
            persontimedays_notadjusted=notadjusted,
        )

    return ProgressionRecord(
        patient_id=patient_id,
        max_follow_up_days=max_follow_up,
        akinhs_total_count=len(aki_episodes),
        akinhslonger7days_count=count_akd(aki_episodes, config),
        last6months=last6,
        last12months=last12,
        thresholds=per_threshold,
    )
