"""Run-length segmentation of flag series into episodes."""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

from ._flags import evaluate_egfr_flags
from ._utils import KidneyOutcomesConfig
from kidneyoutcomes.schemas import Episode, EpisodeKind


def run_length_episodes(values: Sequence[float]) -> List[Tuple[int, int]]:
    """
    Index spans of maximal runs of 1.

    Parameters
    ----------
    values : sequence of float
        Flag series; anything other than 1 (0, NaN) ends a run.

    Returns
    -------
    list of (int, int)
        Inclusive (start, stop) positions, in order.
    """
    flags = np.asarray(values, dtype=float) == 1
    if not flags.any():
        return []
    padded = np.concatenate(([False], flags, [False])).astype(np.int8)
    edges = np.diff(padded)
    starts = np.flatnonzero(edges == 1)
    stops = np.flatnonzero(edges == -1) - 1
    return [(int(s), int(e)) for s, e in zip(starts, stops)]


def bridge_gaps(values: Sequence[float], max_gap: int = 7) -> np.ndarray:
    """
    Join flagged runs separated by short gaps.

    Every stretch of at most ``max_gap`` consecutive non-1 positions (0 or
    NaN) that lies between two runs of 1 is set to 1. Leading and trailing
    stretches are never touched, and longer gaps are left as they are.

    Parameters
    ----------
    values : sequence of float
    max_gap : int, default 7

    Returns
    -------
    np.ndarray
        A bridged copy of ``values``.
    """
    out = np.asarray(values, dtype=float).copy()
    runs = run_length_episodes(out)
    for (_, prev_stop), (next_start, _) in zip(runs, runs[1:]):
        gap = next_start - prev_stop - 1
        if 0 < gap <= max_gap:
            out[prev_stop + 1:next_start] = 1.0
    return out


def flags_from_spans(spans: Sequence[Tuple[int, int]], length: int) -> np.ndarray:
    """Inverse of ``run_length_episodes``: a 0/1 series with the given spans set."""
    out = np.zeros(length)
    for start, stop in spans:
        out[start:stop + 1] = 1.0
    return out


def _episodes_from_spans(
    spans: Sequence[Tuple[int, int]],
    dates: pd.Series,
    offsets: np.ndarray,
    patient_id: str,
    kind: EpisodeKind,
    threshold: int | None = None,
) -> List[Episode]:
    episodes = []
    for start, stop in spans:
        start_offset = int(offsets[start])
        stop_offset = int(offsets[stop])
        episodes.append(Episode(
            patient_id=patient_id,
            kind=kind,
            threshold=threshold,
            start_date=pd.Timestamp(dates.iloc[start]).date(),
            stop_date=pd.Timestamp(dates.iloc[stop]).date(),
            start_offset_days=start_offset,
            stop_offset_days=stop_offset,
            duration_days=stop_offset - start_offset,
        ))
    return episodes


def segment_aki(
    flagged_grid: pd.DataFrame,
    patient_id: str,
    config: KidneyOutcomesConfig | None = None,
) -> List[Episode]:
    """
    AKI episodes from a daily grid carrying an ``aki_flag`` column.

    The flag series is gap-bridged, segmented, and episodes lasting
    ``aki_max_duration_days`` or longer are discarded.
    """
    config = config or KidneyOutcomesConfig()
    bridged = bridge_gaps(flagged_grid['aki_flag'].to_numpy(dtype=float), config.gap_bridge_days)
    spans = run_length_episodes(bridged)
    episodes = _episodes_from_spans(
        spans,
        flagged_grid['lab_date'],
        flagged_grid['days_since_baseline'].to_numpy(),
        patient_id,
        EpisodeKind.AKI,
    )
    return [ep for ep in episodes if ep.duration_days < config.aki_max_duration_days]


def segment_threshold(
    patient_obs: pd.DataFrame,
    threshold: int,
    patient_id: str,
    config: KidneyOutcomesConfig | None = None,
) -> List[Episode]:
    """
    Sustained CKD episodes for one eGFR threshold.

    Uses every observation row of the patient (baseline day and earlier
    included), in date order. Only episodes lasting at least
    ``sustained_days`` are kept.
    """
    config = config or KidneyOutcomesConfig()
    obs = patient_obs.sort_values('lab_date', kind='stable')
    flags = evaluate_egfr_flags(obs['egfr'], threshold)
    spans = run_length_episodes(flags)
    episodes = _episodes_from_spans(
        spans,
        obs['lab_date'],
        obs['days_since_baseline'].to_numpy(),
        patient_id,
        EpisodeKind.CKD,
        threshold=int(threshold),
    )
    return [ep for ep in episodes if ep.duration_days >= config.sustained_days]
