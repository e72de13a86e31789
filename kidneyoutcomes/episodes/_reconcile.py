"""Reconciliation of AKI episodes against CKD episode onsets."""

from __future__ import annotations

from typing import Iterable, List

from ._utils import KidneyOutcomesConfig
from kidneyoutcomes.schemas import Episode
from kidneyoutcomes.utils.logging_config import get_logger

logger = get_logger('episodes.reconcile')


def reconcile_aki(
    aki_episodes: Iterable[Episode],
    ckd_episodes: Iterable[Episode],
) -> List[Episode]:
    """
    Remove AKI episodes that coincide with the onset of a CKD episode.

    An AKI episode is dropped when its start or its stop offset equals the
    start offset of any retained CKD episode, across all thresholds. AKI
    nested strictly inside a CKD episode is kept. The remaining episodes are
    de-duplicated on (start, stop, duration) and ordered by start.
    """
    ckd_starts = {ep.start_offset_days for ep in ckd_episodes}

    kept = {}
    for ep in aki_episodes:
        if ep.start_offset_days in ckd_starts or ep.stop_offset_days in ckd_starts:
            logger.debug(
                f"Dropping AKI {ep.patient_id} [{ep.start_offset_days}, {ep.stop_offset_days}] "
                "at a CKD onset"
            )
            continue
        key = (ep.start_offset_days, ep.stop_offset_days, ep.duration_days)
        kept.setdefault(key, ep)

    return [kept[key] for key in sorted(kept)]


def count_akd(episodes: Iterable[Episode], config: KidneyOutcomesConfig | None = None) -> int:
    """Number of episodes lasting longer than ``akd_min_duration_days``."""
    config = config or KidneyOutcomesConfig()
    return sum(1 for ep in episodes if ep.is_akd(config.akd_min_duration_days))


def year1_count(episodes: Iterable[Episode], config: KidneyOutcomesConfig | None = None) -> int:
    """Number of episodes starting within [0, ``year1_days``] of baseline."""
    config = config or KidneyOutcomesConfig()
    return sum(1 for ep in episodes if 0 <= ep.start_offset_days <= config.year1_days)
