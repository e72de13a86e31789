"""AKI and eGFR-threshold flag evaluation.

Flags are float arrays holding 1.0, 0.0 or NaN. An AKI flag is NaN when the
day has no observed creatinine or none of the references it needs exists.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from ._utils import KidneyOutcomesConfig
from kidneyoutcomes.schemas import AkiDefinition


def _rule_inputs(refs: pd.DataFrame, definition: AkiDefinition) -> tuple[np.ndarray, np.ndarray, list]:
    """Return (48-hour reference, 7-day reference, median references) for a definition."""
    if definition == AkiDefinition.BIDIRECTIONAL:
        return (
            refs['min_48h_combined'].to_numpy(dtype=float),
            refs['min_7d_combined'].to_numpy(dtype=float),
            [refs['median_post_365d'].to_numpy(dtype=float),
             refs['median_pre_365d'].to_numpy(dtype=float)],
        )
    return (
        refs['min_48h_before'].to_numpy(dtype=float),
        refs['min_7d_before'].to_numpy(dtype=float),
        [refs['median_pre_365d'].to_numpy(dtype=float)],
    )


def evaluate_aki_flags(
    refs: pd.DataFrame,
    config: KidneyOutcomesConfig | None = None,
) -> np.ndarray:
    """
    Apply the three AKI rules to every grid day.

    A day is flagged when any of these holds:

    1. creatinine - 48-hour minimum > ``aki_absolute_rise``
    2. creatinine / 7-day minimum >= ``aki_relative_rise``
    3. creatinine / 365-day median >= ``aki_relative_rise``

    With ``aki_definition='bidirectional'`` rules 1 and 2 use the combined
    (before and after) minima and rule 3 accepts either median.

    Parameters
    ----------
    refs : pd.DataFrame
        Output of ``compute_references``.
    config : KidneyOutcomesConfig, optional

    Returns
    -------
    np.ndarray
        1.0 where a rule fires, 0.0 where at least one reference exists and
        none fires, NaN otherwise.
    """
    config = config or KidneyOutcomesConfig()
    definition = AkiDefinition(config.aki_definition)
    creat = refs['creatinine_umol'].to_numpy(dtype=float)
    ref_48h, ref_7d, medians = _rule_inputs(refs, definition)

    with np.errstate(invalid='ignore', divide='ignore'):
        fired = (creat - ref_48h) > config.aki_absolute_rise
        fired |= (creat / ref_7d) >= config.aki_relative_rise
        for median in medians:
            fired |= (creat / median) >= config.aki_relative_rise

    available = ~np.isnan(ref_48h) | ~np.isnan(ref_7d)
    for median in medians:
        available |= ~np.isnan(median)
    available &= ~np.isnan(creat)

    flags = np.where(fired & available, 1.0, 0.0)
    flags[~available] = np.nan
    return flags


def evaluate_egfr_flags(egfr, threshold: float) -> np.ndarray:
    """1.0 where eGFR is below ``threshold``, else 0.0."""
    values = np.asarray(egfr, dtype=float)
    return np.where(values < threshold, 1.0, 0.0)
