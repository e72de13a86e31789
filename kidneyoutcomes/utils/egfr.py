"""
eGFR and time-axis helpers.

Implements the race-free CKD-EPI 2021 creatinine equation:

    eGFR = 142 * min(Scr/k, 1)^a * max(Scr/k, 1)^-1.200 * 0.9938^age * f

with k = 0.9, a = -0.302, f = 1 for men and k = 0.7, a = -0.241,
f = 1.012 for women (Scr in mg/dL).
"""

import logging
from typing import Optional, TYPE_CHECKING

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from kidneyoutcomes.episodes import KidneyOutcomesConfig

logger = logging.getLogger('kidneyoutcomes.utils.egfr')

MGDL_TO_UMOL = 88.4
DAYS_PER_MONTH = 30.417

_KAPPA = {1: 0.9, 2: 0.7}
_ALPHA = {1: -0.302, 2: -0.241}
_SEX_FACTOR = {1: 1.0, 2: 1.012}


def ckd_epi_2021(creatinine_mgdl, age, sex_code) -> np.ndarray:
    """
    CKD-EPI 2021 eGFR in mL/min/1.73m².

    Parameters
    ----------
    creatinine_mgdl : array-like
        Serum creatinine, mg/dL.
    age : array-like
        Age in years at the time of the result.
    sex_code : array-like
        1 for male, 2 for female. Any other code yields NaN.

    Returns
    -------
    np.ndarray
        eGFR per element (NaN where an input is missing or invalid).
    """
    scr = np.asarray(creatinine_mgdl, dtype=float)
    age = np.asarray(age, dtype=float)
    sex = pd.Series(np.asarray(sex_code).ravel())

    kappa = sex.map(_KAPPA).to_numpy(dtype=float).reshape(scr.shape)
    alpha = sex.map(_ALPHA).to_numpy(dtype=float).reshape(scr.shape)
    factor = sex.map(_SEX_FACTOR).to_numpy(dtype=float).reshape(scr.shape)

    with np.errstate(invalid='ignore', divide='ignore'):
        ratio = scr / kappa
        egfr = (
            142
            * np.minimum(ratio, 1.0) ** alpha
            * np.maximum(ratio, 1.0) ** -1.200
            * 0.9938 ** age
            * factor
        )
    egfr = np.where(scr > 0, egfr, np.nan)
    return egfr


def mgdl_to_umol(creatinine_mgdl, factor: float = MGDL_TO_UMOL):
    return creatinine_mgdl * factor


def prepare_observations(
    validated: pd.DataFrame,
    config: Optional['KidneyOutcomesConfig'] = None,
) -> pd.DataFrame:
    """
    Derive the observation table the episode engine works on.

    Adds days_since_baseline, months_since_baseline, creatinine_umol and
    egfr to a frame returned by ``validate_input``. Rows without a
    computable eGFR are dropped.

    Parameters
    ----------
    validated : pd.DataFrame
        Output of ``validate_input``.
    config : KidneyOutcomesConfig, optional
        Supplies the unit factor and days-per-month constant.

    Returns
    -------
    pd.DataFrame
        Columns: patient_id, baseline_date, lab_date, days_since_baseline,
        months_since_baseline, age_at_lab, sex_code, creatinine_mgdl,
        creatinine_umol, egfr. Sorted by patient_id, lab_date.
    """
    umol_factor = config.creatinine_mgdl_to_umol if config is not None else MGDL_TO_UMOL
    days_per_month = config.days_per_month if config is not None else DAYS_PER_MONTH

    obs = validated.copy()
    obs['days_since_baseline'] = (obs['lab_date'] - obs['baseline_date']).dt.days.astype(int)
    obs['months_since_baseline'] = obs['days_since_baseline'] / days_per_month
    obs['creatinine_umol'] = mgdl_to_umol(obs['creatinine_mgdl'], umol_factor)
    obs['egfr'] = ckd_epi_2021(obs['creatinine_mgdl'], obs['age_at_lab'], obs['sex_code'])

    no_egfr = obs['egfr'].isna()
    if no_egfr.any():
        logger.info(f"Dropping {int(no_egfr.sum())} rows without a computable eGFR")
        obs = obs.loc[~no_egfr]

    columns = [
        'patient_id', 'baseline_date', 'lab_date', 'days_since_baseline',
        'months_since_baseline', 'age_at_lab', 'sex_code', 'creatinine_mgdl',
        'creatinine_umol', 'egfr',
    ]
    return obs[columns].sort_values(['patient_id', 'lab_date'], kind='stable').reset_index(drop=True)
