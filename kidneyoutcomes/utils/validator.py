"""
Boundary validation for creatinine extracts.

``validate_input`` is the only gate between raw files and the episode
engine: it renames legacy column names, checks required columns, parses
types and fails fast on malformed values. Rows whose creatinine is blank
are dropped (logged), not treated as errors.
"""

import logging
from typing import Iterable, List

import pandas as pd

from kidneyoutcomes.schemas import DuplicatePolicy, SexCode

logger = logging.getLogger('kidneyoutcomes.utils.validator')

REQUIRED_COLUMNS = [
    'patient_id',
    'baseline_date',
    'lab_date',
    'age_at_lab',
    'sex_code',
    'creatinine_mgdl',
]

# Column names used by older exports of the same extract
COLUMN_ALIASES = {
    'pt_id': 'patient_id',
    'date_trans1': 'baseline_date',
    'date_lab': 'lab_date',
    'sex': 'sex_code',
}


def _is_blank(series: pd.Series) -> pd.Series:
    as_text = series.astype('string').str.strip()
    return series.isna() | as_text.isna() | (as_text == '')


def _first_bad_row(mask: pd.Series) -> object:
    return mask[mask].index[0]


def check_required_columns(df: pd.DataFrame, required: Iterable[str] = REQUIRED_COLUMNS) -> List[str]:
    """Return the missing columns (empty list when all are present)."""
    return [col for col in required if col not in df.columns]


def _parse_dates(df: pd.DataFrame, col: str) -> pd.Series:
    blank = _is_blank(df[col])
    parsed = pd.to_datetime(df[col].where(~blank), errors='coerce')
    bad = parsed.isna()
    if bad.any():
        row = _first_bad_row(bad)
        raise ValueError(
            f"Column '{col}' has a missing or unparseable date at row {row}: {df.at[row, col]!r}"
        )
    return parsed.dt.normalize()


def _parse_numeric(df: pd.DataFrame, col: str) -> pd.Series:
    blank = _is_blank(df[col])
    parsed = pd.to_numeric(df[col].where(~blank), errors='coerce')
    bad = parsed.isna()
    if bad.any():
        row = _first_bad_row(bad)
        raise ValueError(
            f"Column '{col}' has a non-numeric value at row {row}: {df.at[row, col]!r}"
        )
    return parsed.astype(float)


def cohort_patient_ids(df: pd.DataFrame) -> List[str]:
    """
    Every non-blank patient id in a raw extract, before any row is dropped.

    Accepts the ``pt_id`` alias. Patients whose rows are all removed by
    ``validate_input`` are still listed, so the engine can report them.
    """
    col = 'patient_id' if 'patient_id' in df.columns else 'pt_id'
    if col not in df.columns:
        raise ValueError("Missing required columns: ['patient_id']")
    ids = df[col].loc[~_is_blank(df[col])].astype(str).str.strip()
    return sorted(ids.unique().tolist())


def validate_input(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate and normalise a raw creatinine extract.

    Parameters
    ----------
    df : pd.DataFrame
        One row per creatinine result with columns patient_id, baseline_date,
        lab_date, age_at_lab, sex_code (1 male, 2 female), creatinine_mgdl.
        The aliases pt_id, date_trans1, date_lab and sex are accepted.

    Returns
    -------
    pd.DataFrame
        A new frame holding only the required columns: string patient_id,
        day-resolution datetime64 dates, float age and creatinine, int
        sex_code. Rows with blank creatinine are removed.

    Raises
    ------
    ValueError
        If a required column is missing or a value cannot be parsed. The
        message names the column and the first offending row index.
    """
    out = df.rename(columns={k: v for k, v in COLUMN_ALIASES.items()
                             if k in df.columns and v not in df.columns})

    missing = check_required_columns(out)
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    out = out[REQUIRED_COLUMNS].copy()

    blank_creat = _is_blank(out['creatinine_mgdl'])
    if blank_creat.any():
        logger.info(f"Dropping {int(blank_creat.sum())} rows with missing creatinine")
        out = out.loc[~blank_creat]

    if _is_blank(out['patient_id']).any():
        row = _first_bad_row(_is_blank(out['patient_id']))
        raise ValueError(f"Column 'patient_id' is missing at row {row}")
    out['patient_id'] = out['patient_id'].astype(str).str.strip()

    out['baseline_date'] = _parse_dates(out, 'baseline_date')
    out['lab_date'] = _parse_dates(out, 'lab_date')
    out['age_at_lab'] = _parse_numeric(out, 'age_at_lab')
    out['creatinine_mgdl'] = _parse_numeric(out, 'creatinine_mgdl')

    sex = _parse_numeric(out, 'sex_code')
    valid_codes = [code.value for code in SexCode]
    bad_sex = ~sex.isin(valid_codes)
    if bad_sex.any():
        row = _first_bad_row(bad_sex)
        raise ValueError(
            f"Column 'sex_code' must be one of {valid_codes}; got {out.at[row, 'sex_code']!r} at row {row}"
        )
    out['sex_code'] = sex.astype(int)

    logger.debug(f"Validated {len(out)} rows for {out['patient_id'].nunique()} patients")
    return out.reset_index(drop=True)


def resolve_duplicate_dates(observations: pd.DataFrame, policy: str = 'mean') -> pd.DataFrame:
    """
    Collapse observations sharing (patient_id, lab_date).

    Parameters
    ----------
    observations : pd.DataFrame
        Output of ``prepare_observations``.
    policy : {'mean', 'first', 'last', 'error'}
        'mean' averages the numeric columns, 'first'/'last' keep one row in
        input order, 'error' raises.

    Returns
    -------
    pd.DataFrame
        One row per (patient_id, lab_date), sorted by both.
    """
    policy = DuplicatePolicy(policy)
    keys = ['patient_id', 'lab_date']
    dup = observations.duplicated(keys, keep=False)
    if not dup.any():
        return observations.sort_values(keys).reset_index(drop=True)

    n_dates = observations.loc[dup, keys].drop_duplicates().shape[0]
    if policy == DuplicatePolicy.ERROR:
        first = observations.loc[dup].iloc[0]
        raise ValueError(
            f"Duplicate lab_date {first['lab_date'].date()} for patient {first['patient_id']}"
        )

    logger.info(f"Resolving {n_dates} duplicate patient-dates with policy '{policy.value}'")
    if policy == DuplicatePolicy.MEAN:
        numeric = [c for c in observations.columns
                   if c not in keys and pd.api.types.is_float_dtype(observations[c])]
        agg = {c: ('mean' if c in numeric else 'first') for c in observations.columns if c not in keys}
        out = observations.groupby(keys, sort=True, as_index=False).agg(agg)
    else:
        out = observations.drop_duplicates(keys, keep=policy.value)

    return out.sort_values(keys).reset_index(drop=True)


def summarize_validation(df: pd.DataFrame) -> dict:
    """Small dict of counts for logs and reports."""
    if df.empty:
        return {'n_rows': 0, 'n_patients': 0, 'n_without_baseline_day': 0}
    has_day0 = (df['lab_date'] == df['baseline_date']).groupby(df['patient_id']).any()
    return {
        'n_rows': int(len(df)),
        'n_patients': int(df['patient_id'].nunique()),
        'n_without_baseline_day': int((~has_day0).sum()),
    }
