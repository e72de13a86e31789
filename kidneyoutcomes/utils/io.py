import os
import logging
from datetime import datetime
from typing import Dict, List, Optional, TYPE_CHECKING

import duckdb
import pandas as pd

if TYPE_CHECKING:
    from kidneyoutcomes.episodes import KidneyOutcomes
    from kidneyoutcomes.utils.measurement_summary import MeasurementSummaryGenerator

logger = logging.getLogger('kidneyoutcomes.utils.io')


def _cast_id_cols_to_string(df):
    id_cols = [c for c in df.columns if c.endswith("_id")]
    if id_cols:                                   # no-op if none found
        df[id_cols] = df[id_cols].astype("string")
    return df


def load_data(
    file_path: str,
    filetype: Optional[str] = None,
    columns: Optional[List[str]] = None,
    sample_size: Optional[int] = None,
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Load a creatinine extract from CSV or parquet.

    Parameters
    ----------
    file_path : str
        Path to the data file.
    filetype : str, optional
        'csv' or 'parquet'. Inferred from the file extension when omitted.
    columns : list of str, optional
        Columns to load.
    sample_size : int, optional
        Number of rows to load.
    verbose : bool, optional
        If True, log loading details.

    Returns
    -------
    pd.DataFrame
        Loaded rows with ``*_id`` columns cast to string. Every CSV column
        is read as text so malformed values reach the validator unchanged.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the filetype is unsupported.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"The file {file_path} does not exist.")

    if filetype is None:
        filetype = 'parquet' if file_path.lower().endswith(('.parquet', '.pq')) else 'csv'

    if verbose:
        logger.info(f"Loading {os.path.basename(file_path)} as {filetype}")

    con = duckdb.connect()
    try:
        if filetype == 'csv':
            rel = con.read_csv(file_path, all_varchar=True)
        elif filetype == 'parquet':
            rel = con.read_parquet(file_path)
        else:
            raise ValueError(f"Unsupported filetype '{filetype}'. Only 'csv' and 'parquet' are supported.")

        if columns:
            rel = rel.select(*columns)
        if sample_size:
            rel = rel.limit(sample_size)

        df = rel.fetchdf()
    finally:
        con.close()

    df = _cast_id_cols_to_string(df)
    if verbose:
        logger.info(f"Loaded {len(df)} rows, {df.shape[1]} columns")
    return df


def save_dataframe(df: pd.DataFrame, path: str, filetype: str = 'csv') -> str:
    """Write one table; returns the path written."""
    if filetype == 'csv':
        df.to_csv(path, index=False)
    elif filetype == 'parquet':
        df.to_parquet(path, index=False)
    else:
        raise ValueError(f"Unsupported filetype '{filetype}'. Only 'csv' and 'parquet' are supported.")
    return path


def save_outputs(
    outcomes: 'KidneyOutcomes',
    output_directory: str,
    filetype: str = 'csv',
    prefix: Optional[str] = None,
    measurement_summary: Optional[pd.DataFrame] = None,
    cohort_summary: Optional['MeasurementSummaryGenerator'] = None,
) -> Dict[str, str]:
    """
    Write the result tables of a run.

    Parameters
    ----------
    outcomes : KidneyOutcomes
        Result of ``calculate_kidney_outcomes``.
    output_directory : str
        Target directory, created if needed.
    filetype : str, default 'csv'
        'csv' or 'parquet'.
    prefix : str, optional
        File name prefix. Defaults to today's date (``YYYYMMDD``).
    measurement_summary : pd.DataFrame, optional
        Per-patient measurement-frequency table to write alongside.
    cohort_summary : MeasurementSummaryGenerator, optional
        Cohort-level measurement summary, always written as CSV with its
        metadata header.

    Returns
    -------
    dict
        Table name to written path.
    """
    os.makedirs(output_directory, exist_ok=True)
    prefix = prefix or datetime.now().strftime('%Y%m%d')

    tables = {
        'aki_year1': outcomes.aki_year1,
        'aki_all': outcomes.aki_all,
        'progression_summary': outcomes.progression_summary,
    }
    if measurement_summary is not None:
        tables['measurement_summary'] = measurement_summary

    written = {}
    for name, df in tables.items():
        path = os.path.join(output_directory, f"{prefix}_{name}.{filetype}")
        written[name] = save_dataframe(df, path, filetype)
        logger.info(f"Saved {name} ({len(df)} rows) to {path}")

    if cohort_summary is not None:
        path = os.path.join(output_directory, f"{prefix}_measurement_summary_cohort.csv")
        cohort_summary.to_csv(path)
        written["measurement_summary_cohort"] = path
        logger.info(f"Saved cohort measurement summary to {path}")
    return written
