"""
Configuration file for pytest.
Shared fixtures for building small creatinine cohorts.
"""
import pandas as pd
import pytest

BASELINE_DATE = pd.Timestamp('2020-01-01')


def make_observations(patient_id, days, creatinine_umol, egfr=None, baseline_date=BASELINE_DATE):
    """Observation table in the shape produced by prepare_observations.

    ``days`` are offsets from ``baseline_date``; eGFR defaults to 90 (no CKD).
    """
    days = list(days)
    creatinine_umol = list(creatinine_umol)
    if egfr is None:
        egfr = [90.0] * len(days)
    baseline_date = pd.Timestamp(baseline_date)
    lab_dates = [baseline_date + pd.Timedelta(days=int(d)) for d in days]
    return pd.DataFrame({
        'patient_id': [patient_id] * len(days),
        'baseline_date': [baseline_date] * len(days),
        'lab_date': pd.to_datetime(lab_dates),
        'days_since_baseline': [int(d) for d in days],
        'months_since_baseline': [d / 30.417 for d in days],
        'age_at_lab': [50.0] * len(days),
        'sex_code': [1] * len(days),
        'creatinine_mgdl': [c / 88.4 for c in creatinine_umol],
        'creatinine_umol': [float(c) for c in creatinine_umol],
        'egfr': [float(e) for e in egfr],
    })


@pytest.fixture
def observations_factory():
    """Return the make_observations helper."""
    return make_observations


@pytest.fixture
def raw_extract():
    """Raw extract as read from a CSV file (all text)."""
    return pd.DataFrame({
        'pt_id': ['1', '1', '1', '2', '2'],
        'date_trans1': ['2020-01-01'] * 3 + ['2021-06-01'] * 2,
        'date_lab': ['2020-01-01', '2020-01-04', '2020-02-01', '2021-06-01', '2021-07-15'],
        'age_at_lab': ['50', '50', '50', '61', '61'],
        'sex': ['1', '1', '1', '2', '2'],
        'creatinine_mgdl': ['0.9', '1.5', '1.0', '1.1', '1.2'],
    })
