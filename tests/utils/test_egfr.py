"""
Tests for kidneyoutcomes.utils.egfr.
"""

import numpy as np
import pandas as pd
import pytest

from kidneyoutcomes.episodes import KidneyOutcomesConfig
from kidneyoutcomes.utils.egfr import ckd_epi_2021, mgdl_to_umol, prepare_observations
from kidneyoutcomes.utils.validator import validate_input


class TestCkdEpi2021:

    def test_male_at_kappa(self):
        # Scr equal to kappa: both ratio terms are 1
        assert ckd_epi_2021([0.9], [50], [1])[0] == pytest.approx(142 * 0.9938 ** 50)

    def test_female_factor(self):
        assert ckd_epi_2021([0.7], [50], [2])[0] == pytest.approx(142 * 0.9938 ** 50 * 1.012)

    def test_high_creatinine_branch(self):
        expected = 142 * (2.0 / 0.9) ** -1.200 * 0.9938 ** 60
        assert ckd_epi_2021([2.0], [60], [1])[0] == pytest.approx(expected)

    def test_low_creatinine_branch(self):
        expected = 142 * (0.5 / 0.7) ** -0.241 * 0.9938 ** 30 * 1.012
        assert ckd_epi_2021([0.5], [30], [2])[0] == pytest.approx(expected)

    def test_reference_value(self):
        # Male, 60 years, Scr 1.0 mg/dL is about 86 mL/min/1.73m²
        assert ckd_epi_2021([1.0], [60], [1])[0] == pytest.approx(86.0, abs=1.0)

    def test_invalid_inputs_give_nan(self):
        egfr = ckd_epi_2021([1.0, 1.0, 0.0], [50, 50, 50], [3, 1, 1])
        assert np.isnan(egfr[0])
        assert not np.isnan(egfr[1])
        assert np.isnan(egfr[2])

    def test_accepts_series(self):
        egfr = ckd_epi_2021(pd.Series([0.9, 0.7]), pd.Series([50, 50]), pd.Series([1, 2]))
        assert egfr.shape == (2,)


class TestPrepareObservations:

    def test_columns_and_offsets(self, raw_extract):
        obs = prepare_observations(validate_input(raw_extract))
        assert list(obs.columns) == [
            'patient_id', 'baseline_date', 'lab_date', 'days_since_baseline',
            'months_since_baseline', 'age_at_lab', 'sex_code', 'creatinine_mgdl',
            'creatinine_umol', 'egfr',
        ]
        p1 = obs[obs['patient_id'] == '1']
        assert p1['days_since_baseline'].tolist() == [0, 3, 31]
        assert p1['months_since_baseline'].iloc[2] == pytest.approx(31 / 30.417)
        assert p1['creatinine_umol'].iloc[1] == pytest.approx(1.5 * 88.4)

    def test_custom_constants(self, raw_extract):
        config = KidneyOutcomesConfig(days_per_month=30.0, creatinine_mgdl_to_umol=88.0)
        obs = prepare_observations(validate_input(raw_extract), config)
        assert obs['creatinine_umol'].iloc[0] == pytest.approx(0.9 * 88.0)
        assert obs['months_since_baseline'].iloc[2] == pytest.approx(31 / 30.0)

    def test_mgdl_to_umol(self):
        assert mgdl_to_umol(1.0) == pytest.approx(88.4)
