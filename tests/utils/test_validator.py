"""
Tests for boundary validation and duplicate-date resolution.
"""

import pandas as pd
import pytest

from kidneyoutcomes.utils.validator import (
    REQUIRED_COLUMNS,
    cohort_patient_ids,
    resolve_duplicate_dates,
    summarize_validation,
    validate_input,
)


class TestValidateInput:

    def test_aliases_and_types(self, raw_extract):
        df = validate_input(raw_extract)
        assert list(df.columns) == REQUIRED_COLUMNS
        assert df['patient_id'].tolist() == ['1', '1', '1', '2', '2']
        assert pd.api.types.is_datetime64_any_dtype(df['lab_date'])
        assert df['sex_code'].tolist() == [1, 1, 1, 2, 2]
        assert df['creatinine_mgdl'].dtype == float

    def test_input_not_modified(self, raw_extract):
        before = raw_extract.copy()
        validate_input(raw_extract)
        pd.testing.assert_frame_equal(raw_extract, before)

    def test_missing_column(self, raw_extract):
        with pytest.raises(ValueError, match="Missing required columns: \\['age_at_lab'\\]"):
            validate_input(raw_extract.drop(columns=['age_at_lab']))

    def test_blank_creatinine_rows_dropped(self, raw_extract):
        raw_extract.loc[1, 'creatinine_mgdl'] = ''
        raw_extract.loc[2, 'creatinine_mgdl'] = None
        df = validate_input(raw_extract)
        assert len(df) == 3

    def test_non_numeric_creatinine_names_row(self, raw_extract):
        raw_extract.loc[3, 'creatinine_mgdl'] = 'high'
        with pytest.raises(ValueError, match="creatinine_mgdl.*row 3"):
            validate_input(raw_extract)

    def test_unparseable_date(self, raw_extract):
        raw_extract.loc[2, 'date_lab'] = 'not a date'
        with pytest.raises(ValueError, match="lab_date.*row 2"):
            validate_input(raw_extract)

    def test_non_numeric_age(self, raw_extract):
        raw_extract.loc[0, 'age_at_lab'] = 'fifty'
        with pytest.raises(ValueError, match="age_at_lab"):
            validate_input(raw_extract)

    def test_invalid_sex_code(self, raw_extract):
        raw_extract.loc[4, 'sex'] = '3'
        with pytest.raises(ValueError, match="sex_code.*row 4"):
            validate_input(raw_extract)

    def test_summary_counts(self, raw_extract):
        raw_extract.loc[3, 'date_lab'] = '2021-06-02'
        counts = summarize_validation(validate_input(raw_extract))
        assert counts == {'n_rows': 5, 'n_patients': 2, 'n_without_baseline_day': 1}


class TestCohortPatientIds:

    def test_includes_patients_with_only_blank_creatinine(self, raw_extract):
        raw_extract.loc[3:4, 'creatinine_mgdl'] = ''
        assert validate_input(raw_extract)['patient_id'].unique().tolist() == ['1']
        assert cohort_patient_ids(raw_extract) == ['1', '2']

    def test_canonical_column_and_blank_ids(self):
        df = pd.DataFrame({'patient_id': [' 7', '3', '', None]})
        assert cohort_patient_ids(df) == ['3', '7']

    def test_missing_id_column(self, raw_extract):
        with pytest.raises(ValueError, match='patient_id'):
            cohort_patient_ids(raw_extract.drop(columns=['pt_id']))


class TestResolveDuplicateDates:

    @pytest.fixture
    def duplicated(self, observations_factory):
        return observations_factory('p1', [0, 5, 5, 9], [80, 100, 120, 90])

    def test_mean(self, duplicated):
        out = resolve_duplicate_dates(duplicated, 'mean')
        assert out['days_since_baseline'].tolist() == [0, 5, 9]
        assert out['creatinine_umol'].tolist() == [80, 110, 90]

    def test_first_and_last(self, duplicated):
        assert resolve_duplicate_dates(duplicated, 'first')['creatinine_umol'].tolist() == [80, 100, 90]
        assert resolve_duplicate_dates(duplicated, 'last')['creatinine_umol'].tolist() == [80, 120, 90]

    def test_error(self, duplicated):
        with pytest.raises(ValueError, match='Duplicate lab_date 2020-01-06 for patient p1'):
            resolve_duplicate_dates(duplicated, 'error')

    def test_unknown_policy(self, duplicated):
        with pytest.raises(ValueError):
            resolve_duplicate_dates(duplicated, 'median')

    def test_no_duplicates_is_noop(self, observations_factory):
        obs = observations_factory('p1', [0, 5], [80, 100])
        pd.testing.assert_frame_equal(resolve_duplicate_dates(obs, 'error'), obs)
