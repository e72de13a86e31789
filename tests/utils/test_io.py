import os

import pandas as pd
import pytest

from kidneyoutcomes.episodes import calculate_kidney_outcomes
from kidneyoutcomes.utils.io import _cast_id_cols_to_string, load_data, save_outputs
from kidneyoutcomes.utils.measurement_summary import MeasurementSummaryGenerator, summarize_measurement_frequency


class TestCastIdColsToString:
    def test_cast_id_cols_with_id_columns(self):
        """Test casting ID columns to string when ID columns exist."""
        df = pd.DataFrame({
            "patient_id": [1, 2, 3],
            "value": [10.5, 20.5, 30.5]
        })

        result = _cast_id_cols_to_string(df)

        assert result["patient_id"].dtype == "string"
        assert result["value"].dtype == "float64"
        assert result["patient_id"].tolist() == ["1", "2", "3"]

    def test_cast_id_cols_without_id_columns(self):
        """Test that function is a no-op when no ID columns exist."""
        df = pd.DataFrame({"value": [10.5, 20.5]})
        result = _cast_id_cols_to_string(df)
        assert result["value"].dtype == "float64"
        assert id(result) == id(df)


class TestLoadData:
    def test_csv_read_as_text(self, raw_extract, tmp_path):
        """CSV values reach the validator unparsed."""
        path = tmp_path / "creatinine.csv"
        raw_extract.to_csv(path, index=False)

        df = load_data(str(path))

        assert len(df) == 5
        assert df["creatinine_mgdl"].tolist() == ['0.9', '1.5', '1.0', '1.1', '1.2']
        assert df["pt_id"].tolist() == ['1', '1', '1', '2', '2']

    def test_parquet_with_columns_and_sample(self, tmp_path):
        """Column selection and row limit are applied."""
        path = tmp_path / "creatinine.parquet"
        pd.DataFrame({
            "patient_id": [1, 2, 3],
            "creatinine_mgdl": [0.9, 1.0, 1.1],
            "extra": ["a", "b", "c"],
        }).to_parquet(path, index=False)

        df = load_data(str(path), columns=["patient_id", "creatinine_mgdl"], sample_size=2)

        assert list(df.columns) == ["patient_id", "creatinine_mgdl"]
        assert len(df) == 2
        assert df["patient_id"].dtype == "string"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path / "nope.csv"))

    def test_unsupported_filetype(self, tmp_path):
        path = tmp_path / "creatinine.csv"
        path.write_text("a\n1\n")
        with pytest.raises(ValueError, match="Unsupported filetype"):
            load_data(str(path), filetype="xlsx")


class TestSaveOutputs:
    def test_writes_all_tables(self, observations_factory, tmp_path):
        outcomes = calculate_kidney_outcomes(observations_factory('p1', [0, 3], [80, 130]))
        summary = pd.DataFrame({"patient_id": ["p1"], "n_results": [1]})

        written = save_outputs(outcomes, str(tmp_path / "out"), prefix="run1",
                               measurement_summary=summary)

        assert set(written) == {"aki_year1", "aki_all", "progression_summary", "measurement_summary"}
        for path in written.values():
            assert os.path.exists(path)
        assert written["aki_all"].endswith("run1_aki_all.csv")
        reread = pd.read_csv(written["aki_all"])
        assert reread["start_offset_days"].tolist() == [3]

    def test_cohort_summary_written_as_csv(self, observations_factory, tmp_path):
        obs = observations_factory('p1', [0, 3, 10], [80, 130, 90])
        outcomes = calculate_kidney_outcomes(obs)
        generator = MeasurementSummaryGenerator(summarize_measurement_frequency(obs), site_name="UCMC")

        written = save_outputs(outcomes, str(tmp_path), filetype="parquet", prefix="run1",
                               cohort_summary=generator)

        path = written["measurement_summary_cohort"]
        assert path.endswith("run1_measurement_summary_cohort.csv")
        assert open(path).read().startswith("# Site: UCMC")

    def test_parquet_output(self, observations_factory, tmp_path):
        outcomes = calculate_kidney_outcomes(observations_factory('p1', [0, 3], [80, 130]))
        written = save_outputs(outcomes, str(tmp_path), filetype="parquet", prefix="x")
        assert pd.read_parquet(written["aki_year1"])["akiyear1_sum"].tolist() == [1]
