"""
Creatinine measurement-frequency summaries.

Two levels:
- ``summarize_measurement_frequency`` gives one row per patient describing
  how often creatinine was measured after (and before) the baseline date.
- ``MeasurementSummaryGenerator`` turns that table into a cohort summary
  with small-cell suppression, ready to share across sites.

Example usage:
    from kidneyoutcomes.utils.measurement_summary import (
        MeasurementSummaryGenerator, summarize_measurement_frequency,
    )

    per_patient = summarize_measurement_frequency(observations)
    generator = MeasurementSummaryGenerator(per_patient, site_name="SITE")
    generator.generate()
    generator.to_csv("output/measurement_summary_SITE.csv")
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
import json

import numpy as np
import pandas as pd


@dataclass
class PrivacyConfig:
    """Small-cell protection for the cohort summary.

    Attributes:
        min_cell_size: Minimum count for statistics to be reported (default: 10).
        round_counts_to: Round counts to the nearest value (e.g. 5). None disables rounding.
        suppression_label: Label used in place of suppressed values.
    """

    min_cell_size: int = 10
    round_counts_to: Optional[int] = None
    suppression_label: str = "<10"

    def __post_init__(self):
        if self.min_cell_size < 1:
            raise ValueError("min_cell_size must be at least 1")
        if self.round_counts_to is not None and self.round_counts_to < 1:
            raise ValueError("round_counts_to must be at least 1 or None")


@dataclass
class SummaryVariable:
    """A per-patient column to summarise and its display label."""

    name: str
    label: str
    summary_stats: List[str] = field(
        default_factory=lambda: ["median", "q1", "q3", "mean", "min", "max"]
    )


DEFAULT_MEASUREMENT_VARIABLES = [
    SummaryVariable("mean_days_between_results", "Mean number of days between results"),
    SummaryVariable("n_results", "Number of creatinine results assessed"),
    SummaryVariable("follow_up_months", "Total follow up time of all results (months)"),
    SummaryVariable(
        "measurement_rate",
        "Rate of measurement (number of creatinine results / total follow up time)",
    ),
]


def summarize_measurement_frequency(observations: pd.DataFrame) -> pd.DataFrame:
    """
    Per-patient creatinine measurement frequency.

    Baseline-day results are left out so the figures describe monitoring
    rather than the baseline assessment.

    Parameters
    ----------
    observations : pd.DataFrame
        Columns [patient_id, lab_date, days_since_baseline, months_since_baseline],
        one row per patient-date.

    Returns
    -------
    pd.DataFrame
        Columns [patient_id, mean_days_between_results, n_results,
        follow_up_months, measurement_rate]. The rate is NaN when follow-up
        is not positive; the mean gap is NaN for a single result.
    """
    columns = ['patient_id', 'mean_days_between_results', 'n_results',
               'follow_up_months', 'measurement_rate']
    obs = observations.loc[observations['days_since_baseline'] != 0]
    if obs.empty:
        return pd.DataFrame(columns=columns)

    obs = obs.sort_values(['patient_id', 'lab_date'])
    gaps = obs.groupby('patient_id')['days_since_baseline'].diff()

    summary = (
        obs.assign(gap=gaps)
        .groupby('patient_id', sort=True)
        .agg(
            mean_days_between_results=('gap', 'mean'),
            n_results=('lab_date', 'size'),
            follow_up_months=('months_since_baseline', 'max'),
        )
        .reset_index()
    )
    follow_up = summary['follow_up_months'].to_numpy(dtype=float)
    with np.errstate(divide='ignore', invalid='ignore'):
        rate = summary['n_results'].to_numpy(dtype=float) / follow_up
    summary['measurement_rate'] = np.where(follow_up > 0, rate, np.nan)
    return summary[columns]


class MeasurementSummaryGenerator:
    """Cohort summary of per-patient measurement frequency with small-cell protection."""

    def __init__(
        self,
        data: pd.DataFrame,
        variables: Optional[List[SummaryVariable]] = None,
        privacy_config: Optional[PrivacyConfig] = None,
        site_name: Optional[str] = None,
    ):
        """Initialize the generator.

        Args:
            data: Output of ``summarize_measurement_frequency``.
            variables: Variables to summarise. Defaults to DEFAULT_MEASUREMENT_VARIABLES.
            privacy_config: Suppression settings. Defaults to PrivacyConfig().
            site_name: Name of the site (for output labeling).
        """
        self.data = data
        self.variables = variables or DEFAULT_MEASUREMENT_VARIABLES
        self.privacy = privacy_config or PrivacyConfig()
        self.site_name = site_name or "SITE"
        self._results: Optional[pd.DataFrame] = None
        self._metadata: Dict[str, Any] = {}

    def _apply_privacy(self, count: int) -> Union[int, str]:
        if count < self.privacy.min_cell_size:
            return self.privacy.suppression_label
        if self.privacy.round_counts_to:
            return int(round(count / self.privacy.round_counts_to) * self.privacy.round_counts_to)
        return int(count)

    def _summarize(self, series: pd.Series, variable: SummaryVariable) -> Dict[str, Any]:
        valid = pd.to_numeric(series, errors='coerce').dropna()
        n_valid = len(valid)
        result = {
            "variable": variable.label,
            "n": self._apply_privacy(n_valid),
            "missing_n": self._apply_privacy(len(series) - n_valid)
            if len(series) - n_valid else 0,
        }

        reportable = isinstance(result["n"], int) and n_valid >= self.privacy.min_cell_size
        stats = {
            "median": lambda v: v.median(),
            "q1": lambda v: v.quantile(0.25),
            "q3": lambda v: v.quantile(0.75),
            "mean": lambda v: v.mean(),
            "min": lambda v: v.min(),
            "max": lambda v: v.max(),
        }
        for stat in variable.summary_stats:
            if reportable:
                result[stat] = round(float(stats[stat](valid)), 1)
            else:
                result[stat] = self.privacy.suppression_label
        return result

    def generate(self) -> pd.DataFrame:
        """Build the cohort summary table."""
        total_n = len(self.data)
        rows = [{"variable": "Total patients", "n": self._apply_privacy(total_n)}]
        for variable in self.variables:
            if variable.name not in self.data.columns:
                continue
            rows.append(self._summarize(self.data[variable.name], variable))

        self._results = pd.DataFrame(rows)
        self._metadata = {
            "site_name": self.site_name,
            "generated_at": datetime.now().isoformat(),
            "privacy_config": {
                "min_cell_size": self.privacy.min_cell_size,
                "round_counts_to": self.privacy.round_counts_to,
            },
            "total_n_raw": total_n,
            "variables_included": [v.name for v in self.variables if v.name in self.data.columns],
        }
        return self._results

    def get_metadata(self) -> Dict[str, Any]:
        if not self._metadata:
            raise ValueError("Must call generate() before getting metadata")
        return self._metadata

    def to_csv(self, path: str, include_metadata: bool = True) -> None:
        """Export to CSV, optionally with '#' metadata lines on top."""
        if self._results is None:
            self.generate()

        if include_metadata:
            with open(path, "w") as f:
                f.write(f"# Site: {self._metadata['site_name']}\n")
                f.write(f"# Generated: {self._metadata['generated_at']}\n")
                f.write(f"# Min Cell Size: {self._metadata['privacy_config']['min_cell_size']}\n")
                f.write("#\n")
                self._results.to_csv(f, index=False)
        else:
            self._results.to_csv(path, index=False)

    def to_json(self, path: str) -> None:
        if self._results is None:
            self.generate()
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    def to_dict(self) -> Dict[str, Any]:
        if self._results is None:
            self.generate()
        return {
            "metadata": self._metadata,
            "measurement_summary": self._results.to_dict(orient="records"),
        }
