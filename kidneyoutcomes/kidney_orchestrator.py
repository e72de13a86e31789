"""
KidneyOrchestrator class for end-to-end kidney-outcome runs.

This module ties the boundary utilities to the episode engine:
load → validate → eGFR → detect episodes → save tables.
"""

import os
import logging
from typing import Any, Dict, List, Optional

import pandas as pd
import psutil

from .episodes import KidneyOutcomes, KidneyOutcomesConfig, calculate_kidney_outcomes
from .utils.config import get_config_or_params
from .utils.egfr import prepare_observations
from .utils.io import load_data, save_outputs
from .utils.logging_config import setup_logging
from .utils.measurement_summary import MeasurementSummaryGenerator, PrivacyConfig, summarize_measurement_frequency
from .utils.validator import cohort_patient_ids, summarize_validation, validate_input


class KidneyOrchestrator:
    """
    Orchestrator for running the kidney-outcome pipeline on one extract.

    Attributes:
        input_path (str): Creatinine extract (CSV or parquet)
        filetype (str): 'csv' or 'parquet'
        output_directory (str): Directory for result tables and logs
        engine_config (KidneyOutcomesConfig): Clinical constants
        raw (pd.DataFrame): Loaded extract
        validated (pd.DataFrame): Extract after boundary validation
        patient_ids (list): Every patient id in the raw extract, including those with no usable rows
        observations (pd.DataFrame): Validated rows with eGFR and time offsets
        outcomes (KidneyOutcomes): Result of the last run
        measurement_generator (MeasurementSummaryGenerator): Cohort measurement summary written by save()
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        input_path: Optional[str] = None,
        filetype: Optional[str] = None,
        output_directory: Optional[str] = None,
        engine_config: Optional[KidneyOutcomesConfig] = None,
        log_to_file: bool = False,
    ):
        """
        Initialize the KidneyOrchestrator.

        Parameters:
            config_path (str, optional): Path to a JSON/YAML run configuration
            input_path (str, optional): Creatinine extract path
            filetype (str, optional): 'csv' or 'parquet'; inferred from the extension if omitted
            output_directory (str, optional): Directory for outputs. Defaults to ./output
            engine_config (KidneyOutcomesConfig, optional): Overrides the 'engine' section of the config
            log_to_file (bool): Also write a run log into the output directory

        Loading priority:
            1. If input_path is provided without config_path → use parameters
            2. If config_path provided → load from that path, allow param overrides
            3. If nothing provided → auto-detect kidney_config.json
        """
        config = get_config_or_params(
            config_path=config_path,
            input_path=input_path,
            filetype=filetype,
            output_directory=output_directory,
        )

        self.input_path = config['input_path']
        self.filetype = config['filetype']

        self.output_directory = config.get('output_directory')
        if self.output_directory is None:
            self.output_directory = os.path.join(os.getcwd(), 'output')
        os.makedirs(self.output_directory, exist_ok=True)

        if engine_config is None:
            engine_config = KidneyOutcomesConfig.from_dict(config.get('engine'))
        self.engine_config = engine_config

        if log_to_file:
            setup_logging(log_file=os.path.join(self.output_directory, 'kidneyoutcomes.log'))
        self.logger = logging.getLogger('kidneyoutcomes.KidneyOrchestrator')

        self.raw: Optional[pd.DataFrame] = None
        self.validated: Optional[pd.DataFrame] = None
        self.patient_ids: Optional[List[str]] = None
        self.observations: Optional[pd.DataFrame] = None
        self.outcomes: Optional[KidneyOutcomes] = None
        self.measurement_summary: Optional[pd.DataFrame] = None
        self.measurement_generator: Optional[MeasurementSummaryGenerator] = None

        self.logger.info('KidneyOrchestrator initialized.')

    def load(self, sample_size: Optional[int] = None) -> pd.DataFrame:
        """Load the raw extract."""
        self.logger.info(f"Loading {self.input_path}")
        self.raw = load_data(self.input_path, filetype=self.filetype, sample_size=sample_size)
        return self.raw

    def validate(self) -> pd.DataFrame:
        """Validate the raw extract and derive the observation table."""
        if self.raw is None:
            self.load()
        self.validated = validate_input(self.raw)
        self.patient_ids = cohort_patient_ids(self.raw)
        counts = summarize_validation(self.validated)
        self.logger.info(
            f"Validated {counts['n_rows']} rows for {counts['n_patients']} patients "
            f"({counts['n_without_baseline_day']} without a baseline-day result)"
        )
        self.observations = prepare_observations(self.validated, self.engine_config)
        return self.observations

    def run(self, n_jobs: int = 1, show_progress: bool = True, dev: bool = False) -> KidneyOutcomes:
        """
        Detect episodes for every patient in the extract.

        Parameters:
            n_jobs (int): Worker processes for the per-patient stage
            show_progress (bool): Show a progress bar
            dev (bool): Keep per-patient daily grids in ``outcomes.intermediates``

        Returns:
            KidneyOutcomes with aki_year1, aki_all and progression_summary
        """
        if self.observations is None:
            self.validate()

        self.outcomes = calculate_kidney_outcomes(
            self.observations,
            self.engine_config,
            patient_ids=self.patient_ids,
            n_jobs=n_jobs,
            show_progress=show_progress,
            dev=dev,
        )
        self.measurement_summary = summarize_measurement_frequency(self.observations)
        self.measurement_generator = None
        return self.outcomes

    def summarize_measurements(
        self,
        privacy_config: Optional[PrivacyConfig] = None,
        site_name: Optional[str] = None,
    ) -> MeasurementSummaryGenerator:
        """Cohort-level measurement-frequency summary of the loaded extract."""
        if self.observations is None:
            self.validate()
        if self.measurement_summary is None:
            self.measurement_summary = summarize_measurement_frequency(self.observations)
        generator = MeasurementSummaryGenerator(
            self.measurement_summary, privacy_config=privacy_config, site_name=site_name
        )
        generator.generate()
        self.measurement_generator = generator
        return generator

    def save(self, filetype: str = 'csv', prefix: Optional[str] = None) -> Dict[str, str]:
        """
        Write the result tables to the output directory.

        The cohort measurement summary uses the generator from the last
        summarize_measurements() call made after run(), or default privacy
        settings.
        """
        if self.outcomes is None:
            raise ValueError("No results to save. Call run() first.")
        generator = self.measurement_generator
        if generator is None and self.measurement_summary is not None:
            generator = self.summarize_measurements()
        return save_outputs(
            self.outcomes,
            self.output_directory,
            filetype=filetype,
            prefix=prefix,
            measurement_summary=self.measurement_summary,
            cohort_summary=generator,
        )

    def run_all(self, n_jobs: int = 1, show_progress: bool = True, filetype: str = 'csv') -> Dict[str, str]:
        """Load, validate, run and save in one call; returns the written paths."""
        self.load()
        self.validate()
        self.run(n_jobs=n_jobs, show_progress=show_progress)
        return self.save(filetype=filetype)

    def get_sys_resource_info(self, print_summary: bool = True) -> Dict[str, Any]:
        """
        Get system resource information to choose ``n_jobs``.

        Parameters:
            print_summary (bool): Whether to print a formatted summary

        Returns:
            Dict containing cpu_count_physical, cpu_count_logical,
            memory_total_gb, memory_available_gb, memory_usage_percent and
            max_recommended_workers
        """
        cpu_count_physical = psutil.cpu_count(logical=False) or 1
        cpu_count_logical = psutil.cpu_count(logical=True) or cpu_count_physical

        memory = psutil.virtual_memory()
        resource_info = {
            'cpu_count_physical': cpu_count_physical,
            'cpu_count_logical': cpu_count_logical,
            'memory_total_gb': memory.total / (1024**3),
            'memory_available_gb': memory.available / (1024**3),
            'memory_usage_percent': memory.percent,
            'max_recommended_workers': max(1, cpu_count_physical - 1),
        }

        if print_summary:
            print("=" * 50)
            print("SYSTEM RESOURCES")
            print("=" * 50)
            print(f"CPU Cores (Physical): {cpu_count_physical}")
            print(f"CPU Cores (Logical):  {cpu_count_logical}")
            print("-" * 50)
            print(f"Total RAM:            {resource_info['memory_total_gb']:.1f} GB")
            print(f"Available RAM:        {resource_info['memory_available_gb']:.1f} GB")
            print(f"Memory Usage:         {resource_info['memory_usage_percent']:.1f}%")
            print("-" * 50)
            print(f"Recommended n_jobs:   {resource_info['max_recommended_workers']}")
            print("=" * 50)

        return resource_info
