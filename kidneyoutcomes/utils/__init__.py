from .config import create_example_config, get_config_or_params, load_kidney_config
from .egfr import ckd_epi_2021, prepare_observations
from .io import load_data, save_outputs
from .logging_config import get_logger, setup_logging
from .measurement_summary import MeasurementSummaryGenerator, summarize_measurement_frequency
from .validator import cohort_patient_ids, resolve_duplicate_dates, validate_input

__all__ = [
    'create_example_config',
    'get_config_or_params',
    'load_kidney_config',
    'ckd_epi_2021',
    'prepare_observations',
    'load_data',
    'save_outputs',
    'get_logger',
    'setup_logging',
    'MeasurementSummaryGenerator',
    'summarize_measurement_frequency',
    'cohort_patient_ids',
    'resolve_duplicate_dates',
    'validate_input',
]
