from . import schemas
from .utils import (
    load_data,
    prepare_observations,
    setup_logging,
    summarize_measurement_frequency,
    validate_input,
)
from .episodes import (
    KidneyOutcomes,
    KidneyOutcomesConfig,
    calculate_kidney_outcomes,
)
# Re-export KidneyOrchestrator at package root
from .kidney_orchestrator import KidneyOrchestrator

# Version info
__version__ = "0.1.0"

# Public API
__all__ = [
    "schemas",
    "load_data",
    "prepare_observations",
    "setup_logging",
    "summarize_measurement_frequency",
    "validate_input",
    "KidneyOutcomes",
    "KidneyOutcomesConfig",
    "calculate_kidney_outcomes",
    "KidneyOrchestrator",
]
