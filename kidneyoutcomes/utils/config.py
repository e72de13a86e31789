"""
Configuration loading utilities for kidney-outcome runs.

A run configuration names the creatinine input file, where outputs go, and
optionally overrides engine constants:

    {
        "input_path": "./data/creatinine.csv",
        "filetype": "csv",
        "output_directory": "./output",
        "engine": {"duplicate_policy": "mean"}
    }

Both JSON and YAML files are accepted.
"""

import os
import json
import logging
from typing import Dict, Any, Optional

import yaml

logger = logging.getLogger('kidneyoutcomes.utils.config')

DEFAULT_CONFIG_NAMES = ['kidney_config.json', 'kidney_config.yaml', 'kidney_config.yml']
SUPPORTED_FILETYPES = ['csv', 'parquet']


def _infer_filetype(path: str) -> Optional[str]:
    ext = os.path.splitext(path)[1].lower().lstrip('.')
    if ext in ('parquet', 'pq'):
        return 'parquet'
    if ext in ('csv', 'txt'):
        return 'csv'
    return None


def _read_config_file(config_path: str) -> Dict[str, Any]:
    with open(config_path, 'r') as f:
        if config_path.endswith(('.yaml', '.yml')):
            try:
                config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}")
        else:
            try:
                config = json.load(f)
            except json.JSONDecodeError as e:
                raise json.JSONDecodeError(
                    f"Invalid JSON in configuration file {config_path}: {str(e)}",
                    e.doc, e.pos
                )
    if not isinstance(config, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping at the top level")
    return config


def _validate_config(config: Dict[str, Any], source: str) -> Dict[str, Any]:
    if 'input_path' not in config:
        raise ValueError(
            f"Missing required field in configuration {source}: ['input_path']\n"
            "Required fields are: ['input_path']"
        )

    if not config.get('filetype'):
        inferred = _infer_filetype(str(config['input_path']))
        if inferred is None:
            raise ValueError(
                f"Cannot infer filetype from input_path '{config['input_path']}'\n"
                f"Please set 'filetype' to one of {SUPPORTED_FILETYPES}"
            )
        config['filetype'] = inferred

    if config['filetype'] not in SUPPORTED_FILETYPES:
        raise ValueError(
            f"Unsupported filetype '{config['filetype']}' in {source}\n"
            f"Supported filetypes are: {SUPPORTED_FILETYPES}"
        )

    engine = config.get('engine')
    if engine is not None and not isinstance(engine, dict):
        raise ValueError(f"'engine' in {source} must be a mapping of engine settings")

    return config


def load_kidney_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load a run configuration from a JSON or YAML file.

    Parameters
    ----------
    config_path : str, optional
        Path to the configuration file. If None, looks for
        ``kidney_config.json`` (then ``.yaml``/``.yml``) in the current
        directory.

    Returns
    -------
    dict
        Configuration dictionary with ``filetype`` filled in.

    Raises
    ------
    FileNotFoundError
        If the config file doesn't exist
    ValueError
        If required fields are missing or invalid
    """
    if config_path is None:
        candidates = [os.path.join(os.getcwd(), name) for name in DEFAULT_CONFIG_NAMES]
        config_path = next((c for c in candidates if os.path.exists(c)), candidates[0])

    if not os.path.exists(config_path):
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            "Please either:\n"
            "  1. Create a kidney_config.json file in the current directory\n"
            "  2. Provide config_path parameter pointing to your config file\n"
            "  3. Provide the input_path parameter directly"
        )

    config = _validate_config(_read_config_file(config_path), config_path)
    logger.info(f"Configuration loaded successfully from {config_path}")
    return config


def get_config_or_params(
    config_path: Optional[str] = None,
    input_path: Optional[str] = None,
    filetype: Optional[str] = None,
    output_directory: Optional[str] = None,
    engine: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Get configuration from either a config file or direct parameters.

    Loading priority:
    1. If input_path is provided and no config_path → use parameters only
    2. If config_path provided → load from that path, allow param overrides
    3. If nothing provided → auto-detect kidney_config.json
    4. Parameters override config file values when both are provided

    Parameters
    ----------
    config_path : str, optional
        Path to configuration file
    input_path : str, optional
        Creatinine input file
    filetype : str, optional
        'csv' or 'parquet'; inferred from input_path when omitted
    output_directory : str, optional
        Directory for result tables
    engine : dict, optional
        Engine setting overrides, merged over those in the file

    Returns
    -------
    dict
        Final configuration dictionary
    """
    if input_path is not None and config_path is None:
        config = {'input_path': input_path, 'filetype': filetype}
        if output_directory is not None:
            config['output_directory'] = output_directory
        if engine:
            config['engine'] = dict(engine)
        logger.debug("Using directly provided parameters")
        return _validate_config(config, 'parameters')

    config = load_kidney_config(config_path)

    if input_path is not None:
        config['input_path'] = input_path
        logger.info(f"Overriding input_path from config with: {input_path}")
        if filetype is None:
            config['filetype'] = _infer_filetype(input_path) or config['filetype']

    if filetype is not None:
        config['filetype'] = filetype
        logger.info(f"Overriding filetype from config with: {filetype}")

    if output_directory is not None:
        config['output_directory'] = output_directory
        logger.info(f"Overriding output_directory from config with: {output_directory}")

    if engine:
        merged = dict(config.get('engine') or {})
        merged.update(engine)
        config['engine'] = merged

    return _validate_config(config, config_path or 'configuration')


def create_example_config(
    input_path: str = "./data/creatinine.csv",
    filetype: str = "csv",
    output_directory: str = "./output",
    config_path: str = "./kidney_config.json",
) -> None:
    """
    Create an example configuration file.

    The format (JSON or YAML) follows the extension of ``config_path``.

    Parameters
    ----------
    input_path : str
        Path to the creatinine input file
    filetype : str
        'csv' or 'parquet'
    output_directory : str
        Directory for result tables
    config_path : str
        Where to save the configuration file
    """
    config = {
        'input_path': input_path,
        'filetype': filetype,
        'output_directory': output_directory,
        'engine': {
            'duplicate_policy': 'mean',
            'aki_definition': 'nhs',
        },
    }

    parent = os.path.dirname(config_path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    with open(config_path, 'w') as f:
        if config_path.endswith(('.yaml', '.yml')):
            yaml.safe_dump(config, f, sort_keys=False)
        else:
            json.dump(config, f, indent=2)

    logger.info(f"Example configuration file created at: {config_path}")
