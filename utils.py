# utils.py
"""
Utility functions for the particle field framework.

This module provides helper functions, such as logging setup and config
loading, that are used across the application but do not belong to a
specific domain like sampling or rendering.
"""
import logging
import logging.handlers
import json
import os
from typing import Dict, Any

from constants import FPS, DEFAULT_LOG_THROTTLE_TICKS
from errors import ConfigurationError

# --- Data Contracts ---
#
# setup_logging(config: Dict[str, Any]) -> None:
#   - Inputs:
#     - config: A dictionary containing a "logging" key with "level",
#       "format", and "log_file" sub-keys. All sub-keys are optional.
#   - Side Effects: Configures the root Python logger. Creates the log
#     directory if it doesn't exist. Sets up a console handler and a
#     rotating file handler (file handler skipped when log_file is empty).
#
# load_config(path: str) -> Dict[str, Any]:
#   - Outputs: the decoded JSON document.
#   - Errors: FileNotFoundError / json.JSONDecodeError are logged, then
#     re-raised unchanged.
#
# run_settings(config: Dict[str, Any]) -> Dict[str, Any]:
#   - Outputs: profile, seed, max_steps, log_throttle_steps, fps, fixed_step.
#   - Errors: ConfigurationError when a count is not an integer.

def setup_logging(config: Dict[str, Any]) -> None:
    """
    Configures the logging system from a configuration dictionary.

    Sets up logging to the console and, when a log file is configured,
    to a rotating file.
    """
    log_config = config.get('logging', {})
    log_level = str(log_config.get('level', 'INFO')).upper()
    log_format = log_config.get('format', '%(asctime)s - %(levelname)s - %(message)s')
    log_file_path = log_config.get('log_file', 'logs/particle_field.log')

    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Clear existing handlers to avoid duplication
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        # Rotates when the log reaches 1MB, keeps 5 backup logs.
        file_handler = logging.handlers.RotatingFileHandler(
            log_file_path, maxBytes=1024*1024, backupCount=5
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logging.info("Logging system initialized.")
    logging.debug(f"Log level set to {log_level}.")
    logging.debug(f"Log file path: {log_file_path or '<console only>'}")

def load_config(path: str) -> Dict[str, Any]:
    """Loads a JSON configuration file."""
    logging.info(f"Loading configuration from {path}...")
    try:
        with open(path, 'r') as f:
            config = json.load(f)
        logging.info("Configuration loaded successfully.")
        return config
    except FileNotFoundError:
        logging.error(f"Configuration file not found at {path}.")
        raise
    except json.JSONDecodeError:
        logging.error(f"Error decoding JSON from {path}.")
        raise


def _whole(run: Dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = run.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"run_control.{key} must be an integer, got {value!r}")
    if value < minimum:
        logging.warning(f"run_control.{key}={value} is below {minimum}; using {minimum}.")
        return minimum
    return value


def run_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reads the `run_control` section with defaults filled in.

    `log_throttle_steps` and `fps` are raised to at least 1 because the
    frame loop divides by them. `max_steps` of 0 means run until closed.
    """
    run = config.get('run_control', {})
    seed = run.get('seed')
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise ConfigurationError(f"run_control.seed must be an integer or null, got {seed!r}")
    return {
        'profile': run.get('profile', 'home'),
        'seed': seed,
        'max_steps': _whole(run, 'max_steps', 5000, 0),
        'log_throttle_steps': _whole(run, 'log_throttle_steps', DEFAULT_LOG_THROTTLE_TICKS, 1),
        'fps': _whole(run, 'fps', FPS, 1),
        'fixed_step': bool(run.get('fixed_step', False)),
    }
