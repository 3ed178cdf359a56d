import json
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from zkevm_deployment.constants import STANDARD_JSON_FORMAT


class DeploymentConfigError(ValueError):
    """Raised when the deployment inputs are incomplete or stale; nothing has been sent yet."""


class DeploymentConsistencyError(Exception):
    """Raised when on-chain state does not match what the deployment expects."""


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def _load_config(filepath: Path) -> Dict[str, Any]:
    """Loads a JSON or YAML parameters file, chosen by suffix."""
    filepath = Path(filepath)
    if not filepath.exists():
        raise DeploymentConfigError(f"Parameters file not found at {filepath}")
    if filepath.suffix in (".yml", ".yaml"):
        config = _load_yaml(filepath)
    else:
        config = _load_json(filepath)
    if not isinstance(config, dict):
        raise DeploymentConfigError(f"Malformed parameters file {filepath}.")
    return config


def _write_json(data: Any, filepath: Path) -> Path:
    """Replaces the contents of a JSON file in one step."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    temp_filepath = filepath.with_suffix(".temp.json")
    with open(temp_filepath, "w") as file:
        json.dump(data, file, **STANDARD_JSON_FORMAT)
    os.replace(temp_filepath, filepath)
    return filepath
