# PATH: config/__init__.py
"""
Configuration loading utilities for the gas oracle.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.constants import ErrorCode
from core.exceptions import ConfigError


CONFIG_DIR = Path(__file__).parent
NETWORKS_FILE = CONFIG_DIR / "networks.yaml"


def load_yaml(path: str | Path) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Absolute path, or name of a file in the config directory

    Returns:
        Parsed YAML as dict

    Raises:
        ConfigError: If the file is missing or not a YAML mapping
    """
    filepath = Path(path)
    if not filepath.is_absolute() and not filepath.exists():
        filepath = CONFIG_DIR / filepath
    if not filepath.exists():
        raise ConfigError(f"Config file not found: {filepath}")

    try:
        with open(filepath, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {filepath}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file is not a mapping: {filepath}")
    return data


def load_networks(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """Load the network catalogue (networks.yaml unless a path is given)."""
    data = load_yaml(path or NETWORKS_FILE)
    return data.get("networks", data)


def get_network_config(network: str, path: Optional[str | Path] = None) -> Dict[str, Any]:
    """
    Get configuration for a specific network.

    Args:
        network: Network identifier (e.g., 'ethereum')
        path: Optional catalogue path

    Returns:
        Network configuration dict

    Raises:
        ConfigError: If the network is unknown
    """
    networks = load_networks(path)
    if network not in networks or not isinstance(networks[network], dict):
        raise ConfigError(
            f"Unknown network: {network}",
            code=ErrorCode.CONFIG_UNKNOWN_NETWORK,
            details={"available": sorted(networks)},
        )
    return networks[network]
