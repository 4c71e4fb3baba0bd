import logging
import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_ADAPTER_CONFIG_FILENAME = ".aws-adapters.yml"


class PollingConfig(BaseModel):
    # Fixed sleep between attempts, in seconds. No backoff is applied.
    elb_removal: float = 1.0
    network_interfaces: float = 1.0
    nat_deletion: float = 3.0
    rds_cluster_deletion: float = 2.0
    # Overall limit for a single wait; None waits until the provider converges.
    deadline: Optional[float] = None

    @field_validator(
        "elb_removal", "network_interfaces", "nat_deletion", "rds_cluster_deletion"
    )
    @classmethod
    def interval_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("poll intervals must not be negative")
        return v


class AdapterConfig(BaseModel):
    crypto_key: Optional[str] = None  # Credentials are plaintext when unset
    endpoint_url: Optional[str] = None  # e.g. a local moto server
    log_level: str = "INFO"
    polling: PollingConfig = Field(default_factory=PollingConfig)

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level '{v}'")
        return level


def _find_default_config() -> Optional[str]:
    current_dir = os.getcwd()
    while True:
        candidate = os.path.join(current_dir, DEFAULT_ADAPTER_CONFIG_FILENAME)
        if os.path.exists(candidate):
            return candidate
        parent_dir = os.path.dirname(current_dir)
        if parent_dir == current_dir:  # Reached root directory
            return None
        current_dir = parent_dir


def load_adapter_config(config_path: Optional[str] = None) -> AdapterConfig:
    """
    Loads adapter settings from a YAML file.
    If config_path is None, searches the working directory and its parents for
    '.aws-adapters.yml'. Returns the default configuration when no file is found.
    """
    actual_config_path = config_path or _find_default_config()

    if not actual_config_path or not os.path.exists(actual_config_path):
        if config_path:
            logger.warning(
                "Adapter config file '%s' not found. Using defaults.", config_path
            )
        else:
            logger.debug(
                "No '%s' found. Using defaults.", DEFAULT_ADAPTER_CONFIG_FILENAME
            )
        return AdapterConfig()

    logger.info("Loading adapter config from: %s", actual_config_path)
    try:
        with open(actual_config_path, "r") as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(
            f"Error parsing YAML adapter config file {actual_config_path}: {e}"
        )

    if config_data is None:  # Empty YAML file
        logger.warning(
            "Adapter config file '%s' is empty. Using defaults.", actual_config_path
        )
        return AdapterConfig()
    if not isinstance(config_data, dict):
        raise ValueError(
            f"Adapter config file {actual_config_path} must contain a mapping"
        )

    try:
        return AdapterConfig(**config_data)
    except ValidationError as e:
        raise ValueError(f"Adapter config validation error in {actual_config_path}:\n{e}")
