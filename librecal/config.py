"""
YAML configuration for LibreCAL sessions.

Example ``librecal_config.yaml``::

    device:
      resource: "ASRL/dev/ttyACM0::INSTR"
      id_prefix: "LibreCAL"
      timeout_ms: 2000
    logging:
      level: INFO

Every key is optional; missing keys keep the dataclass defaults, and a
missing file yields the default configuration.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "librecal_config.yaml"


@dataclass
class CalDeviceConfig:
    """Connection and logging parameters."""

    resource: str = "ASRL/dev/ttyACM0::INSTR"
    id_prefix: str = "LibreCAL"
    read_termination: str = "\r\n"
    write_termination: str = "\r\n"
    timeout_ms: int = 2000
    visa_backend: str = "@py"
    log_level: str = "INFO"

    def is_valid(self) -> bool:
        if not self.resource:
            return False
        if self.timeout_ms <= 0:
            return False
        # getLevelName maps a known name to its int level
        return isinstance(logging.getLevelName(self.log_level.upper()), int)

    def to_dict(self) -> dict:
        return {
            "device": {
                "resource": self.resource,
                "id_prefix": self.id_prefix,
                "read_termination": self.read_termination,
                "write_termination": self.write_termination,
                "timeout_ms": self.timeout_ms,
                "visa_backend": self.visa_backend,
            },
            "logging": {"level": self.log_level},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalDeviceConfig":
        """Create from a parsed YAML document."""
        device = data.get("device") or {}
        log_cfg = data.get("logging") or {}
        defaults = cls()
        return cls(
            resource=str(device.get("resource", defaults.resource)),
            id_prefix=str(device.get("id_prefix", defaults.id_prefix)),
            read_termination=device.get("read_termination", defaults.read_termination),
            write_termination=device.get("write_termination", defaults.write_termination),
            timeout_ms=int(device.get("timeout_ms", defaults.timeout_ms)),
            visa_backend=str(device.get("visa_backend", defaults.visa_backend)),
            log_level=str(log_cfg.get("level", defaults.log_level)).upper(),
        )


def load_config(path: Optional[str] = None) -> CalDeviceConfig:
    """
    Load a configuration file.

    Args:
        path: YAML file; defaults to ``librecal_config.yaml`` in the current
            directory

    Returns:
        Parsed configuration, or the defaults if the file does not exist

    Raises:
        ValueError: If the file is not valid YAML or not a mapping
    """
    path = path or DEFAULT_CONFIG_NAME
    if not os.path.isfile(path):
        logger.debug("No config file at %s, using defaults", path)
        return CalDeviceConfig()

    try:
        with open(path, "r") as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ValueError(f"Config file is not valid YAML: {path}: {exc}") from exc

    if raw is None:
        return CalDeviceConfig()
    if not isinstance(raw, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")

    config = CalDeviceConfig.from_dict(raw)
    logger.info("Loaded config from %s (resource %s)", path, config.resource)
    return config
