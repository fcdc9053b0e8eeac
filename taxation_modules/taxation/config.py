"""
Taxation Configuration Schema.

Runtime settings for the orchestrator.  Defaults reproduce the engine's
documented behavior; override per deployment:

    config = TaxationConfig(strict_resolution=True)
    config = load_taxation_config(Path("taxation.yaml"))

YAML layout (the top-level ``taxation:`` key is optional):

    taxation:
      rounding_precision: 4
      strict_resolution: false
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Self

import yaml

from taxation_kernel.domain.values import ROUNDING_PRECISION
from taxation_kernel.logging_config import get_logger

logger = get_logger("modules.taxation.config")

MAX_ROUNDING_PRECISION = 9  # Numeric(38, 9) storage scale


@dataclass(frozen=True)
class TaxationConfig:
    """
    Configuration schema for the taxation orchestrator.

    rounding_precision:
        Fractional digits kept on every intermediate and final amount.
    strict_resolution:
        When True, a request for which no rate or group resolves raises
        ``NoApplicableTaxError`` instead of returning zero tax.
    """

    rounding_precision: int = ROUNDING_PRECISION
    strict_resolution: bool = False

    def __post_init__(self):
        if isinstance(self.rounding_precision, bool) or not isinstance(
            self.rounding_precision, int
        ):
            raise ValueError(
                f"rounding_precision must be an integer, got {self.rounding_precision!r}"
            )
        if not 0 <= self.rounding_precision <= MAX_ROUNDING_PRECISION:
            raise ValueError(
                f"rounding_precision must be within [0, {MAX_ROUNDING_PRECISION}], "
                f"got {self.rounding_precision}"
            )
        if not isinstance(self.strict_resolution, bool):
            raise ValueError(
                f"strict_resolution must be a boolean, got {self.strict_resolution!r}"
            )

        logger.info(
            "taxation_config_initialized",
            extra={
                "rounding_precision": self.rounding_precision,
                "strict_resolution": self.strict_resolution,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the documented defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary (e.g. parsed YAML)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown taxation config keys: {unknown}")
        logger.info(
            "taxation_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)


def load_taxation_config(path: Path) -> TaxationConfig:
    """
    Load ``TaxationConfig`` from a YAML file.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: for unknown keys or invalid values.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Taxation config in {path} must be a mapping")
    section = data.get("taxation", data)
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ValueError(f"'taxation' section in {path} must be a mapping")
    logger.info("taxation_config_file_loaded", extra={"path": str(path)})
    return TaxationConfig.from_dict(section)
