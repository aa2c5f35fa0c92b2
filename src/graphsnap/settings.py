from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class CodecSettings:
    """Behaviour switches shared by the encoder and restorer.

    - strict: raise ContractViolation on disallowed values; when False the
      value is logged and written as null
    - fast_path: copy homogeneous numeric lists without element tagging
    - validate_records: check raw records against the JSON Schema on load
    - log_level: level name handed to configure_logging by the CLI
    """

    strict: bool = True
    fast_path: bool = True
    validate_records: bool = True
    log_level: str = "INFO"

    @staticmethod
    def _load_yaml(path: Path) -> Dict[str, Any]:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")
        return data

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "CodecSettings":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown settings keys: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def load(cls, user_path: Optional[Path] = None) -> "CodecSettings":
        """Load packaged defaults, overlaid with an optional user YAML file."""
        try:
            with resources.files("graphsnap").joinpath("default_settings.yaml").open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Default settings not found; falling back to dataclass defaults.")
            data = dataclasses.asdict(cls())

        if user_path is not None:
            if user_path.exists():
                data = {**data, **cls._load_yaml(user_path)}
                logger.info("Loaded codec settings from %s", user_path)
            else:
                logger.debug("Settings file %s does not exist; using defaults", user_path)
        return cls._from_dict(data)
