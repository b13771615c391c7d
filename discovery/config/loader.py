"""Scoring weights loader with validation."""

import hashlib
import time
from pathlib import Path
from typing import NoReturn

import structlog
import yaml
from pydantic import ValidationError

from discovery.config.schemas.scoring import ScoringWeights


logger = structlog.get_logger()


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: list[dict[str, str]], file_path: str) -> None:
        """Initialize the error.

        Args:
            errors: List of validation error details.
            file_path: Path to the file that failed validation.
        """
        self.errors = errors
        self.file_path = file_path
        super().__init__(f"Validation failed for {file_path}: {len(errors)} errors")


class WeightsLoader:
    """Loads scoring weights from a YAML file.

    A missing path yields the built-in defaults. Any parse or schema error is
    reported as a ConfigValidationError with flattened error locations.
    """

    def __init__(self) -> None:
        """Initialize the loader."""
        self._checksum: str | None = None
        self._validation_errors: list[dict[str, str]] = []
        self._validation_duration_ms: float = 0.0
        self._log = logger.bind(component="config")

    @property
    def checksum(self) -> str | None:
        """Get SHA-256 checksum of the last loaded file."""
        return self._checksum

    @property
    def validation_errors(self) -> list[dict[str, str]]:
        """Get validation errors if any."""
        return self._validation_errors.copy()

    @property
    def validation_duration_ms(self) -> float:
        """Get validation duration in milliseconds."""
        return self._validation_duration_ms

    def load(self, path: Path | None) -> ScoringWeights:
        """Load and validate a weights file.

        Args:
            path: Path to the YAML file, or None for defaults.

        Returns:
            Validated ScoringWeights.

        Raises:
            ConfigValidationError: If the file is missing, malformed, or invalid.
        """
        if path is None:
            weights = ScoringWeights()
            self._log.info("scoring_weights_defaulted", version=weights.version)
            return weights

        start_time = time.perf_counter()
        self._validation_errors = []
        self._log.info("loading_config_file", file_path=str(path))

        try:
            content_bytes = path.read_bytes()
            self._checksum = hashlib.sha256(content_bytes).hexdigest()
            data = yaml.safe_load(content_bytes.decode("utf-8")) or {}
            weights = ScoringWeights.model_validate(data)
        except FileNotFoundError as e:
            self._fail(path, [{"loc": "file", "msg": str(e), "type": "file_not_found"}])
        except yaml.YAMLError as e:
            self._fail(path, [{"loc": "file", "msg": str(e), "type": "yaml_error"}])
        except ValidationError as e:
            self._fail(
                path,
                [
                    {
                        "loc": ".".join(str(loc) for loc in err["loc"]) or "root",
                        "msg": err["msg"],
                        "type": err["type"],
                    }
                    for err in e.errors()
                ],
            )

        self._validation_duration_ms = (time.perf_counter() - start_time) * 1000
        self._log.info(
            "config_file_loaded",
            file_path=str(path),
            file_sha256=self._checksum,
            weights_version=weights.version,
            config_validation_duration_ms=round(self._validation_duration_ms, 2),
        )
        return weights

    def _fail(self, path: Path, errors: list[dict[str, str]]) -> NoReturn:
        """Record errors and raise ConfigValidationError."""
        self._validation_errors.extend(errors)
        self._log.error(
            "config_validation_failed",
            file_path=str(path),
            validation_error_count=len(errors),
            errors=errors,
        )
        raise ConfigValidationError(errors, str(path))
