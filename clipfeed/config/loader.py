"""Ranking configuration loader."""

import hashlib
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from clipfeed.config.schemas import RankingConfig


logger = structlog.get_logger()


class RankingConfigError(Exception):
    """Raised when the ranking configuration cannot be loaded."""

    def __init__(self, file_path: str, errors: list[dict[str, str]]) -> None:
        """Initialize the error.

        Args:
            file_path: Path to the file that failed.
            errors: List of error details (``loc`` and ``msg``).
        """
        self.file_path = file_path
        self.errors = errors
        super().__init__(f"Invalid ranking config {file_path}: {len(errors)} errors")


class RankingConfigLoader:
    """Loads ranking.yaml into a validated, immutable RankingConfig."""

    def __init__(self) -> None:
        """Initialize the loader."""
        self._checksum: str | None = None
        self._log = logger.bind(component="config")

    @property
    def checksum(self) -> str | None:
        """SHA-256 of the last file loaded, if any."""
        return self._checksum

    def load(self, path: Path | str | None) -> RankingConfig:
        """Load and validate a ranking configuration file.

        A missing path (None) yields the built-in defaults.

        Args:
            path: Path to the YAML file.

        Returns:
            Validated configuration.

        Raises:
            RankingConfigError: If the file is unreadable, not YAML, or invalid.
        """
        if path is None:
            self._log.info("ranking_config_defaults")
            return RankingConfig()

        file_path = Path(path)
        try:
            content = file_path.read_bytes()
        except OSError as e:
            raise RankingConfigError(
                str(file_path), [{"loc": "", "msg": str(e)}]
            ) from e

        self._checksum = hashlib.sha256(content).hexdigest()

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise RankingConfigError(
                str(file_path), [{"loc": "", "msg": f"YAML parse error: {e}"}]
            ) from e

        if not isinstance(data, dict):
            raise RankingConfigError(
                str(file_path), [{"loc": "", "msg": "Top-level value must be a mapping"}]
            )

        try:
            config = RankingConfig.model_validate(data)
        except ValidationError as e:
            errors = [
                {
                    "loc": ".".join(str(part) for part in err["loc"]),
                    "msg": err["msg"],
                }
                for err in e.errors()
            ]
            self._log.warning(
                "ranking_config_invalid",
                file_path=str(file_path),
                error_count=len(errors),
            )
            raise RankingConfigError(str(file_path), errors) from e

        self._log.info(
            "ranking_config_loaded",
            file_path=str(file_path),
            checksum=self._checksum,
        )
        return config
