"""Tests for ranking configuration loading and weight resolution."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from clipfeed.config import (
    RankingConfig,
    RankingConfigError,
    RankingConfigLoader,
    SignalWeights,
)


class TestRankingConfigLoader:
    """Tests for RankingConfigLoader."""

    def test_none_path_returns_defaults(self) -> None:
        """Test no path yields the built-in defaults."""
        loader = RankingConfigLoader()
        config = loader.load(None)

        assert config == RankingConfig()
        assert config.weights.trending == 0.30
        assert config.velocity.retention_days == 7
        assert config.feeds.rising_pool_hours == 48
        assert loader.checksum is None

    def test_partial_file_keeps_other_defaults(self, tmp_path: Path) -> None:
        """Test keys missing from the file keep their defaults."""
        path = tmp_path / "ranking.yaml"
        path.write_text("weights:\n  trending: 0.5\nvelocity:\n  window_hours: 12\n")

        loader = RankingConfigLoader()
        config = loader.load(path)

        assert config.weights.trending == 0.5
        assert config.weights.topic_follow == 0.25
        assert config.velocity.window_hours == 12
        assert config.velocity.normalizer == 10.0
        assert loader.checksum is not None
        assert len(loader.checksum) == 64

    def test_empty_file_returns_defaults(self, tmp_path: Path) -> None:
        """Test an empty file is treated as an empty mapping."""
        path = tmp_path / "ranking.yaml"
        path.write_text("")

        assert RankingConfigLoader().load(path) == RankingConfig()

    def test_out_of_range_weight_rejected(self, tmp_path: Path) -> None:
        """Test validation errors carry their location."""
        path = tmp_path / "ranking.yaml"
        path.write_text("weights:\n  diversity: 9.0\n")

        with pytest.raises(RankingConfigError) as exc_info:
            RankingConfigLoader().load(path)

        assert exc_info.value.file_path == str(path)
        assert exc_info.value.errors[0]["loc"] == "weights.diversity"

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        """Test extra keys are forbidden."""
        path = tmp_path / "ranking.yaml"
        path.write_text("feeds:\n  unknown_feed_option: 1\n")

        with pytest.raises(RankingConfigError):
            RankingConfigLoader().load(path)

    def test_malformed_yaml_rejected(self, tmp_path: Path) -> None:
        """Test YAML syntax errors are wrapped."""
        path = tmp_path / "ranking.yaml"
        path.write_text("weights: [unclosed\n")

        with pytest.raises(RankingConfigError) as exc_info:
            RankingConfigLoader().load(path)

        assert "YAML parse error" in exc_info.value.errors[0]["msg"]

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        """Test a top-level list is rejected."""
        path = tmp_path / "ranking.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(RankingConfigError):
            RankingConfigLoader().load(path)

    def test_missing_file_rejected(self, tmp_path: Path) -> None:
        """Test an unreadable path is wrapped."""
        with pytest.raises(RankingConfigError):
            RankingConfigLoader().load(tmp_path / "absent.yaml")

    def test_config_is_frozen(self) -> None:
        """Test loaded configuration is immutable."""
        config = RankingConfig()
        with pytest.raises(ValidationError):
            config.version = "2.0"  # type: ignore[misc]


class TestSignalWeightsResolve:
    """Tests for per-viewer weight overrides."""

    def test_no_overrides_returns_same_weights(self) -> None:
        """Test None and empty maps leave weights untouched."""
        weights = SignalWeights()
        assert weights.resolve(None) is weights
        assert weights.resolve({}) is weights

    def test_override_applied(self) -> None:
        """Test a known key replaces its weight."""
        resolved = SignalWeights().resolve({"trending_weight": 0.6, "skip_penalty": 0.0})

        assert resolved.trending == 0.6
        assert resolved.skip_penalty == 0.0
        assert resolved.topic_follow == 0.25

    def test_unknown_keys_ignored(self) -> None:
        """Test keys outside the override table are ignored."""
        resolved = SignalWeights().resolve({"similar_creator_weight": 1.0, "bogus": 2})
        assert resolved == SignalWeights()

    def test_invalid_values_ignored(self) -> None:
        """Test non-numeric, boolean and out-of-range values are ignored."""
        resolved = SignalWeights().resolve(
            {
                "trending_weight": "high",
                "velocity_weight": True,
                "diversity_weight": -0.1,
                "reputation_weight": 7.5,
                "completion_weight": 0.2,
            }
        )

        assert resolved.trending == 0.30
        assert resolved.velocity == 0.10
        assert resolved.diversity == 0.05
        assert resolved.reputation == 0.05
        assert resolved.completion == 0.2

    def test_resolve_does_not_mutate(self) -> None:
        """Test resolving returns a new instance."""
        weights = SignalWeights()
        weights.resolve({"trending_weight": 1.0})
        assert weights.trending == 0.30
