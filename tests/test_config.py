"""
Tests for the integration configuration and its YAML persistence.
"""

import logging

import pytest
import yaml
from pydantic import ValidationError

from ibsode.exceptions import ConfigurationError
from ibsode.simulators import FixedStepPolicy, IntegrationConfig, IntegrationScheme, ThresholdPolicy


class TestIntegrationConfig:
    """Test configuration validation and repair."""

    def test_defaults(self):
        """Test the adaptive derivative defaults."""
        config = IntegrationConfig(model=4, particle_number=1e10)
        assert config.scheme == "der"
        assert config.coupling_percentage == 0
        assert config.is_adaptive
        assert config.stopping.threshold == 1e-4
        assert config.stopping.max_steps == 10000
        assert not config.debug_output

    def test_unknown_scheme_defaults_to_derivative(self, caplog):
        """Test that an invalid scheme falls back to "der" with a warning."""
        with caplog.at_level(logging.WARNING):
            config = IntegrationConfig(model=4, particle_number=1e10, scheme="euler")
        assert config.scheme == IntegrationScheme.DERIVATIVE
        assert "Unknown integration scheme" in caplog.text

    def test_scheme_enum_accepted(self):
        """Test that enum members and values are both accepted."""
        config = IntegrationConfig(model=4, particle_number=1e10, scheme=IntegrationScheme.RELAXATION)
        assert config.scheme == "rlx"

    @pytest.mark.parametrize("percentage, expected", [(0, 0.0), (25, 0.25), (100, 1.0), (150, 0.0), (-5, 0.0)])
    def test_coupling_clamp(self, percentage, expected):
        """Test that out-of-range coupling percentages mean no coupling."""
        config = IntegrationConfig(model=4, particle_number=1e10, coupling_percentage=percentage)
        assert config.coupling == expected

    @pytest.mark.parametrize("threshold, expected", [(1e-6, 1e-6), (0.5, 0.5), (1e-8, 1e-4), (3.0, 1e-4)])
    def test_threshold_clamp(self, threshold, expected):
        """Test that out-of-range thresholds fall back to 1e-4."""
        config = IntegrationConfig.adaptive(model=4, particle_number=1e10, threshold=threshold)
        assert config.stopping.threshold == expected

    def test_fixed(self):
        """Test the fixed-step constructor."""
        config = IntegrationConfig.fixed(model=6, particle_number=1e10, nsteps=50, stepsize=1e-4, scheme="rlx")
        assert not config.is_adaptive
        assert isinstance(config.stopping, FixedStepPolicy)
        assert config.stopping.nsteps == 50

    def test_invalid_values(self):
        """Test that structurally invalid values are rejected."""
        with pytest.raises(ValidationError):
            IntegrationConfig(model=4, particle_number=-1.0)
        with pytest.raises(ValidationError):
            IntegrationConfig.fixed(model=4, particle_number=1e10, nsteps=0, stepsize=1e-4)
        with pytest.raises(ValidationError):
            IntegrationConfig.fixed(model=4, particle_number=1e10, nsteps=10, stepsize=0.0)
        with pytest.raises(ValidationError):
            ThresholdPolicy(max_steps=20000)
        with pytest.raises(ValidationError):
            IntegrationConfig(model=4, particle_number=1e10, nsteps=10)

    def test_stopping_from_dict(self):
        """Test that the stopping policy is selected by its kind."""
        config = IntegrationConfig.from_dict({
            "model": 4,
            "particle_number": 1e10,
            "stopping": {"kind": "fixed", "nsteps": 5, "stepsize": 1e-3},
        })
        assert isinstance(config.stopping, FixedStepPolicy)


class TestConfigYaml:
    """Test YAML round trips."""

    def test_round_trip_adaptive(self, tmp_path):
        """Test that an adaptive configuration survives a YAML round trip."""
        config = IntegrationConfig.adaptive(
            model=5, particle_number=2.5e10, threshold=1e-5, coupling_percentage=10, scheme="rlx"
        )
        path = tmp_path / "config.yaml"
        config.to_yaml(path)
        assert IntegrationConfig.from_yaml(path).to_dict() == config.to_dict()

    def test_round_trip_fixed(self, tmp_path):
        """Test that a fixed configuration survives a YAML round trip."""
        config = IntegrationConfig.fixed(model=13, particle_number=1e10, nsteps=20, stepsize=5e-4)
        path = tmp_path / "config.yaml"
        config.to_yaml(path)
        assert IntegrationConfig.from_yaml(path).to_dict() == config.to_dict()

    def test_yaml_content(self, tmp_path):
        """Test that the file is plain YAML."""
        path = tmp_path / "config.yaml"
        IntegrationConfig(model=4, particle_number=1e10).to_yaml(path)
        data = yaml.safe_load(path.read_text())
        assert data["scheme"] == "der"
        assert data["stopping"]["kind"] == "threshold"

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            IntegrationConfig.from_yaml(tmp_path / "missing.yaml")

    def test_not_a_mapping(self, tmp_path):
        """Test that a YAML list raises ConfigurationError."""
        path = tmp_path / "config.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            IntegrationConfig.from_yaml(path)

    def test_invalid_content(self, tmp_path):
        """Test that invalid values raise ConfigurationError."""
        path = tmp_path / "config.yaml"
        path.write_text("model: 4\nparticle_number: -1.0\n")
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            IntegrationConfig.from_yaml(path)
