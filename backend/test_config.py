"""
Tests for configuration validation and environment overrides
"""

import pytest

from config import CONFIG, MarketConfig, SimulationConfig, load_env_overrides


class TestSimulationConfig:
    def test_defaults_are_consistent(self):
        config = SimulationConfig()
        assert set(config.ai.tiers) == set(config.ai.setups)
        assert config.campus_by_name("Garage").capacity == 10
        assert config.campus_by_name("Castle") is None

    def test_quarter_label(self):
        assert CONFIG.quarter_label(0, 2000) == (2000, 1)
        assert CONFIG.quarter_label(7, 2000) == (2001, 4)
        assert CONFIG.quarter_label(8, 1995) == (1997, 1)

    def test_invalid_churn_rate_rejected(self):
        with pytest.raises(ValueError):
            SimulationConfig(markets=MarketConfig(churn_rate=1.5))

    def test_delay_below_one_rejected(self):
        delays = {"r&d": 0.5, "q&a": 3.0, "marketing": 1.0}
        with pytest.raises(ValueError):
            SimulationConfig(markets=MarketConfig(effectiveness_delays=delays))


class TestEnvOverrides:
    def test_seed_and_start_year_from_environment(self, monkeypatch):
        monkeypatch.setenv("TECHNOPOLY_SEED", "1234")
        monkeypatch.setenv("TECHNOPOLY_START_YEAR", "2010")
        monkeypatch.delenv("TECHNOPOLY_LOG_LEVEL", raising=False)
        config = SimulationConfig()

        load_env_overrides(config)

        assert config.seed == 1234
        assert config.time.start_year == 2010

    def test_unset_variables_leave_defaults(self, monkeypatch):
        for name in ["TECHNOPOLY_SEED", "TECHNOPOLY_START_YEAR", "TECHNOPOLY_LOG_LEVEL"]:
            monkeypatch.delenv(name, raising=False)
        config = SimulationConfig()

        load_env_overrides(config)

        assert config.seed is None
        assert config.time.start_year == 2000
