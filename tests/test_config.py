"""Tests for OrionConfig."""

import pytest
from pyorion.config import DEFAULT_DSN, OrionConfig
from pyorion.core.errors import ConfigurationError


class TestOrionConfig:

    def test_defaults(self):
        config = OrionConfig()
        assert config.grammar == "select_core"
        assert config.top_weight == 1000
        assert config.mutation == "nt"
        assert config.schemas == ["public"]
        assert config.get_dsn() == DEFAULT_DSN

    def test_dsn_override(self):
        assert OrionConfig(dsn="postgresql://x/y").get_dsn() == "postgresql://x/y"

    @pytest.mark.parametrize("kwargs", [
        {"mutation": "gene"},
        {"crossover": "x"},
        {"population": 0},
        {"top_weight": 0},
        {"mutation_rate": 1.5},
        {"pass_through_fraction": -0.1},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            OrionConfig(**kwargs)

    def test_merged_ignores_none(self):
        config = OrionConfig(rounds=3).merged(rounds=None, population=4)
        assert config.rounds == 3
        assert config.population == 4

    def test_merged_rejects_unknown_keys(self):
        with pytest.raises(ConfigurationError, match="Unknown configuration keys"):
            OrionConfig().merged(colour="blue")

    def test_merged_validates(self):
        with pytest.raises(ConfigurationError):
            OrionConfig().merged(mutation="bad")


class TestFromEnv:

    def test_reads_environment(self):
        env = {
            "PYORION_DSN": "postgresql://db/x",
            "PYORION_SEED": "17",
            "PYORION_GRAMMAR": "arith",
            "PYORION_UNIVERSE": "/tmp/u.json",
            "PYORION_WORK_DIR": "/tmp/work",
        }
        config = OrionConfig.from_env(env)
        assert config.dsn == "postgresql://db/x"
        assert config.seed == 17
        assert config.grammar == "arith"
        assert config.universe_file == "/tmp/u.json"
        assert config.work_dir == "/tmp/work"

    def test_overrides_win(self):
        config = OrionConfig.from_env({"PYORION_SEED": "1"}, seed=2, grammar=None)
        assert config.seed == 2
        assert config.grammar == "select_core"

    def test_bad_seed(self):
        with pytest.raises(ConfigurationError, match="PYORION_SEED"):
            OrionConfig.from_env({"PYORION_SEED": "abc"})

    def test_empty_environment(self):
        assert OrionConfig.from_env({}) == OrionConfig()
