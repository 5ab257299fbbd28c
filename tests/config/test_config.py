"""
Tests for configuration management.

Tests config loading from:
1. Environment variables
2. YAML files
3. Combined (env overrides YAML)
"""

import os

import pytest
import yaml

from mnemorecall.config import Config, DecayConfig, LLMConfig, ScoringWeights


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Run from an empty directory so a developer .env is never picked up."""
    monkeypatch.chdir(tmp_path)
    for key in (
        "MNEMO_LLM_PROVIDER",
        "MNEMO_LLM_MODEL",
        "MNEMO_VECTOR_BACKEND",
        "MNEMO_DECAY_HALF_LIFE_DAYS",
        "MNEMO_RETRIEVAL_MAX_ITERATIONS",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.mark.unit
class TestConfigDefaults:
    """Test default configuration values."""

    def test_default_config_creation(self):
        config = Config()

        assert config.llm.provider == "ollama"
        assert config.embedder.model == "nomic-embed-text"
        assert config.vector_backend == "qdrant"
        assert config.metadata_store.db_path == "data/memory_metadata.db"

    def test_decay_defaults(self):
        decay = DecayConfig()

        assert decay.half_life_days == 60.0
        assert decay.expected_accesses_per_month == 5.0
        assert decay.recency_boost_days == 7.0
        assert decay.recency_boost_multiplier == 1.5
        assert decay.max_frequency_boost == 2.0
        assert decay.archival_threshold == 0.2

    def test_scoring_weights_sum_to_one(self):
        assert ScoringWeights().total() == pytest.approx(1.0)

    def test_retrieval_and_environment_defaults(self):
        config = Config()

        assert config.retrieval.initial_retrieval_k == 20
        assert config.retrieval.max_iterations == 10
        assert config.retrieval.cost_budget == 0.5
        assert config.retrieval.simple_max_context == 50_000
        assert config.retrieval.moderate_max_context == 200_000
        assert config.environment.max_sub_calls == 50
        assert config.environment.concurrency_limit == 5
        assert config.maintenance.consolidation_archival_threshold == 0.15

    def test_llm_config_creation(self):
        llm_config = LLMConfig(provider="openai", model="gpt-4o", api_key="sk-test")

        assert llm_config.provider == "openai"
        assert llm_config.api_key == "sk-test"


@pytest.mark.unit
class TestConfigFromEnv:
    """Test loading configuration from environment variables."""

    def test_from_env_basic(self, monkeypatch):
        monkeypatch.setenv("MNEMO_LLM_PROVIDER", "openai")
        monkeypatch.setenv("MNEMO_LLM_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("MNEMO_VECTOR_BACKEND", "memory")

        config = Config.from_env()

        assert config.llm.provider == "openai"
        assert config.llm.model == "gpt-4o-mini"
        assert config.vector_backend == "memory"

    def test_from_env_with_numbers(self, monkeypatch):
        monkeypatch.setenv("MNEMO_DECAY_HALF_LIFE_DAYS", "30")
        monkeypatch.setenv("MNEMO_RETRIEVAL_MAX_ITERATIONS", "3")
        monkeypatch.setenv("MNEMO_EMBEDDER_DIMENSION", "384")

        config = Config.from_env()

        assert config.decay.half_life_days == 30.0
        assert config.retrieval.max_iterations == 3
        assert config.embedder.dimension == 384

    def test_from_env_with_booleans(self, monkeypatch):
        monkeypatch.setenv("MNEMO_RETRIEVAL_HYBRID_SCORING", "false")
        monkeypatch.setenv("MNEMO_LOG_TO_FILE", "0")

        config = Config.from_env()

        assert config.retrieval.enable_hybrid_scoring is False
        assert config.logging.log_to_file is False

    def test_from_env_with_dotenv_file(self, tmp_path):
        env_file = tmp_path / ".env.test"
        env_file.write_text("MNEMO_METADATA_DB_PATH=/tmp/custom.db\n")

        try:
            config = Config.from_env(env_file=str(env_file))
        finally:
            os.environ.pop("MNEMO_METADATA_DB_PATH", None)

        assert config.metadata_store.db_path == "/tmp/custom.db"


@pytest.mark.unit
class TestConfigFromYAML:
    """Test loading configuration from YAML files."""

    def test_from_yaml_basic(self, tmp_path):
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text(
            yaml.dump(
                {
                    "decay": {"half_life_days": 90},
                    "retrieval": {"max_iterations": 4},
                    "vector_backend": "memory",
                }
            )
        )

        config = Config.from_yaml(yaml_file)

        assert config.decay.half_life_days == 90
        assert config.retrieval.max_iterations == 4
        assert config.vector_backend == "memory"
        assert config.decay.archival_threshold == 0.2

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.from_yaml(tmp_path / "missing.yaml")

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text(
            yaml.dump({"decay": {"half_life_days": 90}, "vector_backend": "qdrant"})
        )
        monkeypatch.setenv("MNEMO_VECTOR_BACKEND", "memory")

        config = Config.from_env_or_yaml(yaml_path=yaml_file)

        assert config.vector_backend == "memory"
        assert config.decay.half_life_days == 90
