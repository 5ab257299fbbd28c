"""
Configuration for mnemorecall.

Supports loading from:
1. Environment variables (highest priority)
2. YAML config file
3. Default values (fallback)
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: str = "ollama"  # ollama, openai
    model: str = "llama3.1:8b"
    base_url: str = "http://localhost:11434"
    api_key: str | None = None
    temperature: float = 0.0
    max_tokens: int = 2000
    timeout: float = 120.0


class EmbedderConfig(BaseModel):
    """Embedder configuration."""

    provider: str = "ollama"  # ollama, openai
    model: str = "nomic-embed-text"
    base_url: str = "http://localhost:11434"
    api_key: str | None = None
    timeout: float = 120.0
    # Optional: embedding dimension (fallback to auto-detect)
    dimension: int | None = None


class QdrantConfig(BaseModel):
    """Qdrant vector store configuration."""

    url: str = "http://localhost:6333"
    collection_name: str = "chunks"
    use_grpc: bool = False
    hnsw_m: int = 16
    hnsw_ef_construct: int = 100
    use_quantization: bool = False
    on_disk: bool = False
    timeout: int = 30


class MetadataStoreConfig(BaseModel):
    """Durable chunk-metadata store configuration."""

    backend: str = "sqlite"
    db_path: str = "data/memory_metadata.db"


class TokenizerConfig(BaseModel):
    """Token counting configuration used for cost accounting."""

    provider: str = "approximate"  # approximate, tiktoken
    model: str = "cl100k_base"
    chars_per_token: float = 4.0


class DecayConfig(BaseModel):
    """Temporal decay configuration."""

    half_life_days: float = 60.0
    expected_accesses_per_month: float = 5.0
    recency_boost_days: float = 7.0
    recency_boost_multiplier: float = 1.5
    max_frequency_boost: float = 2.0
    archival_threshold: float = 0.2


class ScoringWeights(BaseModel):
    """Signal weights of the hybrid scorer. Must sum to 1.0 (+/- 0.05)."""

    similarity: float = 0.35
    decay: float = 0.20
    importance: float = 0.15
    recency: float = 0.10
    graph_boost: float = 0.10
    type_boost: float = 0.10

    def total(self) -> float:
        return (
            self.similarity
            + self.decay
            + self.importance
            + self.recency
            + self.graph_boost
            + self.type_boost
        )


def _default_type_boosts() -> dict[str, float]:
    return {
        "solution": 1.2,
        "pattern": 1.15,
        "decision": 1.1,
        "standard": 1.05,
        "documentation": 1.0,
        "code": 1.0,
        "preference": 0.9,
        "category_summary": 1.3,
    }


class ScoringConfig(BaseModel):
    """Hybrid scorer configuration."""

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    type_boosts: dict[str, float] = Field(default_factory=_default_type_boosts)
    recency_half_life_days: float = 7.0
    graph_traversal_depth: int = 2
    graph_min_strength: float = 0.3
    preferred_type_multiplier: float = 1.1


class EnvironmentConfig(BaseModel):
    """Budgets and pricing of one context environment session."""

    max_iterations: int = 20
    max_sub_calls: int = 50
    cost_budget: float = 1.0
    timeout_ms: int = 120_000
    enable_async_sub_calls: bool = True
    concurrency_limit: int = 5
    input_price_per_million: float = 0.15
    output_price_per_million: float = 0.60
    estimated_sub_call_cost: float = 0.01
    peek_preview_chars: int = 500


class RetrievalConfig(BaseModel):
    """Recursive retrieval controller configuration."""

    initial_retrieval_k: int = 20
    max_iterations: int = 10
    cost_budget: float = 0.5
    timeout_ms: int = 120_000
    simple_max_context: int = 50_000
    moderate_max_context: int = 200_000
    enable_hybrid_scoring: bool = True
    search_top_k: int = 10
    action_max_tokens: int = 1000


class VectorSearchConfig(BaseModel):
    """Over-fetch factors of the enhanced vector store."""

    search_multiplier: int = 2
    enhanced_search_multiplier: int = 3
    similarity_weight: float = 0.5
    decay_weight: float = 0.3
    importance_weight: float = 0.2


class CategoryConfig(BaseModel):
    """Category manager configuration."""

    min_relevance_score: float = 0.4
    max_categories_per_chunk: int = 3
    summary_max_items: int = 20
    use_llm_for_classification: bool = False


class MaintenanceConfig(BaseModel):
    """Background maintenance configuration."""

    decay_interval_hours: float = 1.0
    consolidation_archival_threshold: float = 0.15
    hot_item_window_hours: float = 24.0
    hot_item_limit: int = 50
    hot_item_boost: float = 0.05
    unused_archive_days: float = 180.0
    auto_archive: bool = False


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str = "zip"
    serialize: bool = True


class Config(BaseModel):
    """Main configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedder: EmbedderConfig = Field(default_factory=EmbedderConfig)
    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)
    metadata_store: MetadataStoreConfig = Field(default_factory=MetadataStoreConfig)
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    decay: DecayConfig = Field(default_factory=DecayConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    vector_search: VectorSearchConfig = Field(default_factory=VectorSearchConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    categories: CategoryConfig = Field(default_factory=CategoryConfig)
    maintenance: MaintenanceConfig = Field(default_factory=MaintenanceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Vector store backend
    vector_backend: str = "qdrant"  # qdrant, memory

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """
        Load configuration from environment variables.

        Priority: .env file -> system environment variables -> defaults

        Args:
            env_file: Optional path to .env file (default: .env in project root)

        Returns:
            Config instance

        Environment variables:
            MNEMO_LLM_PROVIDER: LLM provider (ollama, openai)
            MNEMO_LLM_MODEL: LLM model name
            MNEMO_LLM_API_KEY: LLM API key (for OpenAI)
            MNEMO_EMBEDDER_PROVIDER: Embedder provider
            MNEMO_EMBEDDER_MODEL: Embedder model name
            MNEMO_EMBEDDER_DIMENSION: Embedding dimension (optional)
            MNEMO_VECTOR_BACKEND: Vector backend (qdrant, memory)
            MNEMO_QDRANT_URL: Qdrant URL
            MNEMO_QDRANT_COLLECTION: Qdrant collection name
            MNEMO_METADATA_DB_PATH: SQLite metadata database path
            MNEMO_DECAY_HALF_LIFE_DAYS: Decay half-life in days
            MNEMO_DECAY_ARCHIVAL_THRESHOLD: Archival threshold
            MNEMO_RETRIEVAL_MAX_ITERATIONS: Controller iteration budget
            MNEMO_RETRIEVAL_COST_BUDGET: Controller cost budget (USD)
            MNEMO_RETRIEVAL_TIMEOUT_MS: Controller wall-clock timeout
        """
        if env_file:
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv()

        def get_env(key: str, default: Any = None) -> Any:
            """Get environment variable with type conversion."""
            value = os.getenv(key)
            if value is None:
                return default
            if value == "":
                return default
            if isinstance(default, bool):
                return str(value).lower() in ("true", "1", "yes")
            if isinstance(default, int):
                return int(value)
            if isinstance(default, float):
                return float(value)
            return value

        decay_defaults = DecayConfig()
        retrieval_defaults = RetrievalConfig()

        return cls(
            llm=LLMConfig(
                provider=get_env("MNEMO_LLM_PROVIDER", "ollama"),
                model=get_env("MNEMO_LLM_MODEL", "llama3.1:8b"),
                base_url=get_env("MNEMO_LLM_BASE_URL", "http://localhost:11434"),
                api_key=get_env("MNEMO_LLM_API_KEY"),
                temperature=get_env("MNEMO_LLM_TEMPERATURE", 0.0),
                max_tokens=get_env("MNEMO_LLM_MAX_TOKENS", 2000),
                timeout=get_env("MNEMO_LLM_TIMEOUT", 120.0),
            ),
            embedder=EmbedderConfig(
                provider=get_env("MNEMO_EMBEDDER_PROVIDER", "ollama"),
                model=get_env("MNEMO_EMBEDDER_MODEL", "nomic-embed-text"),
                base_url=get_env("MNEMO_EMBEDDER_BASE_URL", "http://localhost:11434"),
                api_key=get_env("MNEMO_EMBEDDER_API_KEY"),
                timeout=get_env("MNEMO_EMBEDDER_TIMEOUT", 120.0),
                dimension=get_env("MNEMO_EMBEDDER_DIMENSION", 0) or None,
            ),
            vector_backend=get_env("MNEMO_VECTOR_BACKEND", "qdrant"),
            qdrant=QdrantConfig(
                url=get_env("MNEMO_QDRANT_URL", "http://localhost:6333"),
                collection_name=get_env("MNEMO_QDRANT_COLLECTION", "chunks"),
                use_grpc=get_env("MNEMO_QDRANT_USE_GRPC", False),
                hnsw_m=get_env("MNEMO_QDRANT_HNSW_M", 16),
                hnsw_ef_construct=get_env("MNEMO_QDRANT_HNSW_EF_CONSTRUCT", 100),
                use_quantization=get_env("MNEMO_QDRANT_USE_QUANTIZATION", False),
                on_disk=get_env("MNEMO_QDRANT_ON_DISK", False),
            ),
            metadata_store=MetadataStoreConfig(
                db_path=get_env("MNEMO_METADATA_DB_PATH", "data/memory_metadata.db"),
            ),
            tokenizer=TokenizerConfig(
                provider=get_env("MNEMO_TOKENIZER_PROVIDER", "approximate"),
                model=get_env("MNEMO_TOKENIZER_MODEL", "cl100k_base"),
            ),
            decay=DecayConfig(
                half_life_days=get_env(
                    "MNEMO_DECAY_HALF_LIFE_DAYS", decay_defaults.half_life_days
                ),
                expected_accesses_per_month=get_env(
                    "MNEMO_DECAY_EXPECTED_ACCESSES", decay_defaults.expected_accesses_per_month
                ),
                recency_boost_days=get_env(
                    "MNEMO_DECAY_RECENCY_BOOST_DAYS", decay_defaults.recency_boost_days
                ),
                recency_boost_multiplier=get_env(
                    "MNEMO_DECAY_RECENCY_BOOST_MULTIPLIER",
                    decay_defaults.recency_boost_multiplier,
                ),
                archival_threshold=get_env(
                    "MNEMO_DECAY_ARCHIVAL_THRESHOLD", decay_defaults.archival_threshold
                ),
            ),
            retrieval=RetrievalConfig(
                initial_retrieval_k=get_env(
                    "MNEMO_RETRIEVAL_INITIAL_K", retrieval_defaults.initial_retrieval_k
                ),
                max_iterations=get_env(
                    "MNEMO_RETRIEVAL_MAX_ITERATIONS", retrieval_defaults.max_iterations
                ),
                cost_budget=get_env("MNEMO_RETRIEVAL_COST_BUDGET", retrieval_defaults.cost_budget),
                timeout_ms=get_env("MNEMO_RETRIEVAL_TIMEOUT_MS", retrieval_defaults.timeout_ms),
                enable_hybrid_scoring=get_env(
                    "MNEMO_RETRIEVAL_HYBRID_SCORING", retrieval_defaults.enable_hybrid_scoring
                ),
            ),
            logging=LoggingConfig(
                level=get_env("MNEMO_LOG_LEVEL", "INFO"),
                log_to_file=get_env("MNEMO_LOG_TO_FILE", True),
                log_dir=get_env("MNEMO_LOG_DIR", "logs"),
                file_rotation=get_env("MNEMO_LOG_FILE_ROTATION", "10 MB"),
                file_retention=get_env("MNEMO_LOG_FILE_RETENTION", "7 days"),
                compression=get_env("MNEMO_LOG_COMPRESSION", "zip"),
                serialize=get_env("MNEMO_LOG_SERIALIZE", True),
            ),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Load configuration with priority: env vars > YAML > defaults.

        Args:
            yaml_path: Optional path to YAML config
            env_file: Optional path to .env file

        Returns:
            Config instance
        """
        if yaml_path and Path(yaml_path).exists():
            with open(yaml_path) as f:
                config_dict = yaml.safe_load(f) or {}
        else:
            config_dict = {}

        env_config = cls.from_env(env_file=env_file)

        final_dict = {**config_dict}

        # Env sections that differ from defaults override the YAML ones
        default = cls()
        for section in (
            "llm",
            "embedder",
            "qdrant",
            "metadata_store",
            "tokenizer",
            "decay",
            "retrieval",
            "logging",
        ):
            env_section = getattr(env_config, section)
            if env_section != getattr(default, section):
                final_dict[section] = env_section.model_dump()

        if env_config.vector_backend != default.vector_backend:
            final_dict["vector_backend"] = env_config.vector_backend

        return cls(**final_dict) if final_dict else env_config
