"""
Factory for creating metadata store backends.
"""

from mnemorecall.config import MetadataStoreConfig
from mnemorecall.core.metadata_store.base import MetadataStore
from mnemorecall.core.metadata_store.sqlite_store import SQLiteMetadataStore
from mnemorecall.utils.exceptions import ConfigurationError


class MetadataStoreFactory:
    """Factory for creating metadata store backends from configuration."""

    @staticmethod
    def create(config: MetadataStoreConfig) -> MetadataStore:
        """
        Create metadata store from configuration.

        Raises:
            ConfigurationError: If backend is not supported
        """
        if config.backend == "sqlite":
            return SQLiteMetadataStore(db_path=config.db_path)
        else:
            raise ConfigurationError(f"Unsupported metadata backend: {config.backend}")
