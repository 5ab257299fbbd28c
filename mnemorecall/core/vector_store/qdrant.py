"""
Qdrant vector store implementation.
"""

from typing import Any
from uuid import NAMESPACE_DNS, UUID, uuid5

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    HnswConfigDiff,
    MatchAny,
    MatchValue,
    PointIdsList,
    PointStruct,
    ScalarQuantization,
    ScalarQuantizationConfig,
    ScalarType,
    VectorParams,
)

from mnemorecall.core.vector_store.base import VectorStore
from mnemorecall.models.retrieval import VectorDocument, VectorSearchHit
from mnemorecall.utils.exceptions import ValidationError, VectorStoreError
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)


class QdrantStore(VectorStore):
    """
    Qdrant vector store for chunk embeddings.

    Features:
    - Optional gRPC connection
    - HNSW indexing with configurable M / ef_construct
    - Optional int8 scalar quantization
    - Batched upserts
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6333,
        collection_name: str = "chunks",
        vector_size: int = 768,
        use_grpc: bool = False,
        use_quantization: bool = False,
        hnsw_m: int = 16,
        hnsw_ef_construct: int = 100,
        on_disk: bool = False,
        timeout: int = 30,
    ):
        self.host = host
        self.port = port
        self.collection_name = collection_name
        self.vector_size = vector_size
        self.use_grpc = use_grpc
        self.use_quantization = use_quantization
        self.hnsw_m = hnsw_m
        self.hnsw_ef_construct = hnsw_ef_construct
        self.on_disk = on_disk
        self.timeout = timeout
        self.client: AsyncQdrantClient | None = None

    def _to_uuid(self, id_str: str) -> str:
        """Map an arbitrary string id onto a stable UUID (Qdrant point ids must be UUIDs)."""
        try:
            UUID(id_str)
            return id_str
        except ValueError:
            return str(uuid5(NAMESPACE_DNS, id_str))

    async def connect(self) -> None:
        if self.client is None:
            try:
                self.client = AsyncQdrantClient(
                    host=self.host,
                    port=self.port,
                    prefer_grpc=self.use_grpc,
                    timeout=self.timeout,
                )
            except Exception as e:
                logger.error(
                    "Failed to connect to Qdrant: {error}",
                    host=self.host,
                    port=self.port,
                    error=str(e),
                )
                raise VectorStoreError(f"Failed to connect to Qdrant: {e}") from e

    async def initialize(self) -> None:
        """Create the collection if it does not exist yet."""
        try:
            await self.connect()

            if await self.client.collection_exists(self.collection_name):
                return

            vectors_config = VectorParams(
                size=self.vector_size,
                distance=Distance.COSINE,
                hnsw_config=HnswConfigDiff(
                    m=self.hnsw_m,
                    ef_construct=self.hnsw_ef_construct,
                ),
                on_disk=self.on_disk,
            )

            if self.use_quantization:
                vectors_config.quantization_config = ScalarQuantization(
                    scalar=ScalarQuantizationConfig(
                        type=ScalarType.INT8,
                        quantile=0.99,
                        always_ram=True,
                    )
                )

            await self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=vectors_config,
            )
            logger.info(
                "Created Qdrant collection {collection}",
                collection=self.collection_name,
                vector_size=self.vector_size,
            )
        except Exception as e:
            logger.error(
                "Failed to initialize Qdrant collection: {error}",
                collection=self.collection_name,
                error=str(e),
            )
            raise VectorStoreError(f"Failed to initialize Qdrant collection: {e}") from e

    def _build_filter(self, filters: dict[str, Any] | None) -> Filter | None:
        if not filters:
            return None

        conditions = []
        for key, value in filters.items():
            if isinstance(value, (list, tuple, set)):
                match = MatchAny(any=list(value))
            else:
                match = MatchValue(value=value)
            conditions.append(FieldCondition(key=f"metadata.{key}", match=match))

        return Filter(must=conditions)

    async def add(self, documents: list[VectorDocument], batch_size: int = 100) -> None:
        for doc in documents:
            if not doc.id:
                raise ValidationError("Document ID cannot be empty")
            if not doc.embedding:
                raise ValidationError("Document must have an embedding", {"id": doc.id})

        try:
            await self.connect()

            for i in range(0, len(documents), batch_size):
                batch = documents[i : i + batch_size]
                points = [
                    PointStruct(
                        id=self._to_uuid(doc.id),
                        vector=doc.embedding,
                        payload={
                            "original_id": doc.id,
                            "content": doc.content,
                            "metadata": doc.metadata,
                        },
                    )
                    for doc in batch
                ]
                await self.client.upsert(
                    collection_name=self.collection_name,
                    points=points,
                    wait=True,
                )
        except Exception as e:
            logger.error(
                "Failed to upsert {count} documents: {error}",
                count=len(documents),
                collection=self.collection_name,
                error=str(e),
            )
            raise VectorStoreError(f"Failed to upsert documents: {e}") from e

    async def search(
        self,
        embedding: list[float],
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[VectorSearchHit]:
        try:
            await self.connect()

            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=embedding,
                limit=top_k,
                query_filter=self._build_filter(filters),
                with_payload=True,
            )
        except Exception as e:
            logger.error(
                "Qdrant search failed: {error}",
                collection=self.collection_name,
                error=str(e),
            )
            raise VectorStoreError(f"Qdrant search failed: {e}") from e

        return [
            VectorSearchHit(
                id=point.payload.get("original_id", str(point.id)),
                content=point.payload.get("content", ""),
                score=point.score,
                metadata=point.payload.get("metadata") or {},
            )
            for point in response.points
        ]

    async def delete(self, ids: list[str]) -> None:
        if not ids:
            return

        try:
            await self.connect()
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=PointIdsList(points=[self._to_uuid(i) for i in ids]),
                wait=True,
            )
        except Exception as e:
            logger.error(
                "Failed to delete {count} documents: {error}",
                count=len(ids),
                collection=self.collection_name,
                error=str(e),
            )
            raise VectorStoreError(f"Failed to delete documents: {e}") from e

    async def count(self) -> int:
        await self.connect()
        response = await self.client.count(collection_name=self.collection_name, exact=True)
        return response.count

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
            self.client = None
