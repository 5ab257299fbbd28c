"""
Relationship Graph - traversal and contradiction handling over chunk edges.

A query layer over the metadata store's relationship table. The graph may
contain cycles; every traversal is bounded by depth and tracks visited nodes.
"""

from collections import deque
from datetime import datetime

from mnemorecall.core.metadata_store.base import MetadataStore
from mnemorecall.models.chunk import ChunkType, utcnow
from mnemorecall.models.relationships import (
    BatchRelationshipResult,
    ConnectionCount,
    Contradiction,
    ContradictionCandidate,
    Direction,
    GraphNode,
    GraphStats,
    PotentialContradiction,
    RelatedChunk,
    Relationship,
    RelationshipSpec,
    RelationshipType,
    TraversalResult,
    get_reverse_type,
    is_bidirectional,
)
from mnemorecall.services.decay_calculator import days_between
from mnemorecall.utils.exceptions import MnemoRecallError
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)

# Knowledge kinds that can be outdated or contradicted by newer knowledge
CONTRADICTABLE_TYPES = frozenset(
    {ChunkType.SOLUTION, ChunkType.DECISION, ChunkType.PATTERN, ChunkType.STANDARD}
)


class RelationshipGraph:
    """
    Graph operations for relationship-based retrieval.

    Provides:
    - Edge management with automatic reverse edges for symmetric types
    - Bounded BFS traversal and strongest-path search
    - Contradiction and supersession tracking
    - Graph statistics and clustering
    """

    def __init__(self, store: MetadataStore):
        self.store = store

    # ═══════════════════════════════════════════════════════════
    # EDGE MANAGEMENT
    # ═══════════════════════════════════════════════════════════

    async def add_relationship(
        self,
        from_chunk_id: str,
        to_chunk_id: str,
        relationship_type: RelationshipType,
        strength: float = 0.5,
        metadata: dict | None = None,
        bidirectional: bool | None = None,
    ) -> bool:
        """
        Add (or update) an edge, plus its reverse edge for symmetric types.

        Args:
            bidirectional: Force or suppress the reverse edge (default: by type)

        Returns:
            True if the forward edge was newly created
        """
        created = await self.store.add_relationship(
            Relationship(
                from_chunk_id=from_chunk_id,
                to_chunk_id=to_chunk_id,
                relationship_type=relationship_type,
                strength=strength,
                metadata=metadata or {},
            )
        )

        if is_bidirectional(relationship_type) if bidirectional is None else bidirectional:
            await self.store.add_relationship(
                Relationship(
                    from_chunk_id=to_chunk_id,
                    to_chunk_id=from_chunk_id,
                    relationship_type=get_reverse_type(relationship_type),
                    strength=strength,
                    metadata=metadata or {},
                )
            )

        return created

    async def add_relationships_batch(
        self, specs: list[RelationshipSpec]
    ) -> BatchRelationshipResult:
        """Add many edges; failures are counted and reported per index."""
        result = BatchRelationshipResult()

        for index, spec in enumerate(specs):
            try:
                created = await self.add_relationship(
                    spec.from_chunk_id,
                    spec.to_chunk_id,
                    spec.relationship_type,
                    strength=spec.strength,
                    metadata=spec.metadata,
                    bidirectional=spec.bidirectional,
                )
            except MnemoRecallError as e:
                result.failed += 1
                result.errors.append({"index": index, "error": str(e)})
                continue

            if created:
                result.created += 1
            else:
                result.updated += 1

        if result.failed:
            logger.warning(
                f"Relationship batch: {result.failed} of {len(specs)} failed",
                extra={"failed": result.failed, "total": len(specs)},
            )
        return result

    async def remove_relationship(
        self, from_chunk_id: str, to_chunk_id: str, relationship_type: RelationshipType
    ) -> int:
        """Remove an edge (and the reverse edge of a symmetric type)."""
        removed = await self.store.delete_relationship(
            from_chunk_id, to_chunk_id, relationship_type
        )
        if is_bidirectional(relationship_type):
            removed += await self.store.delete_relationship(
                to_chunk_id, from_chunk_id, get_reverse_type(relationship_type)
            )
        return removed

    # ═══════════════════════════════════════════════════════════
    # TRAVERSAL
    # ═══════════════════════════════════════════════════════════

    async def _neighbours(
        self,
        chunk_id: str,
        direction: Direction,
        types: list[RelationshipType] | None,
        min_strength: float,
    ) -> list[Relationship]:
        rels = await self.store.get_relationships(chunk_id, direction)
        return [
            rel
            for rel in rels
            if rel.strength >= min_strength and (not types or rel.relationship_type in types)
        ]

    async def traverse(
        self,
        start_chunk_id: str,
        max_depth: int = 2,
        min_strength: float = 0.0,
        types: list[RelationshipType] | None = None,
        direction: Direction = "both",
        exclude_archived: bool = False,
        max_nodes: int = 1000,
    ) -> TraversalResult:
        """
        Breadth-first traversal; each chunk is reported once, at its shallowest depth.

        Returns:
            TraversalResult with nodes in visiting order (start excluded)
        """
        visited = {start_chunk_id}
        nodes: list[GraphNode] = []
        max_depth_reached = 0
        truncated = False

        queue: deque[tuple[str, int, list[str], float]] = deque([(start_chunk_id, 0, [], 1.0)])

        while queue:
            chunk_id, depth, path, combined = queue.popleft()
            max_depth_reached = max(max_depth_reached, depth)

            if depth >= max_depth:
                continue

            for rel in await self._neighbours(chunk_id, direction, types, min_strength):
                target = rel.other_end(chunk_id)
                if target in visited:
                    continue

                if exclude_archived:
                    meta = await self.store.get_chunk_metadata(target)
                    if meta is not None and meta.is_archived:
                        continue

                if len(nodes) >= max_nodes:
                    truncated = True
                    break

                visited.add(target)
                node_path = [*path, chunk_id]
                node = GraphNode(
                    chunk_id=target,
                    depth=depth + 1,
                    path=node_path,
                    relationship_type=rel.relationship_type,
                    strength=rel.strength,
                    combined_strength=combined * rel.strength,
                )
                nodes.append(node)
                queue.append((target, depth + 1, node_path, node.combined_strength))

            if truncated:
                break

        return TraversalResult(
            start_chunk_id=start_chunk_id,
            nodes=nodes,
            total_nodes=len(nodes),
            max_depth_reached=max_depth_reached,
            truncated=truncated,
        )

    async def strongest_paths(
        self,
        start_chunk_id: str,
        max_depth: int = 2,
        min_strength: float = 0.0,
        types: list[RelationshipType] | None = None,
        direction: Direction = "both",
    ) -> dict[str, GraphNode]:
        """
        Strongest path to every chunk within max_depth hops.

        Path strength is the product of edge strengths; for each reachable
        chunk the maximum over all simple paths of at most max_depth edges is
        kept. Relaxation runs in depth rounds, so cycles cannot loop.

        Returns:
            Mapping of chunk id to its best GraphNode (start excluded)
        """
        best: dict[str, GraphNode] = {}
        frontier: dict[str, GraphNode | None] = {start_chunk_id: None}
        edge_cache: dict[str, list[Relationship]] = {}

        for depth in range(1, max_depth + 1):
            next_frontier: dict[str, GraphNode] = {}

            for chunk_id in sorted(frontier):
                via = frontier[chunk_id]
                base = via.combined_strength if via else 1.0
                path = [*via.path, chunk_id] if via else [start_chunk_id]

                if chunk_id not in edge_cache:
                    edge_cache[chunk_id] = await self._neighbours(
                        chunk_id, direction, types, min_strength
                    )

                for rel in edge_cache[chunk_id]:
                    target = rel.other_end(chunk_id)
                    if target == start_chunk_id or target in path:
                        continue

                    combined = base * rel.strength
                    current = next_frontier.get(target) or best.get(target)
                    if current is not None and combined <= current.combined_strength:
                        continue

                    next_frontier[target] = GraphNode(
                        chunk_id=target,
                        depth=depth,
                        path=path,
                        relationship_type=rel.relationship_type,
                        strength=rel.strength,
                        combined_strength=combined,
                    )

            best.update(next_frontier)
            if not next_frontier:
                break
            frontier = dict(next_frontier)

        return best

    async def find_related(
        self,
        chunk_id: str,
        types: list[RelationshipType] | None = None,
        max_results: int = 10,
        min_strength: float = 0.0,
        max_depth: int = 2,
    ) -> list[RelatedChunk]:
        """
        Chunks related to chunk_id within max_depth hops.

        Each chunk appears once with its strongest combined strength; results
        are sorted by combined strength descending, then chunk id.
        """
        reached = await self.strongest_paths(
            chunk_id, max_depth=max_depth, min_strength=min_strength, types=types
        )

        related = [
            RelatedChunk(
                chunk_id=node.chunk_id,
                relationship_type=node.relationship_type,
                strength=node.strength,
                combined_strength=node.combined_strength,
                depth=node.depth,
                is_transitive=node.depth > 1,
                path=node.path,
            )
            for node in reached.values()
        ]
        related.sort(key=lambda r: (-r.combined_strength, r.chunk_id))
        return related[:max_results]

    # ═══════════════════════════════════════════════════════════
    # CONTRADICTIONS & SUPERSESSION
    # ═══════════════════════════════════════════════════════════

    async def find_contradictions(self, chunk_id: str) -> list[Contradiction]:
        """Known conflicts of a chunk: contradictions, invalidations, and newer versions."""
        contradictions = []

        for rel in await self.store.get_relationships(chunk_id, "both"):
            if rel.relationship_type == RelationshipType.CONTRADICTS:
                kind = "contradiction"
            elif rel.relationship_type == RelationshipType.INVALIDATED_BY:
                kind = "invalidation"
            elif (
                rel.relationship_type == RelationshipType.SUPERSEDES
                and rel.to_chunk_id == chunk_id
            ):
                kind = "superseded"
            else:
                continue

            contradictions.append(
                Contradiction(
                    chunk_id=rel.other_end(chunk_id),
                    type=kind,
                    strength=rel.strength,
                    metadata=rel.metadata,
                )
            )

        return contradictions

    def detect_potential_contradictions(
        self,
        new_chunk_id: str,
        new_chunk_type: ChunkType,
        new_chunk_created_at: datetime,
        candidates: list[ContradictionCandidate],
        similarity_threshold: float = 0.85,
    ) -> list[PotentialContradiction]:
        """
        Flag highly similar existing knowledge that a new chunk may conflict with.

        Suggested action:
        - supersede: more than 30 days apart (likely an update)
        - merge: same day and similarity above 0.95 (likely a duplicate)
        - ignore: similarity below 0.9
        - review: everything else
        """
        if ChunkType(new_chunk_type) not in CONTRADICTABLE_TYPES:
            return []

        found = []
        for candidate in candidates:
            if candidate.similarity < similarity_threshold:
                continue
            if candidate.chunk_type not in {t.value for t in CONTRADICTABLE_TYPES}:
                continue

            days_apart = abs(days_between(candidate.created_at, new_chunk_created_at))

            if days_apart > 30:
                action = "supersede"
                reason = f"High similarity but {round(days_apart)} days apart - likely an update"
            elif days_apart < 1 and candidate.similarity > 0.95:
                action = "merge"
                reason = "Very high similarity within same day - likely duplicate"
            elif candidate.similarity < 0.9:
                action = "ignore"
                reason = "Moderate similarity - may be related but not contradictory"
            else:
                action = "review"
                reason = "High semantic similarity detected"

            found.append(
                PotentialContradiction(
                    existing_chunk_id=candidate.chunk_id,
                    new_chunk_id=new_chunk_id,
                    similarity=candidate.similarity,
                    reason=reason,
                    suggested_action=action,
                )
            )

        return found

    async def mark_supersedes(
        self, new_chunk_id: str, old_chunk_id: str, strength: float = 0.8
    ) -> None:
        await self.add_relationship(
            new_chunk_id,
            old_chunk_id,
            RelationshipType.SUPERSEDES,
            strength=strength,
            metadata={"superseded_at": utcnow().isoformat()},
        )

    async def mark_contradiction(
        self,
        chunk_id_a: str,
        chunk_id_b: str,
        strength: float = 0.7,
        metadata: dict | None = None,
    ) -> None:
        await self.add_relationship(
            chunk_id_a,
            chunk_id_b,
            RelationshipType.CONTRADICTS,
            strength=strength,
            metadata={"detected_at": utcnow().isoformat(), **(metadata or {})},
            bidirectional=True,
        )

    async def find_supersession_chain(self, chunk_id: str) -> list[str]:
        """Chunks that successively supersede chunk_id, oldest update first."""
        chain: list[str] = []
        visited = {chunk_id}
        current = chunk_id

        while True:
            incoming = await self.store.get_relationships(current, "to")
            newer = next(
                (r for r in incoming if r.relationship_type == RelationshipType.SUPERSEDES),
                None,
            )
            if newer is None or newer.from_chunk_id in visited:
                break

            current = newer.from_chunk_id
            visited.add(current)
            chain.append(current)

        return chain

    async def get_latest_version(self, chunk_id: str) -> str:
        chain = await self.find_supersession_chain(chunk_id)
        return chain[-1] if chain else chunk_id

    # ═══════════════════════════════════════════════════════════
    # STATISTICS
    # ═══════════════════════════════════════════════════════════

    async def get_stats(self, depth_sample_size: int = 5) -> GraphStats:
        """
        Aggregate graph figures.

        max_depth is estimated from bounded traversals (depth 10) started at
        the first few connected chunks.
        """
        chunks = await self.store.get_all_chunk_metadata(include_archived=True)
        relationships = await self.store.get_all_relationships()

        by_type = {t.value: 0 for t in RelationshipType}
        degree: dict[str, int] = {}
        for rel in relationships:
            by_type[rel.relationship_type.value] += 1
            degree[rel.from_chunk_id] = degree.get(rel.from_chunk_id, 0) + 1
            degree[rel.to_chunk_id] = degree.get(rel.to_chunk_id, 0) + 1

        connected = sorted(degree)
        isolated = sum(1 for c in chunks if c.chunk_id not in degree)

        max_depth = 0
        for chunk_id in connected[:depth_sample_size]:
            result = await self.traverse(chunk_id, max_depth=10)
            max_depth = max(max_depth, result.max_depth_reached)

        most_connected = sorted(degree.items(), key=lambda item: (-item[1], item[0]))[:10]

        return GraphStats(
            total_relationships=len(relationships),
            relationships_by_type=by_type,
            avg_relationships_per_chunk=(len(relationships) / len(connected) if connected else 0.0),
            max_depth=max_depth,
            isolated_chunks=isolated,
            most_connected=[
                ConnectionCount(chunk_id=chunk_id, connections=count)
                for chunk_id, count in most_connected
            ],
        )

    async def find_clusters(self, min_size: int = 3) -> list[list[str]]:
        """Connected components of active chunks with at least min_size members, largest first."""
        chunks = await self.store.get_all_chunk_metadata(include_archived=False)
        visited: set[str] = set()
        clusters: list[list[str]] = []

        for chunk in sorted(chunks, key=lambda c: c.chunk_id):
            if chunk.chunk_id in visited:
                continue

            cluster = []
            queue = deque([chunk.chunk_id])
            visited.add(chunk.chunk_id)

            while queue:
                current = queue.popleft()
                cluster.append(current)
                for related_id in await self.store.get_related_chunk_ids(current):
                    if related_id not in visited:
                        visited.add(related_id)
                        queue.append(related_id)

            if len(cluster) >= min_size:
                clusters.append(cluster)

        clusters.sort(key=lambda c: (-len(c), c[0]))
        return clusters
