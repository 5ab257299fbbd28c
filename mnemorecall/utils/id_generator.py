"""
ID generation utilities for mnemorecall.

Provides consistent ID generation for all entity types:
- Chunks: chunk_xxx
- Retrieval sessions: rlm_xxx
- Categories: cat:<name>
- Category items: <chunk_id>:<category_id>
- Processed conversations: conv:<conversation_id>
"""

from uuid import uuid4


def generate_chunk_id() -> str:
    """
    Generate unique Chunk ID.

    Returns:
        ID in format "chunk_xxx" where xxx is 12 hex characters
    """
    return f"chunk_{uuid4().hex[:12]}"


def generate_session_id() -> str:
    """
    Generate unique retrieval session ID.

    Returns:
        ID in format "rlm_xxx" where xxx is 12 hex characters
    """
    return f"rlm_{uuid4().hex[:12]}"


def category_id(name: str) -> str:
    """
    Derive the stable ID of a category from its unique name.

    Args:
        name: Category name

    Returns:
        ID in format "cat:<name>"
    """
    return f"cat:{name}"


def category_item_id(chunk_id: str, category_id: str) -> str:
    """Derive the ID of a chunk-to-category assignment."""
    return f"{chunk_id}:{category_id}"


def conversation_marker_id(conversation_id: str) -> str:
    """Derive the ID of a processed-conversation marker."""
    return f"conv:{conversation_id}"
