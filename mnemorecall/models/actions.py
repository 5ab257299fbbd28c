"""
Retrieval actions proposed by the controlling LLM.

Actions form a closed set discriminated by `type`. `UnparsedAction` is never
produced from model JSON; it carries raw text the parser could not interpret.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _Action(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    reasoning: str | None = None


class PeekAction(_Action):
    """Look at a slice of a variable."""

    type: Literal["peek"] = "peek"
    variable: str = "context"
    start: int | None = None
    end: int | None = None


class FilterAction(_Action):
    """Keep the chunks of a variable whose content matches a pattern."""

    type: Literal["filter"] = "filter"
    variable: str = "context"
    pattern: str
    output: str | None = None


class ChunkAction(_Action):
    """Split a chunk variable into numbered batches."""

    type: Literal["chunk"] = "chunk"
    variable: str = "context"
    size: int = Field(default=5, ge=1)


class SubQueryAction(_Action):
    """Ask a focused question about the chunks of a variable."""

    type: Literal["subQuery"] = "subQuery"
    query: str
    variable: str = "context"
    output: str | None = None


class StoreAction(_Action):
    """Store an intermediate finding."""

    type: Literal["store"] = "store"
    variable: str
    value: Any = None


class AnswerAction(_Action):
    """Final answer; ends the loop."""

    type: Literal["answer"] = "answer"
    value: str


class SearchAction(_Action):
    """Run a fresh vector search into a new variable."""

    type: Literal["search"] = "search"
    query: str | None = None
    top_k: int = Field(default=10, ge=1, alias="topK")
    output: str | None = None


class UnparsedAction(_Action):
    """Model output that could not be read as an action."""

    type: Literal["unparsed"] = "unparsed"
    raw_text: str


ParsedAction = Annotated[
    Union[
        PeekAction,
        FilterAction,
        ChunkAction,
        SubQueryAction,
        StoreAction,
        AnswerAction,
        SearchAction,
    ],
    Field(discriminator="type"),
]

RetrievalAction = Union[
    PeekAction,
    FilterAction,
    ChunkAction,
    SubQueryAction,
    StoreAction,
    AnswerAction,
    SearchAction,
    UnparsedAction,
]
