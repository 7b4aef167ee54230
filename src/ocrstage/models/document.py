"""Parser output models."""

from typing import Optional

from pydantic import Field

from .base import CamelModel

Table = list[list[Optional[str]]]


class HandwrittenSentence(CamelModel):
    """A LINE whose recognition confidence fell below the threshold."""

    page: int = Field(default=1, ge=1)
    confidence: float
    sentence: str


class ParsedDocument(CamelModel):
    """Everything the parse stage derives from one block list."""

    form: dict[str, str] = Field(default_factory=dict)
    table: list[Table] = Field(
        default_factory=list, description="One entry per TABLE block, in block order"
    )
    confidence: float = 0.0
    handwritten: list[HandwrittenSentence] = Field(default_factory=list)
