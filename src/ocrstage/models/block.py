"""Block models for recognition engine output.

The engine returns a flat list of blocks that reference each other by id.
Field names follow the engine's PascalCase JSON; attributes the parser does
not use (geometry, etc.) are kept as extras so a block round-trips intact.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import BlockType, EntityType, RelationshipType


class Relationship(BaseModel):
    """Directed edge from one block to a list of others."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = Field(..., alias="Type")
    ids: list[str] = Field(default_factory=list, alias="Ids")


class Block(BaseModel):
    """One node of the block graph."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., alias="Id")
    block_type: str = Field(..., alias="BlockType")
    text: Optional[str] = Field(None, alias="Text")
    confidence: Optional[float] = Field(None, alias="Confidence")
    page: Optional[int] = Field(None, alias="Page")
    row_index: Optional[int] = Field(None, alias="RowIndex")
    column_index: Optional[int] = Field(None, alias="ColumnIndex")
    entity_types: list[str] = Field(default_factory=list, alias="EntityTypes")
    relationships: list[Relationship] = Field(default_factory=list, alias="Relationships")

    def is_type(self, block_type: BlockType) -> bool:
        return self.block_type == block_type.value

    @property
    def is_key(self) -> bool:
        """KEY_VALUE_SET block acting as the key of a form field."""
        return (
            self.is_type(BlockType.KEY_VALUE_SET)
            and EntityType.KEY.value in self.entity_types
        )

    def related_ids(self, rel_type: RelationshipType) -> list[str]:
        """All ids across relationships of one type, in declaration order."""
        return [
            block_id
            for rel in self.relationships
            if rel.type == rel_type.value
            for block_id in rel.ids
        ]

    def first_relationship(self, rel_type: RelationshipType) -> Optional[Relationship]:
        for rel in self.relationships:
            if rel.type == rel_type.value:
                return rel
        return None

    def to_raw(self) -> dict[str, Any]:
        """Engine-shaped dict."""
        return self.model_dump(by_alias=True, exclude_unset=True)
