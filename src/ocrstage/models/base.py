"""Base models and common types for the staged OCR pipeline."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    """Pipeline progress of a job record."""

    PENDING = "PENDING"
    ERROR = "ERROR"
    BLOCKS = "PARTIAL:BLOCKS"
    PARSED = "PARTIAL:PARSED"
    CLASSIFIED = "PARTIAL:CLASSIFIED"

    @property
    def rank(self) -> int:
        """Position in the forward order. ERROR sits outside it."""
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.CLASSIFIED, JobStatus.ERROR)

    def can_advance_to(self, other: "JobStatus") -> bool:
        """Whether a stored status may be replaced by ``other``.

        Statuses only move forward; ERROR may replace anything.
        """
        if other == JobStatus.ERROR:
            return True
        if self == JobStatus.ERROR:
            return False
        return other.rank >= self.rank


_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.BLOCKS: 1,
    JobStatus.PARSED: 2,
    JobStatus.CLASSIFIED: 3,
    JobStatus.ERROR: -1,
}


class BlockType(str, Enum):
    """Recognition engine block types the parser understands."""

    PAGE = "PAGE"
    WORD = "WORD"
    LINE = "LINE"
    KEY_VALUE_SET = "KEY_VALUE_SET"
    TABLE = "TABLE"
    CELL = "CELL"
    SELECTION_ELEMENT = "SELECTION_ELEMENT"


class RelationshipType(str, Enum):
    """Edge types between blocks."""

    CHILD = "CHILD"
    VALUE = "VALUE"


class EntityType(str, Enum):
    """Roles of a KEY_VALUE_SET block."""

    KEY = "KEY"
    VALUE = "VALUE"


class CamelModel(BaseModel):
    """Base for models exchanged as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
