"""Result Parser - Rebuild forms and tables from recognition blocks.

The recognition engine returns a flat list of blocks that reference each
other by id. This module walks that graph without any I/O.

Flow:
1. Index blocks by id
2. Resolve KEY_VALUE_SET key/value pairs into form fields
3. Lay out CELL blocks of each TABLE into row/column grids
4. Average confidence across all blocks
5. Collect low-confidence LINE blocks as likely handwriting

References to ids missing from the list resolve to empty text.
"""

import re
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from ocrstage.models import (
    Block,
    BlockType,
    HandwrittenSentence,
    ParsedDocument,
    RelationshipType,
    Table,
)

HANDWRITTEN_THRESHOLD = 85.0

BlockIndex = Mapping[str, Block]

_SEPARATORS = re.compile(r"[\s_\-.]+")
_TRAILING_PUNCTUATION = re.compile(r"[:;\s]+$")


def load_blocks(raw_blocks: Iterable[Union[Block, Mapping[str, Any]]]) -> list[Block]:
    """Validate engine dicts into Block models.

    Raises:
        pydantic.ValidationError: A block lacks an id or a type.
    """
    return [
        block if isinstance(block, Block) else Block.model_validate(block)
        for block in raw_blocks
    ]


def build_index(blocks: Iterable[Block]) -> dict[str, Block]:
    """Map block id to block. Later duplicates replace earlier ones."""
    return {block.id: block for block in blocks}


def get_text(block: Optional[Block], index: BlockIndex) -> str:
    """Resolve the display text of a block.

    WORD and LINE blocks carry their own text. Any other block is the
    space-joined text of its CHILD blocks, one hop deep.

    Args:
        block: Block to resolve. ``None`` (a dangling id) yields ``""``.
        index: Block id index of the same result.

    Returns:
        Display text, possibly empty.
    """
    if block is None:
        return ""

    if block.is_type(BlockType.WORD) or block.is_type(BlockType.LINE):
        return block.text or ""

    parts = []
    for child_id in block.related_ids(RelationshipType.CHILD):
        child = index.get(child_id)
        # Dangling and self references contribute nothing
        if child is None or child.id == block.id:
            continue
        parts.append(child.text or "")
    return " ".join(parts)


def to_camel_case(text: str) -> str:
    """Lower-camel-case a label: ``"Date of birth"`` -> ``"dateOfBirth"``."""
    words = [word for word in _SEPARATORS.split(text.lower()) if word]
    return "".join(
        word if i == 0 else word[:1].upper() + word[1:]
        for i, word in enumerate(words)
    )


def normalize_key(label: str) -> str:
    """Turn a form label into a field name.

    Trailing colons and semicolons are removed before camel-casing, so
    ``"Patient Name:"`` becomes ``"patientName"``.
    """
    cleaned = _TRAILING_PUNCTUATION.sub("", label.strip())
    return _TRAILING_PUNCTUATION.sub("", to_camel_case(cleaned))


def parse_form(
    blocks: Sequence[Block],
    index: Optional[BlockIndex] = None,
    drop_empty_values: bool = False,
) -> dict[str, str]:
    """Extract key/value form fields.

    Keys that normalize to an empty string and keys without a VALUE
    relationship are skipped. When two keys normalize to the same name the
    later block wins.

    Args:
        blocks: Blocks in engine order.
        index: Prebuilt id index; built from ``blocks`` when omitted.
        drop_empty_values: Omit fields whose value text is empty instead of
            recording ``""``.

    Returns:
        Mapping of normalized key to value text.
    """
    index = index if index is not None else build_index(blocks)
    fields: dict[str, str] = {}

    for block in blocks:
        if not block.is_key:
            continue

        key = normalize_key(get_text(block, index))
        if not key:
            continue

        value_rel = block.first_relationship(RelationshipType.VALUE)
        if value_rel is None or not value_rel.ids:
            continue

        value = get_text(index.get(value_rel.ids[0]), index)
        if not value and drop_empty_values:
            continue
        fields[key] = value

    return fields


def extract_table(table_block: Block, index: BlockIndex) -> Table:
    """Lay out the CELL children of one TABLE block.

    Rows and columns are 1-based in the engine output and 0-based here.
    Rows with no cell stay ``[]``; gaps within a row are ``None``.
    """
    table: Table = []

    for cell_id in table_block.related_ids(RelationshipType.CHILD):
        cell = index.get(cell_id)
        if cell is None or not cell.is_type(BlockType.CELL):
            continue

        row = (cell.row_index or 0) - 1
        col = (cell.column_index or 0) - 1
        if row < 0 or col < 0:
            continue

        while len(table) <= row:
            table.append([])
        cells = table[row]
        while len(cells) <= col:
            cells.append(None)
        cells[col] = get_text(cell, index)

    return table


def parse_tables(blocks: Sequence[Block], index: Optional[BlockIndex] = None) -> list[Table]:
    """Extract every TABLE block, in block order."""
    index = index if index is not None else build_index(blocks)
    return [
        extract_table(block, index)
        for block in blocks
        if block.is_type(BlockType.TABLE)
    ]


def average_confidence(blocks: Iterable[Block]) -> float:
    """Mean confidence over blocks that report one; 0 when none do."""
    scores = [block.confidence for block in blocks if block.confidence is not None]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def extract_handwritten_sentences(
    blocks: Sequence[Block],
    index: Optional[BlockIndex] = None,
    threshold: float = HANDWRITTEN_THRESHOLD,
) -> list[HandwrittenSentence]:
    """Collect LINE blocks recognized with confidence below ``threshold``.

    Low line confidence is the engine's best signal for handwriting. Each
    sentence is rebuilt from the WORD children of the line's first CHILD
    relationship, with the mean word confidence rounded to 2 decimals.
    """
    index = index if index is not None else build_index(blocks)
    sentences = []

    for line in blocks:
        if not line.is_type(BlockType.LINE):
            continue
        if line.confidence is None or line.confidence >= threshold:
            continue

        child_rel = line.first_relationship(RelationshipType.CHILD)
        word_ids = child_rel.ids if child_rel else []
        words = [
            word
            for word in (index.get(word_id) for word_id in word_ids)
            if word is not None
            and word.is_type(BlockType.WORD)
            and word.text is not None
        ]
        if not words:
            continue

        mean = sum(word.confidence or 0.0 for word in words) / len(words)
        sentences.append(
            HandwrittenSentence(
                page=line.page or 1,
                confidence=round(mean, 2),
                sentence=" ".join(word.text for word in words),
            )
        )

    return sentences


def extract_plain_text(blocks: Iterable[Block]) -> str:
    """Concatenate the text of all LINE blocks."""
    return " ".join(
        block.text or "" for block in blocks if block.is_type(BlockType.LINE)
    )


def parse_blocks(
    raw_blocks: Iterable[Union[Block, Mapping[str, Any]]],
    drop_empty_values: bool = False,
    handwritten_threshold: float = HANDWRITTEN_THRESHOLD,
) -> ParsedDocument:
    """Run every extractor over one recognition result.

    Args:
        raw_blocks: Blocks as models or engine dicts.
        drop_empty_values: Form policy for empty values, see ``parse_form``.
        handwritten_threshold: Line confidence below which a line is reported.

    Returns:
        ParsedDocument with form, tables, confidence, and handwritten lines.
    """
    blocks = load_blocks(raw_blocks)
    index = build_index(blocks)

    return ParsedDocument(
        form=parse_form(blocks, index, drop_empty_values=drop_empty_values),
        table=parse_tables(blocks, index),
        confidence=average_confidence(blocks),
        handwritten=extract_handwritten_sentences(blocks, index, handwritten_threshold),
    )
