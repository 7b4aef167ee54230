"""Tests for pipeline models."""

import json

import pytest
from pydantic import ValidationError

from ocrstage.models import (
    Block,
    Classification,
    JobRecord,
    JobStatus,
    LookupResult,
    MessageType,
    ParseDocumentMessage,
    ProcessDocumentMessage,
    RefineDocumentMessage,
    RelationshipType,
    dump_message,
    make_message,
    parse_message,
)


class TestJobStatus:
    """Tests for status ordering."""

    @pytest.mark.parametrize(
        "current,requested",
        [
            (JobStatus.PENDING, JobStatus.BLOCKS),
            (JobStatus.BLOCKS, JobStatus.PARSED),
            (JobStatus.PARSED, JobStatus.CLASSIFIED),
            (JobStatus.PARSED, JobStatus.PARSED),
            (JobStatus.PENDING, JobStatus.CLASSIFIED),
            (JobStatus.CLASSIFIED, JobStatus.ERROR),
        ],
    )
    def test_allowed(self, current, requested):
        assert current.can_advance_to(requested)

    @pytest.mark.parametrize(
        "current,requested",
        [
            (JobStatus.PARSED, JobStatus.BLOCKS),
            (JobStatus.CLASSIFIED, JobStatus.PENDING),
            (JobStatus.ERROR, JobStatus.BLOCKS),
        ],
    )
    def test_never_regresses(self, current, requested):
        assert not current.can_advance_to(requested)

    def test_wire_values(self):
        assert JobStatus("PARTIAL:BLOCKS") is JobStatus.BLOCKS
        assert JobStatus.CLASSIFIED.value == "PARTIAL:CLASSIFIED"
        assert JobStatus.CLASSIFIED.is_terminal


class TestMessages:
    """Tests for the pipeline message union."""

    def test_wire_format(self):
        message = make_message(MessageType.PROCESS_DOCUMENT, "job-1")

        assert json.loads(dump_message(message)) == {
            "type": "PROCESS_DOCUMENT",
            "data": {"jobId": "job-1"},
        }

    @pytest.mark.parametrize(
        "message_type,cls",
        [
            ("PROCESS_DOCUMENT", ProcessDocumentMessage),
            ("PARSE_DOCUMENT", ParseDocumentMessage),
            ("REFINE_DOCUMENT", RefineDocumentMessage),
        ],
    )
    def test_parse_selects_variant(self, message_type, cls):
        body = json.dumps({"type": message_type, "data": {"jobId": "abc"}})

        message = parse_message(body)

        assert isinstance(message, cls)
        assert message.data.job_id == "abc"

    @pytest.mark.parametrize(
        "body",
        [
            "not json",
            '{"type": "DELETE_DOCUMENT", "data": {"jobId": "abc"}}',
            '{"type": "PARSE_DOCUMENT", "data": {}}',
            '{"type": "PARSE_DOCUMENT", "data": {"jobId": ""}}',
            '{"data": {"jobId": "abc"}}',
        ],
    )
    def test_invalid_bodies_rejected(self, body):
        with pytest.raises(ValidationError):
            parse_message(body)


class TestJobRecord:
    """Tests for the job record model."""

    def test_camel_case_dump(self):
        record = JobRecord(
            partition_key="ocr-job",
            sort_key="2024-05-01T09:30:00.000Z",
            external_job_id="job-1",
            current_step=JobStatus.BLOCKS,
            blocks_location="documents/f/f.blocks.json",
        )

        dumped = record.model_dump(mode="json", by_alias=True)

        assert dumped["externalJobId"] == "job-1"
        assert dumped["currentStep"] == "PARTIAL:BLOCKS"
        assert dumped["blocksLocation"] == "documents/f/f.blocks.json"

    def test_accepts_camel_case_input(self):
        record = JobRecord.model_validate(
            {"partitionKey": "ocr-job", "sortKey": "s", "currentStep": "PARTIAL:PARSED"}
        )

        assert record.current_step == JobStatus.PARSED
        assert record.key == ("ocr-job", "s")


class TestClassification:
    """Tests for classifier output validation."""

    def test_camel_case_reply(self):
        result = Classification.model_validate_json(
            '{"summary": "s", "classification": "Invoice", "category": "financial",'
            ' "relevantDates": [{"date": "2024-01-01"}], "pagesCount": 2, "contact": []}'
        )

        assert result.pages_count == 2
        assert result.relevant_dates == [{"date": "2024-01-01"}]

    def test_missing_required_field(self):
        with pytest.raises(ValidationError):
            Classification.model_validate_json('{"summary": "s"}')


class TestMisc:
    def test_lookup_result(self):
        assert LookupResult[str](data="x").ok
        assert not LookupResult[str](error="Data not found: x").ok

    def test_block_helpers(self):
        block = Block.model_validate(
            {
                "Id": "k1",
                "BlockType": "KEY_VALUE_SET",
                "EntityTypes": ["KEY"],
                "Relationships": [
                    {"Type": "CHILD", "Ids": ["a"]},
                    {"Type": "VALUE", "Ids": ["v"]},
                    {"Type": "CHILD", "Ids": ["b"]},
                ],
            }
        )

        assert block.is_key
        assert block.related_ids(RelationshipType.CHILD) == ["a", "b"]
        assert block.first_relationship(RelationshipType.VALUE).ids == ["v"]
