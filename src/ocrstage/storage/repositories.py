"""Repository layer for job record operations."""

import base64
import binascii
import json
import logging
from typing import Any, Mapping, Optional, Sequence

from pydantic_core import to_jsonable_python
from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ocrstage.errors import NotFound, StoreReadFailed, StoreWriteFailed
from ocrstage.models import JobPage, JobRecord, JobStatus, RecordKey

from .database import session_scope
from .orm_models import JSON_FIELDS, MERGEABLE_FIELDS, JobRecordORM, utcnow

logger = logging.getLogger(__name__)

PRIMARY_INDEX = "primary"
EXTERNAL_ID_INDEX = "gsi1"
SEARCH_KEY_INDEX = "gsi2"

_INDEX_COLUMNS = {
    PRIMARY_INDEX: JobRecordORM.partition_key,
    EXTERNAL_ID_INDEX: JobRecordORM.external_job_id,
    SEARCH_KEY_INDEX: JobRecordORM.search_key,
}


def encode_cursor(sort_key: str) -> str:
    """Opaque continuation token for the record after ``sort_key``."""
    raw = json.dumps({"sk": sort_key}).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> str:
    """Recover the sort key from a continuation token.

    Raises:
        ValueError: Token was not produced by ``encode_cursor``.
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        return str(payload["sk"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as e:
        raise ValueError(f"Invalid cursor: {cursor!r}") from e


class JobRecordRepository:
    """Repository for JobRecord operations within one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, key: RecordKey, for_update: bool = False) -> Optional[JobRecordORM]:
        """Get record by primary key."""
        query = select(JobRecordORM).where(
            JobRecordORM.partition_key == key.partition_key,
            JobRecordORM.sort_key == key.sort_key,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_external_id(self, external_job_id: str) -> Optional[JobRecordORM]:
        """Get the newest record for an engine job id."""
        result = await self.session.execute(
            select(JobRecordORM)
            .where(JobRecordORM.external_job_id == external_job_id)
            .order_by(JobRecordORM.sort_key.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def merge(
        self,
        key: RecordKey,
        updates: Mapping[str, Any],
        must_exist: bool = False,
    ) -> JobRecordORM:
        """Apply only the named fields to a record, creating it if allowed.

        ``current_step`` never moves backwards: a lower-ranked status in
        ``updates`` leaves the stored one in place. ERROR always applies.

        Raises:
            ValueError: ``updates`` names a key field or an unknown field.
            NotFound: ``must_exist`` is set and the record is absent.
        """
        unknown = set(updates) - MERGEABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot merge fields: {sorted(unknown)}")

        orm_record = await self.get(key, for_update=True)
        if orm_record is None:
            if must_exist:
                raise NotFound(key.sort_key)
            orm_record = JobRecordORM(
                partition_key=key.partition_key,
                sort_key=key.sort_key,
                current_step=JobStatus.PENDING.value,
                created_at=utcnow(),
            )
            self.session.add(orm_record)

        for field, value in updates.items():
            if field == "current_step":
                value = self._next_step(orm_record, JobStatus(value))
            elif field in JSON_FIELDS and value is not None:
                value = to_jsonable_python(value, by_alias=True)
            setattr(orm_record, field, value)

        orm_record.updated_at = utcnow()
        await self.session.flush()
        return orm_record

    @staticmethod
    def _next_step(orm_record: JobRecordORM, requested: JobStatus) -> str:
        if orm_record.current_step is None:
            return requested.value
        current = JobStatus(orm_record.current_step)
        if current.can_advance_to(requested):
            return requested.value
        logger.debug(
            "Keeping %s over %s", current.value, requested.value,
            extra={"step": current.value},
        )
        return current.value

    async def query(
        self,
        index_name: str,
        value: str,
        limit: int = 20,
        cursor: Optional[str] = None,
        status: Optional[JobStatus] = None,
        descending: bool = False,
    ) -> tuple[Sequence[JobRecordORM], Optional[str]]:
        """Page through records sharing one index value, in sort key order.

        Returns:
            Records of this page and the cursor of the next one (``None`` on
            the last page).
        """
        column = _INDEX_COLUMNS.get(index_name)
        if column is None:
            raise ValueError(f"Unknown index: {index_name}")

        query: Select = select(JobRecordORM).where(column == value)
        if status is not None:
            query = query.where(JobRecordORM.current_step == JobStatus(status).value)
        if cursor:
            last = decode_cursor(cursor)
            query = query.where(
                JobRecordORM.sort_key < last if descending else JobRecordORM.sort_key > last
            )
        order = JobRecordORM.sort_key.desc() if descending else JobRecordORM.sort_key
        query = query.order_by(order).limit(limit + 1)

        result = await self.session.execute(query)
        records = list(result.scalars().all())

        next_cursor = None
        if len(records) > limit:
            records = records[:limit]
            next_cursor = encode_cursor(records[-1].sort_key)
        return records, next_cursor

    async def count(self, partition_key: str, status: Optional[JobStatus] = None) -> int:
        """Count records in a partition."""
        query = (
            select(func.count())
            .select_from(JobRecordORM)
            .where(JobRecordORM.partition_key == partition_key)
        )
        if status is not None:
            query = query.where(JobRecordORM.current_step == JobStatus(status).value)
        result = await self.session.execute(query)
        return result.scalar_one()


class SqlJobStore:
    """Keyed record store backed by SQLAlchemy.

    Every call runs in its own transaction, so a merge is applied to a
    single row atomically and never spans records. Database errors come
    out as ``StoreReadFailed`` or ``StoreWriteFailed``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        partition_key: str = "ocr-job",
    ):
        self.session_factory = session_factory
        self.partition_key = partition_key

    def key_for(self, sort_key: str) -> RecordKey:
        return RecordKey(self.partition_key, sort_key)

    async def get(self, key: RecordKey) -> Optional[JobRecord]:
        try:
            async with session_scope(self.session_factory) as session:
                orm_record = await JobRecordRepository(session).get(key)
                return JobRecord.model_validate(orm_record) if orm_record else None
        except SQLAlchemyError as e:
            raise StoreReadFailed(f"Failed to read record {key.sort_key}: {e}") from e

    async def get_by_external_id(self, external_job_id: str) -> Optional[JobRecord]:
        try:
            async with session_scope(self.session_factory) as session:
                orm_record = await JobRecordRepository(session).get_by_external_id(
                    external_job_id
                )
                return JobRecord.model_validate(orm_record) if orm_record else None
        except SQLAlchemyError as e:
            raise StoreReadFailed(
                f"Failed to look up job {external_job_id}: {e}", job_id=external_job_id
            ) from e

    async def merge(
        self,
        key: RecordKey,
        updates: Mapping[str, Any],
        must_exist: bool = False,
    ) -> JobRecord:
        """Merge ``updates`` into one record and return the result.

        Raises:
            NotFound: ``must_exist`` is set and the record is absent.
            StoreWriteFailed: The database rejected or could not apply the write.
        """
        try:
            async with session_scope(self.session_factory) as session:
                orm_record = await JobRecordRepository(session).merge(
                    key, updates, must_exist=must_exist
                )
                return JobRecord.model_validate(orm_record)
        except SQLAlchemyError as e:
            raise StoreWriteFailed(f"Failed to update record {key.sort_key}: {e}") from e

    async def query_by_index(
        self,
        index_name: str,
        value: str,
        limit: int = 20,
        cursor: Optional[str] = None,
        status: Optional[JobStatus] = None,
        descending: bool = False,
    ) -> JobPage:
        """Page through records by index; see ``JobRecordRepository.query``."""
        try:
            async with session_scope(self.session_factory) as session:
                records, next_cursor = await JobRecordRepository(session).query(
                    index_name,
                    value,
                    limit=limit,
                    cursor=cursor,
                    status=status,
                    descending=descending,
                )
                items = [JobRecord.model_validate(r) for r in records]
        except SQLAlchemyError as e:
            raise StoreReadFailed(f"Failed to query {index_name}: {e}") from e
        return JobPage(items=items, count=len(items), cursor=next_cursor)

    async def count(self, status: Optional[JobStatus] = None) -> int:
        try:
            async with session_scope(self.session_factory) as session:
                return await JobRecordRepository(session).count(self.partition_key, status)
        except SQLAlchemyError as e:
            raise StoreReadFailed(f"Failed to count records: {e}") from e
