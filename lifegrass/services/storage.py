# services/storage.py
"""Object store backends holding one JSON document per user.

Every backend speaks the same small interface (get/put/delete/exists/list by
key). Backend failures surface as ``StorageUnavailable``; a missing object is
``None``/``False``, never an exception, and never the other way round.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from lifegrass.background import run_sync
from lifegrass.database import init_db, make_engine, make_session_maker
from lifegrass.errors import Conflict, StorageUnavailable
from lifegrass.models import StoredObject

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class BlobStore(Protocol):
    async def init(self) -> None: ...

    async def get(self, key: str) -> Optional[bytes]: ...

    async def put(self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE) -> None: ...

    async def create(self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE) -> None:
        """Write ``key`` only if it does not exist yet; raises ``Conflict`` otherwise."""
        ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...

    async def list_keys(self, prefix: str) -> list[str]: ...


# ---------------------------
# SQL (default)
# ---------------------------
class SqlBlobStore:
    def __init__(self, engine: AsyncEngine, session_maker: async_sessionmaker[AsyncSession],
                 *, create_tables: bool = True):
        self.engine = engine
        self.session_maker = session_maker
        self.create_tables = create_tables

    async def init(self) -> None:
        if not self.create_tables:
            return
        try:
            await init_db(self.engine)
        except SQLAlchemyError as e:
            logger.exception("Object table creation failed")
            raise StorageUnavailable() from e

    async def get(self, key: str) -> Optional[bytes]:
        try:
            async with self.session_maker() as session:
                row = await session.get(StoredObject, key)
                return bytes(row.body) if row else None
        except SQLAlchemyError as e:
            logger.exception("Object read failed for %s", key)
            raise StorageUnavailable("Storage read failed") from e

    async def put(self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE) -> None:
        try:
            async with self.session_maker() as session:
                row = await session.get(StoredObject, key)
                if row:
                    row.body = body
                    row.content_type = content_type
                else:
                    session.add(StoredObject(key=key, body=body, content_type=content_type))
                await session.commit()
        except SQLAlchemyError as e:
            logger.exception("Object write failed for %s", key)
            raise StorageUnavailable("Storage write failed") from e

    async def create(self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE) -> None:
        try:
            async with self.session_maker() as session:
                session.add(StoredObject(key=key, body=body, content_type=content_type))
                await session.commit()
        except IntegrityError as e:
            raise Conflict() from e
        except SQLAlchemyError as e:
            logger.exception("Object create failed for %s", key)
            raise StorageUnavailable("Storage write failed") from e

    async def delete(self, key: str) -> None:
        try:
            async with self.session_maker() as session:
                row = await session.get(StoredObject, key)
                if row:
                    await session.delete(row)
                    await session.commit()
        except SQLAlchemyError as e:
            logger.exception("Object delete failed for %s", key)
            raise StorageUnavailable("Delete failed") from e

    async def exists(self, key: str) -> bool:
        try:
            async with self.session_maker() as session:
                found = (await session.execute(
                    select(StoredObject.key).where(StoredObject.key == key).limit(1)
                )).scalar_one_or_none()
                return found is not None
        except SQLAlchemyError as e:
            logger.exception("Object lookup failed for %s", key)
            raise StorageUnavailable() from e

    async def list_keys(self, prefix: str) -> list[str]:
        try:
            async with self.session_maker() as session:
                rows = (await session.execute(
                    select(StoredObject.key)
                    .where(StoredObject.key.startswith(prefix, autoescape=True))
                    .order_by(StoredObject.key)
                )).scalars().all()
                return list(rows or [])
        except SQLAlchemyError as e:
            logger.exception("Object listing failed for prefix %s", prefix)
            raise StorageUnavailable() from e


# ---------------------------
# S3-compatible bucket
# ---------------------------
def _error_code(err) -> str:
    return str((getattr(err, "response", None) or {}).get("Error", {}).get("Code", ""))


def _missing(err) -> bool:
    return _error_code(err) in {"NoSuchKey", "404", "NotFound"}


def _already_exists(err) -> bool:
    # 412 when the key exists, 409 when a concurrent conditional write won
    return _error_code(err) in {"PreconditionFailed", "412", "ConditionalRequestConflict", "409"}


class S3BlobStore:
    """Bucket-backed store; boto3 is blocking so every call runs in the executor."""

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    async def init(self) -> None:
        return None

    async def get(self, key: str) -> Optional[bytes]:
        def _read() -> Optional[bytes]:
            try:
                resp = self.client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _missing(e):
                    return None
                raise
            return resp["Body"].read()

        try:
            return await run_sync(_read)
        except (BotoCoreError, ClientError) as e:
            logger.exception("Blob read error for %s", key)
            raise StorageUnavailable("Storage read failed") from e

    async def put(self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE) -> None:
        try:
            await run_sync(
                self.client.put_object,
                Bucket=self.bucket, Key=key, Body=body, ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.exception("Blob write error for %s", key)
            raise StorageUnavailable("Storage write failed") from e

    async def create(self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE) -> None:
        def _create() -> bool:
            try:
                self.client.put_object(
                    Bucket=self.bucket, Key=key, Body=body, ContentType=content_type, IfNoneMatch="*",
                )
            except ClientError as e:
                if _already_exists(e):
                    return False
                raise
            return True

        try:
            created = await run_sync(_create)
        except (BotoCoreError, ClientError) as e:
            logger.exception("Blob create error for %s", key)
            raise StorageUnavailable("Storage write failed") from e
        if not created:
            raise Conflict()

    async def delete(self, key: str) -> None:
        # S3 deletes are idempotent: a missing key is not an error
        try:
            await run_sync(self.client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.exception("Blob delete error for %s", key)
            raise StorageUnavailable("Delete failed") from e

    async def exists(self, key: str) -> bool:
        def _head() -> bool:
            try:
                self.client.head_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _missing(e):
                    return False
                raise
            return True

        try:
            return await run_sync(_head)
        except (BotoCoreError, ClientError) as e:
            logger.exception("Blob lookup error for %s", key)
            raise StorageUnavailable() from e

    async def list_keys(self, prefix: str) -> list[str]:
        def _list() -> list[str]:
            keys: list[str] = []
            token = None
            while True:
                kwargs = {"Bucket": self.bucket, "Prefix": prefix}
                if token:
                    kwargs["ContinuationToken"] = token
                resp = self.client.list_objects_v2(**kwargs)
                keys.extend(obj["Key"] for obj in resp.get("Contents", []))
                if not resp.get("IsTruncated"):
                    return keys
                token = resp.get("NextContinuationToken")

        try:
            return await run_sync(_list)
        except (BotoCoreError, ClientError) as e:
            logger.exception("Blob listing error for prefix %s", prefix)
            raise StorageUnavailable() from e


def make_s3_client(settings):
    s3_config = {"region_name": settings.S3_REGION}
    if settings.S3_ENDPOINT_URL:
        s3_config["endpoint_url"] = settings.S3_ENDPOINT_URL
    if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
        s3_config["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
        s3_config["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
    return boto3.client("s3", **s3_config)


# ---------------------------
# Not configured
# ---------------------------
class UnconfiguredBlobStore:
    """Stand-in when no backend is configured: every call is a 503, never empty data."""

    message = "Storage not configured"

    async def init(self) -> None:
        logger.warning("Object storage is not configured; user data endpoints will answer 503")

    def _fail(self):
        raise StorageUnavailable(self.message)

    async def get(self, key: str) -> Optional[bytes]:
        self._fail()

    async def put(self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE) -> None:
        self._fail()

    async def create(self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE) -> None:
        self._fail()

    async def delete(self, key: str) -> None:
        self._fail()

    async def exists(self, key: str) -> bool:
        self._fail()

    async def list_keys(self, prefix: str) -> list[str]:
        self._fail()


def build_blob_store(settings) -> BlobStore:
    if settings.STORAGE_BACKEND == "s3":
        if not settings.S3_BUCKET:
            return UnconfiguredBlobStore()
        return S3BlobStore(make_s3_client(settings), settings.S3_BUCKET)

    engine = make_engine(settings.async_database_url)
    return SqlBlobStore(engine, make_session_maker(engine), create_tables=settings.RUN_DB_CREATE_ALL)
