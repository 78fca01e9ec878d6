"""Record store service — collection, record and admin lookups and writes."""

from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from collection_export.lib.store.errors import RecordNotFoundError
from collection_export.lib.store.schema import CollectionType, FieldType, SchemaField
from collection_export.models.admin import Admin
from collection_export.models.collection import Collection
from collection_export.models.record import Record
from collection_export.schemas.export import (
    EXPORT_COLLECTION_NAME_FIELD,
    EXPORTS_COLLECTION_NAME,
    FILTER_FIELD,
    FORMAT_FIELD,
    HEADERS_FIELD,
    OUTPUT_FIELD,
    OWNER_COLLECTION_NAME_FIELD,
    OWNER_ID_FIELD,
    SORT_FIELD,
)

_OWNER_RULE = "ownerId = @request.auth.id && ownerCollectionName = @request.auth.collectionName"

EXPORTS_COLLECTION_SCHEMA: list[SchemaField] = [
    SchemaField(EXPORT_COLLECTION_NAME_FIELD, FieldType.TEXT, required=True, options={"min": 1, "max": 256}),
    SchemaField(HEADERS_FIELD, FieldType.JSON, required=True),
    SchemaField(FILTER_FIELD, FieldType.TEXT),
    SchemaField(SORT_FIELD, FieldType.TEXT),
    SchemaField(OUTPUT_FIELD, FieldType.FILE, options={"maxSelect": 1}),
    SchemaField(FORMAT_FIELD, FieldType.SELECT, required=True, options={"maxSelect": 1, "values": ["csv", "xlsx"]}),
    SchemaField(OWNER_ID_FIELD, FieldType.TEXT),
    SchemaField(OWNER_COLLECTION_NAME_FIELD, FieldType.TEXT),
]


async def find_collection_by_name_or_id(session: AsyncSession, name_or_id: str) -> Collection:
    """Get a collection by name or id.

    Raises:
        RecordNotFoundError: If no collection matches.
    """
    if not name_or_id:
        raise RecordNotFoundError("collection", name_or_id)
    result = await session.execute(
        select(Collection).where(or_(Collection.id == name_or_id, Collection.name == name_or_id)).limit(1)
    )
    collection = result.scalar_one_or_none()
    if collection is None:
        raise RecordNotFoundError("collection", name_or_id)
    return collection


async def find_record_by_id(session: AsyncSession, collection_name_or_id: str, record_id: str) -> Record:
    """Get a record of a collection by id.

    Raises:
        RecordNotFoundError: If the collection or the record does not exist.
    """
    collection = await find_collection_by_name_or_id(session, collection_name_or_id)
    result = await session.execute(
        select(Record).where(Record.collection_id == collection.id, Record.id == record_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise RecordNotFoundError("record", f"{collection.name}/{record_id}")
    return record


async def find_admin_by_id(session: AsyncSession, admin_id: str) -> Admin:
    """Get an admin by id.

    Raises:
        RecordNotFoundError: If the admin does not exist.
    """
    admin = await session.get(Admin, admin_id) if admin_id else None
    if admin is None:
        raise RecordNotFoundError("admin", admin_id)
    return admin


async def create_collection(
    session: AsyncSession,
    *,
    name: str,
    schema: list[SchemaField],
    collection_type: CollectionType = CollectionType.BASE,
    list_rule: str | None = None,
    view_rule: str | None = None,
    collection_id: str | None = None,
) -> Collection:
    """Create a collection.

    Args:
        session: Database session.
        name: Unique collection name.
        schema: Field definitions.
        collection_type: ``base`` or ``auth``.
        list_rule: Filter restricting listing for non-admins; None for no rule.
        view_rule: Filter restricting viewing for non-admins; None for admin-only.
        collection_id: Optional explicit id.

    Returns:
        The created Collection.
    """
    collection = Collection(
        name=name,
        type=collection_type,
        schema=[item.to_dict() for item in schema],
        list_rule=list_rule,
        view_rule=view_rule,
    )
    if collection_id:
        collection.id = collection_id
    session.add(collection)
    await session.commit()
    await session.refresh(collection)
    logger.info(f"Created collection {collection.name} ({collection.id})")
    return collection


async def ensure_exports_collection(session: AsyncSession) -> Collection:
    """Return the exports collection, creating it when missing."""
    try:
        return await find_collection_by_name_or_id(session, EXPORTS_COLLECTION_NAME)
    except RecordNotFoundError:
        return await create_collection(
            session,
            name=EXPORTS_COLLECTION_NAME,
            schema=EXPORTS_COLLECTION_SCHEMA,
            list_rule=_OWNER_RULE,
            view_rule=_OWNER_RULE,
        )


def new_record(collection: Collection, data: dict[str, Any] | None = None, *, record_id: str | None = None) -> Record:
    """Build an unsaved record attached to its collection."""
    record = Record(collection_id=collection.id, data=dict(data or {}))
    record.collection = collection
    if record_id:
        record.id = record_id
    return record


async def create_record(
    session: AsyncSession,
    collection: Collection,
    data: dict[str, Any],
    *,
    record_id: str | None = None,
    created: datetime | None = None,
) -> Record:
    """Create and persist a record.

    Args:
        session: Database session.
        collection: Owning collection.
        data: Schema field values.
        record_id: Optional explicit id.
        created: Optional explicit creation time.

    Returns:
        The created Record.
    """
    record = new_record(collection, data, record_id=record_id)
    if created is not None:
        record.created = created
        record.updated = created
    session.add(record)
    await session.commit()
    await session.refresh(record)
    return record


async def create_admin(session: AsyncSession, *, email: str, admin_id: str | None = None) -> Admin:
    """Create a privileged admin."""
    admin = Admin(email=email)
    if admin_id:
        admin.id = admin_id
    session.add(admin)
    await session.commit()
    await session.refresh(admin)
    logger.info(f"Created admin {admin.email} ({admin.id})")
    return admin


async def find_records_created_before(session: AsyncSession, collection: Collection, cutoff: datetime) -> list[Record]:
    """Get a collection's records created at or before ``cutoff``, oldest first."""
    result = await session.execute(
        select(Record)
        .where(Record.collection_id == collection.id, Record.created <= cutoff)
        .order_by(Record.created, Record.id)
    )
    return list(result.scalars().all())


async def delete_record(session: AsyncSession, record: Record) -> None:
    """Delete a record and commit."""
    await session.delete(record)
    await session.commit()


async def import_fixtures(session: AsyncSession, payload: dict[str, Any]) -> dict[str, int]:
    """Load admins, collections and records from a decoded JSON document.

    The document shape is::

        {
          "admins": [{"id": "...", "email": "..."}],
          "collections": [{"id": "...", "name": "...", "type": "base", "schema": [...],
                           "listRule": null, "viewRule": null}],
          "records": {"<collection name>": [{"id": "...", "created": "...", ...fields}]}
        }

    Returns:
        Counts of created admins, collections and records.
    """
    counts = {"admins": 0, "collections": 0, "records": 0}

    for item in payload.get("admins", []):
        await create_admin(session, email=item["email"], admin_id=item.get("id"))
        counts["admins"] += 1

    for item in payload.get("collections", []):
        await create_collection(
            session,
            name=item["name"],
            schema=[SchemaField.from_dict(field) for field in item.get("schema", [])],
            collection_type=CollectionType(item.get("type", CollectionType.BASE)),
            list_rule=item.get("listRule"),
            view_rule=item.get("viewRule"),
            collection_id=item.get("id"),
        )
        counts["collections"] += 1

    for collection_name, rows in payload.get("records", {}).items():
        collection = await find_collection_by_name_or_id(session, collection_name)
        for row in rows:
            data = dict(row)
            record_id = data.pop("id", None)
            created = data.pop("created", None)
            data.pop("updated", None)
            record = new_record(collection, data, record_id=record_id)
            if created:
                record.created = datetime.fromisoformat(created)
                record.updated = record.created
            session.add(record)
            counts["records"] += 1
        await session.commit()

    logger.info(
        f"Imported {counts['admins']} admins, {counts['collections']} collections, {counts['records']} records"
    )
    return counts
