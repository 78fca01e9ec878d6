"""Export Pydantic v2 schemas and export-record field names."""

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from collection_export.lib.exporter.base import ExportFormat

# Collection holding export records
EXPORTS_COLLECTION_NAME = "exports"

# Export record field names
EXPORT_COLLECTION_NAME_FIELD = "exportCollectionName"
HEADERS_FIELD = "headers"
FILTER_FIELD = "filter"
SORT_FIELD = "sort"
OUTPUT_FIELD = "output"
FORMAT_FIELD = "format"
OWNER_ID_FIELD = "ownerId"
OWNER_COLLECTION_NAME_FIELD = "ownerCollectionName"


class HeaderItem(BaseModel):
    """One output column: which field to read and how to label and format it."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    field_name: str = Field(..., alias="fieldName", min_length=1)
    header: str = Field(..., description="Column label written to the header row")
    timezone: str | None = Field(default=None, description="IANA zone for timestamp fields")
    value_map: dict[str, Any] | None = Field(
        default=None,
        alias="valueMap",
        description="Display value per stringified raw value",
    )


HeaderList = Annotated[list[HeaderItem], Field(min_length=1)]

_HEADERS_ADAPTER: TypeAdapter[list[HeaderItem]] = TypeAdapter(HeaderList)


def parse_headers(raw: Any) -> list[HeaderItem]:
    """Parse a serialized header list.

    Args:
        raw: A JSON string or an already-decoded list of header dicts.

    Returns:
        The parsed header items in declared order.

    Raises:
        pydantic.ValidationError: If the structure is malformed.
    """
    if isinstance(raw, str | bytes):
        return _HEADERS_ADAPTER.validate_json(raw)
    return _HEADERS_ADAPTER.validate_python(raw)


def dump_headers(headers: list[HeaderItem]) -> list[dict[str, Any]]:
    """Serialize headers to their stored JSON form."""
    return [header.model_dump(by_alias=True, exclude_none=True) for header in headers]


class ExportCreateRequest(BaseModel):
    """Request to create an export record."""

    model_config = ConfigDict(populate_by_name=True)

    export_collection_name: str = Field(..., alias="exportCollectionName", min_length=1, max_length=256)
    headers: HeaderList
    filter: str = ""
    sort: str = ""
    format: ExportFormat
    owner_id: str = Field(default="", alias="ownerId")
    owner_collection_name: str = Field(default="", alias="ownerCollectionName")

    def to_record_data(self) -> dict[str, Any]:
        """Return the export record's field values."""
        return {
            EXPORT_COLLECTION_NAME_FIELD: self.export_collection_name,
            HEADERS_FIELD: dump_headers(self.headers),
            FILTER_FIELD: self.filter,
            SORT_FIELD: self.sort,
            FORMAT_FIELD: str(self.format),
            OUTPUT_FIELD: "",
            OWNER_ID_FIELD: self.owner_id,
            OWNER_COLLECTION_NAME_FIELD: self.owner_collection_name,
        }

