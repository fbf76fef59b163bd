"""
Ingestion request models.

IngestionProperties describe where and how staged data is loaded;
IngestionMessage is the JSON document posted to an ingestion queue.
"""

from enum import Enum, IntEnum
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from services.ingest_service.models.sources import DataFormat


class ReportLevel(IntEnum):
    """Which outcomes the backend reports. Values match the service's wire values."""

    FAILURES_ONLY = 0
    NONE = 1
    FAILURES_AND_SUCCESSES = 2


class ReportMethod(IntEnum):
    QUEUE = 0
    TABLE = 1
    QUEUE_AND_TABLE = 2


class IngestionMappingKind(str, Enum):
    CSV = "Csv"
    JSON = "Json"
    AVRO = "Avro"
    PARQUET = "Parquet"
    ORC = "Orc"
    W3CLOGFILE = "W3CLogFile"


class ColumnMapping(BaseModel):
    """
    A single column of an inline ingestion mapping.

    Attributes:
        column_name: Target column
        column_type: Target column type (e.g. "string", "datetime")
        properties: Mapping properties such as Ordinal (csv) or Path (json)
    """

    model_config = ConfigDict(frozen=True)

    column_name: str
    column_type: str | None = None
    properties: dict[str, str] = Field(default_factory=dict)

    def to_service_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {"Column": self.column_name}
        if self.column_type:
            entry["DataType"] = self.column_type
        if self.properties:
            entry["Properties"] = dict(self.properties)
        return entry


class IngestionProperties(BaseModel):
    """
    Target and options of an ingestion.

    Attributes:
        database: Target database
        table: Target table
        format: Data format; overridden by the staged source's format when dispatched
        ingestion_mapping_reference: Name of a mapping already defined on the table
        ingestion_mapping: Inline column mapping (mutually exclusive with the reference)
        ingestion_mapping_kind: Kind of the mapping, required with either mapping form
        report_level: Which outcomes the backend reports
        report_method: Where outcomes are reported
        flush_immediately: Skip backend batching
        ignore_first_record: Skip a header row
        tags: Extent tags
        additional_properties: Extra properties passed through verbatim
    """

    database: str
    table: str
    format: DataFormat = DataFormat.CSV
    ingestion_mapping_reference: str | None = None
    ingestion_mapping: list[ColumnMapping] | None = None
    ingestion_mapping_kind: IngestionMappingKind | None = None
    report_level: ReportLevel = ReportLevel.FAILURES_ONLY
    report_method: ReportMethod = ReportMethod.QUEUE
    flush_immediately: bool = False
    ignore_first_record: bool = False
    tags: list[str] = Field(default_factory=list)
    additional_properties: dict[str, str] = Field(default_factory=dict)

    @field_validator("database", "table")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("database and table must not be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_mapping(self) -> "IngestionProperties":
        if self.ingestion_mapping_reference and self.ingestion_mapping:
            raise ValueError("Use either ingestion_mapping_reference or ingestion_mapping, not both")
        if (self.ingestion_mapping_reference or self.ingestion_mapping) and self.ingestion_mapping_kind is None:
            raise ValueError("ingestion_mapping_kind is required when a mapping is given")
        return self

    @property
    def reports_to_table(self) -> bool:
        return self.report_level != ReportLevel.NONE and self.report_method in (
            ReportMethod.TABLE,
            ReportMethod.QUEUE_AND_TABLE,
        )

    def service_properties(
        self,
        format: DataFormat,
        authorization_context: str | None = None,
    ) -> dict[str, str]:
        """Flatten options into the string map the backend expects."""
        properties = dict(self.additional_properties)
        properties["format"] = format.value
        if self.ingestion_mapping_reference:
            properties["ingestionMappingReference"] = self.ingestion_mapping_reference
        if self.ingestion_mapping:
            properties["ingestionMapping"] = json.dumps(
                [column.to_service_dict() for column in self.ingestion_mapping]
            )
        if self.ingestion_mapping_kind:
            properties["ingestionMappingType"] = self.ingestion_mapping_kind.value
        if self.ignore_first_record:
            properties["ignoreFirstRecord"] = "true"
        if self.tags:
            properties["tags"] = json.dumps(self.tags)
        if authorization_context:
            properties["authorizationContext"] = authorization_context
        return properties


class StatusTableReference(BaseModel):
    """Location of the status row the backend updates for one source."""

    model_config = ConfigDict(populate_by_name=True)

    table_connection_string: str = Field(alias="TableConnectionString")
    partition_key: str = Field(alias="PartitionKey")
    row_key: str = Field(alias="RowKey")


class IngestionMessage(BaseModel):
    """The queue message announcing one staged blob."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="Id")
    blob_path: str = Field(alias="BlobPath")
    raw_data_size: int | None = Field(default=None, alias="RawDataSize")
    database_name: str = Field(alias="DatabaseName")
    table_name: str = Field(alias="TableName")
    retain_blob_on_success: bool = Field(default=True, alias="RetainBlobOnSuccess")
    flush_immediately: bool = Field(default=False, alias="FlushImmediately")
    report_level: ReportLevel = Field(default=ReportLevel.FAILURES_ONLY, alias="ReportLevel")
    report_method: ReportMethod = Field(default=ReportMethod.QUEUE, alias="ReportMethod")
    additional_properties: dict[str, str] = Field(default_factory=dict, alias="AdditionalProperties")
    ingestion_status_in_table: StatusTableReference | None = Field(
        default=None, alias="IngestionStatusInTable"
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
