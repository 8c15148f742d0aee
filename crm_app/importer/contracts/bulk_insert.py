"""Payload contract for one bulk-insert invocation.

A spreadsheet import is split into slices; each slice arrives as an
``ImportPayload`` carrying its raw rows plus the ordered column property
descriptors that say how each cell maps onto a record field.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence, Tuple

from crm_app.importer.errors import UnsupportedContentTypeError


class ImportContentType(str, enum.Enum):
    """Record kinds the bulk importer can create."""

    CUSTOMER = "customer"
    LEAD = "lead"
    COMPANY = "company"
    PRODUCT = "product"
    DEAL = "deal"
    TASK = "task"
    TICKET = "ticket"

    @classmethod
    def parse(cls, value: object) -> "ImportContentType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise UnsupportedContentTypeError(value) from exc

    @property
    def is_contact_like(self) -> bool:
        return self in (ImportContentType.CUSTOMER, ImportContentType.LEAD)

    @property
    def is_company_like(self) -> bool:
        return self is ImportContentType.COMPANY

    @property
    def is_product_like(self) -> bool:
        return self is ImportContentType.PRODUCT

    @property
    def is_work_item(self) -> bool:
        return self in (ImportContentType.DEAL, ImportContentType.TASK, ImportContentType.TICKET)

    @property
    def conformity_type(self) -> str:
        """Type name used on relationship rows; leads link as customers."""

        if self is ImportContentType.LEAD:
            return ImportContentType.CUSTOMER.value
        return self.value


class PropertyKind(str, enum.Enum):
    """How a column's cell is applied to the draft record."""

    CUSTOM_FIELD = "customField"
    RAW_FIELD = "rawField"
    OWNER_EMAIL = "ownerEmail"
    PRONOUN = "pronoun"
    COMPANY_NAMES = "companyNames"
    CONTACT_EMAILS = "contactEmails"
    BOARD_NAME = "boardName"
    PIPELINE_NAME = "pipelineName"
    STAGE_NAME = "stageName"
    TAG = "tag"
    BASIC_FIELD = "basicField"


@dataclass(frozen=True)
class ColumnProperty:
    """Immutable description of one spreadsheet column."""

    index: int
    kind: str
    target_field_name: str | None = None

    @property
    def resolved_kind(self) -> PropertyKind | None:
        """The known kind, or ``None`` for kinds this worker does not handle."""

        try:
            return PropertyKind(self.kind)
        except ValueError:
            return None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, position: int) -> "ColumnProperty":
        raw_index = payload.get("index")
        index = position if raw_index is None else int(raw_index)
        target = payload.get("targetFieldName", payload.get("target_field_name"))
        return cls(
            index=index,
            kind=str(payload.get("kind", "")).strip(),
            target_field_name=str(target).strip() if target else None,
        )


def parse_column_properties(payload: Sequence[Mapping[str, Any]]) -> Tuple[ColumnProperty, ...]:
    properties = [ColumnProperty.from_payload(entry, position=position) for position, entry in enumerate(payload)]
    return tuple(sorted(properties, key=lambda prop: prop.index))


@dataclass(frozen=True)
class ImportPayload:
    """Everything a single bulk-insert invocation needs."""

    job_id: int
    content_type: ImportContentType
    rows: Tuple[Sequence[Any], ...]
    column_properties: Tuple[ColumnProperty, ...]
    acting_user_id: int | None = None
    scope_tags: Tuple[str, ...] = field(default_factory=tuple)
    success_weight: float = 0.0

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ImportPayload":
        """
        Parse a task payload. Unknown record kinds raise
        ``UnsupportedContentTypeError`` before any row is looked at.
        """

        content_type = ImportContentType.parse(payload.get("recordKind", payload.get("content_type")))
        rows = tuple(tuple(row or ()) for row in payload.get("rows") or ())
        properties = parse_column_properties(payload.get("columnProperties", payload.get("column_properties")) or ())
        acting_user = payload.get("actingUserId", payload.get("acting_user_id"))
        return cls(
            job_id=int(payload.get("jobId", payload.get("job_id"))),
            content_type=content_type,
            rows=rows,
            column_properties=properties,
            acting_user_id=int(acting_user) if acting_user is not None else None,
            scope_tags=tuple(str(tag) for tag in payload.get("scopeTags", payload.get("scope_tags")) or ()),
            success_weight=float(payload.get("successWeight", payload.get("success_weight")) or 0.0),
        )

    def to_mapping(self) -> dict[str, Any]:
        """JSON-safe form used as the Celery task argument."""

        return {
            "jobId": self.job_id,
            "recordKind": self.content_type.value,
            "rows": [list(row) for row in self.rows],
            "columnProperties": [
                {"index": prop.index, "kind": prop.kind, "targetFieldName": prop.target_field_name}
                for prop in self.column_properties
            ],
            "actingUserId": self.acting_user_id,
            "scopeTags": list(self.scope_tags),
            "successWeight": self.success_weight,
        }
