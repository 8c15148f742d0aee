"""
Row to draft document mapping driven by column property descriptors.

Each property kind has one handler. Unknown kinds are skipped so newer
callers can send descriptors this worker does not understand yet.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Sequence

from crm_app.importer.contracts import ColumnProperty, ImportContentType, PropertyKind
from crm_app.importer.errors import RowMappingError
from crm_app.importer.pipeline.lookups import ImportLookups
from crm_app.models import CustomerState, ValidationStatus
from crm_app.services.scoring import generate_pronoun

# basicField targets that also populate a list field
_PRIMARY_LIST_FIELDS = {
    "primary_name": "names",
    "primary_email": "emails",
    "primary_phone": "phones",
}
_SPLIT_FIELDS = frozenset(_PRIMARY_LIST_FIELDS.values())

_BASIC_ALIASES = {
    "ownerId": "owner_id",
    "tagIds": "tag_ids",
    "primaryName": "primary_name",
    "primaryEmail": "primary_email",
    "primaryPhone": "primary_phone",
    "isComplete": "is_complete",
    "firstName": "first_name",
    "lastName": "last_name",
    "middleName": "middle_name",
    "birthDate": "birth_date",
    "leadStatus": "lead_status",
    "closeDate": "close_date",
    "sourceConversationId": "source_conversation_id",
    "categoryCode": "category_code",
    "unitPrice": "unit_price",
    "businessType": "business_type",
    "emailValidationStatus": "email_validation_status",
    "phoneValidationStatus": "phone_validation_status",
}


def split_cell(value: Any) -> list[str]:
    """Comma split with whitespace trimmed and empty items dropped."""

    if value is None:
        return []
    return [item.strip() for item in str(value).split(",") if item.strip()]


def normalize_field_name(name: str | None) -> str:
    name = (name or "").strip()
    return _BASIC_ALIASES.get(name, name)


@dataclass
class StageRef:
    board_name: str = ""
    pipeline_name: str = ""
    stage_name: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.board_name or self.pipeline_name or self.stage_name)


@dataclass
class DraftDocument:
    """Candidate record built from one row, before persistence."""

    fields: Dict[str, Any] = field(default_factory=dict)
    custom_fields: list[dict] = field(default_factory=list)
    scope_tags: list[str] = field(default_factory=list)
    related_company_names: list[str] = field(default_factory=list)
    related_contact_emails: list[str] = field(default_factory=list)
    stage_ref: StageRef | None = None

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.fields[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.fields

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def as_document(self) -> Dict[str, Any]:
        """Flat column mapping handed to the persister."""

        document = dict(self.fields)
        document["custom_fields_data"] = [dict(entry) for entry in self.custom_fields]
        document["scope_brand_ids"] = list(self.scope_tags)
        return document


class FieldMapper:
    """Build ``DraftDocument`` objects for one content type."""

    def __init__(
        self,
        content_type: ImportContentType,
        *,
        lookups: ImportLookups,
        acting_user_id: int | None = None,
        scope_tags: Iterable[str] = (),
        strict: bool = False,
    ) -> None:
        self.content_type = content_type
        self.lookups = lookups
        self.acting_user_id = acting_user_id
        self.scope_tags = list(scope_tags)
        self.strict = strict
        self._handlers: Dict[PropertyKind, Callable[[DraftDocument, ColumnProperty, Any], None]] = {
            PropertyKind.CUSTOM_FIELD: self._custom_field,
            PropertyKind.RAW_FIELD: self._raw_field,
            PropertyKind.OWNER_EMAIL: self._owner_email,
            PropertyKind.PRONOUN: self._pronoun,
            PropertyKind.COMPANY_NAMES: self._company_names,
            PropertyKind.CONTACT_EMAILS: self._contact_emails,
            PropertyKind.BOARD_NAME: self._board_name,
            PropertyKind.PIPELINE_NAME: self._pipeline_name,
            PropertyKind.STAGE_NAME: self._stage_name,
            PropertyKind.TAG: self._tag,
            PropertyKind.BASIC_FIELD: self._basic_field,
        }

    def map_rows(self, rows: Iterable[Sequence[Any]], properties: Sequence[ColumnProperty]) -> list[DraftDocument]:
        return [self.map(row, properties) for row in rows]

    def map(self, row: Sequence[Any], properties: Sequence[ColumnProperty]) -> DraftDocument:
        draft = DraftDocument(scope_tags=list(self.scope_tags))
        stage_ref = StageRef()

        for prop in sorted(properties, key=lambda item: item.index):
            kind = prop.resolved_kind
            if kind is None:
                continue
            raw = row[prop.index] if 0 <= prop.index < len(row) and row[prop.index] is not None else ""
            if kind in (PropertyKind.BOARD_NAME, PropertyKind.PIPELINE_NAME, PropertyKind.STAGE_NAME):
                self._handlers[kind](stage_ref, prop, raw)
            else:
                self._handlers[kind](draft, prop, raw)

        if self.content_type.is_contact_like:
            for status_field in ("email_validation_status", "phone_validation_status"):
                if not draft.get(status_field):
                    draft[status_field] = ValidationStatus.UNKNOWN.value
            draft["state"] = (
                CustomerState.LEAD if self.content_type is ImportContentType.LEAD else CustomerState.CUSTOMER
            )

        if self.content_type.is_work_item:
            draft["user_id"] = self.acting_user_id
            if not stage_ref.is_empty:
                draft.stage_ref = stage_ref

        return draft

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _custom_field(self, draft: DraftDocument, prop: ColumnProperty, raw: Any) -> None:
        draft.custom_fields.append({"field_id": prop.target_field_name, "value": raw})

    def _raw_field(self, draft: DraftDocument, prop: ColumnProperty, raw: Any) -> None:
        draft[normalize_field_name(prop.target_field_name)] = str(raw)

    def _owner_email(self, draft: DraftDocument, prop: ColumnProperty, raw: Any) -> None:
        email = str(raw).strip()
        owner_id = self.lookups.owner_id_by_email(email)
        if owner_id is None and email and self.strict:
            raise RowMappingError(f"Owner with email {email} not found", column_index=prop.index)
        draft[normalize_field_name(prop.target_field_name) or "owner_id"] = owner_id

    def _pronoun(self, draft: DraftDocument, prop: ColumnProperty, raw: Any) -> None:
        draft["sex"] = generate_pronoun(str(raw))

    def _company_names(self, draft: DraftDocument, prop: ColumnProperty, raw: Any) -> None:
        draft.related_company_names = split_cell(raw)

    def _contact_emails(self, draft: DraftDocument, prop: ColumnProperty, raw: Any) -> None:
        draft.related_contact_emails = split_cell(raw)

    def _board_name(self, stage_ref: StageRef, prop: ColumnProperty, raw: Any) -> None:
        stage_ref.board_name = str(raw).strip()

    def _pipeline_name(self, stage_ref: StageRef, prop: ColumnProperty, raw: Any) -> None:
        stage_ref.pipeline_name = str(raw).strip()

    def _stage_name(self, stage_ref: StageRef, prop: ColumnProperty, raw: Any) -> None:
        stage_ref.stage_name = str(raw).strip()

    def _tag(self, draft: DraftDocument, prop: ColumnProperty, raw: Any) -> None:
        name = str(raw).strip()
        tag_ids = self.lookups.tag_ids_like(name)
        if not tag_ids and name and self.strict:
            raise RowMappingError(f"Tag {name} not found", column_index=prop.index)
        draft[normalize_field_name(prop.target_field_name) or "tag_ids"] = tag_ids

    def _basic_field(self, draft: DraftDocument, prop: ColumnProperty, raw: Any) -> None:
        name = normalize_field_name(prop.target_field_name)
        if not name:
            return
        value = str(raw)
        if name in _SPLIT_FIELDS:
            # A blank list cell keeps whatever a primary column already set
            values = split_cell(value)
            if values:
                draft[name] = values
            return
        draft[name] = value

        if name in _PRIMARY_LIST_FIELDS:
            list_field = _PRIMARY_LIST_FIELDS[name]
            # An explicit list column wins over the singleton
            if not draft.get(list_field):
                draft[list_field] = [value] if value else []
        elif name in _SPLIT_FIELDS:
            draft[name] = split_cell(value)
        elif name == "is_complete":
            draft[name] = bool(value)
