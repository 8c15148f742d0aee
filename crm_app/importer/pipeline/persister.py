"""
Batch persistence for mapped drafts.

Every batch is enriched per content type and written with one bulk INSERT.
Any enrichment failure raises before the INSERT, so a failed batch leaves no
rows behind. The caller owns the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Sequence

from flask import current_app
from sqlalchemy import Enum as SAEnum
from sqlalchemy import String, insert
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from crm_app.importer.contracts import ImportContentType
from crm_app.importer.errors import BatchValidationError
from crm_app.importer.pipeline.field_mapper import DraftDocument
from crm_app.importer.pipeline.lookups import ImportLookups
from crm_app.models import Company, Customer, Deal, Product, Task, Ticket, ValidationStatus, db
from crm_app.models.base import utcnow
from crm_app.services.field_service import prepare_custom_fields_data
from crm_app.services.scoring import calc_profile_score, company_search_text, work_item_search_text

MODEL_BY_CONTENT_TYPE = {
    ImportContentType.CUSTOMER: Customer,
    ImportContentType.LEAD: Customer,
    ImportContentType.COMPANY: Company,
    ImportContentType.PRODUCT: Product,
    ImportContentType.DEAL: Deal,
    ImportContentType.TASK: Task,
    ImportContentType.TICKET: Ticket,
}

_UNVERIFIED = (None, "", ValidationStatus.UNKNOWN.value)


@dataclass(frozen=True)
class InsertedRecord:
    """Identity of one inserted row, used to match drafts when linking."""

    id: int
    content_type: ImportContentType
    primary_email: str | None = None
    primary_name: str | None = None


@dataclass
class PersistResult:
    records: list[InsertedRecord] = field(default_factory=list)
    # Fire-and-forget work to hand off once the batch is committed
    activity_entries: list[dict] = field(default_factory=list)
    activity_kind: str | None = None
    validation_requests: list[tuple[str, str]] = field(default_factory=list)

    @property
    def inserted_ids(self) -> list[int]:
        return [record.id for record in self.records]


class BatchPersister:
    """Enrich and bulk insert a homogeneous list of drafts."""

    def __init__(
        self,
        *,
        lookups: ImportLookups,
        session: Session | None = None,
        strict_categories: bool | None = None,
    ) -> None:
        self.lookups = lookups
        self.session: Session = session or db.session
        if strict_categories is None:
            strict_categories = bool(current_app.config.get("IMPORTER_STRICT_CATEGORY_MATCH", False))
        self.strict_categories = strict_categories

    def persist(
        self,
        drafts: Sequence[DraftDocument],
        content_type: ImportContentType,
        acting_user_id: int | None,
        model=None,
    ) -> PersistResult:
        model = model or MODEL_BY_CONTENT_TYPE[content_type]
        if not drafts:
            return PersistResult()

        documents = [draft.as_document() for draft in drafts]
        now = utcnow()

        if content_type.is_contact_like:
            self._prepare_contacts(documents, acting_user_id)
        elif content_type.is_company_like:
            self._prepare_companies(documents, acting_user_id)
        elif content_type.is_product_like:
            self._prepare_products(documents)
        elif content_type.is_work_item:
            self._prepare_work_items(documents, content_type, model)

        for document in documents:
            document["created_at"] = now
            document["updated_at"] = now

        records = self._bulk_insert(model, documents, content_type)
        result = PersistResult(records=records)

        if content_type.is_contact_like or content_type.is_company_like:
            result.activity_kind = content_type.conformity_type
            result.activity_entries = [
                {"id": record.id, "content": {"source": "import"}} for record in records
            ]
        elif content_type.is_work_item:
            result.activity_kind = content_type.value
            result.activity_entries = [
                {"id": record.id, "content": {"stage_id": document.get("stage_id")}}
                for record, document in zip(records, documents)
            ]

        if content_type.is_contact_like:
            result.validation_requests = self._validation_requests(documents)

        return result

    # ------------------------------------------------------------------
    # Per-kind enrichment
    # ------------------------------------------------------------------

    def _prepare_contacts(self, documents: list[Dict[str, Any]], acting_user_id: int | None) -> None:
        for document in documents:
            if not document.get("owner_id"):
                document["owner_id"] = acting_user_id
            if document.get("primary_email") and not document.get("emails"):
                document["emails"] = [document["primary_email"]]
            if document.get("primary_phone") and not document.get("phones"):
                document["phones"] = [document["primary_phone"]]
            if document.get("integration_id"):
                document["related_integration_ids"] = [document["integration_id"]]
            document["custom_fields_data"] = prepare_custom_fields_data(document.get("custom_fields_data"))

            score = calc_profile_score(document)
            document["profile_score"] = score.profile_score
            document["search_text"] = score.search_text
            document["state"] = score.state

    def _prepare_companies(self, documents: list[Dict[str, Any]], acting_user_id: int | None) -> None:
        for document in documents:
            if not document.get("owner_id"):
                document["owner_id"] = acting_user_id
            if document.get("primary_name") and not document.get("names"):
                document["names"] = [document["primary_name"]]
            document["custom_fields_data"] = prepare_custom_fields_data(document.get("custom_fields_data"))
            document["search_text"] = company_search_text(document)

    def _prepare_products(self, documents: list[Dict[str, Any]]) -> None:
        codes = {self._category_code(document) for document in documents}
        categories = self.lookups.category_ids_by_code(code for code in codes if code)

        for document in documents:
            code = self._category_code(document)
            category_id = categories.get(code) if code else None
            if code and category_id is None and self.strict_categories:
                raise BatchValidationError(f'Product category "{code}" not found')
            document["category_id"] = category_id
            document["custom_fields_data"] = prepare_custom_fields_data(document.get("custom_fields_data"))

    @staticmethod
    def _category_code(document: Dict[str, Any]) -> str | None:
        code = document.get("category_code") or document.get("code")
        return str(code).strip() if code else None

    def _prepare_work_items(self, documents: list[Dict[str, Any]], content_type: ImportContentType, model) -> None:
        source_ids = {document.get("source_conversation_id") for document in documents}
        if self.lookups.converted_source_ids(model, source_ids):
            raise BatchValidationError(f"Already converted a {content_type.value}")

        for document in documents:
            document["custom_fields_data"] = prepare_custom_fields_data(document.get("custom_fields_data"))
            document["search_text"] = work_item_search_text(document)

    @staticmethod
    def _validation_requests(documents: list[Dict[str, Any]]) -> list[tuple[str, str]]:
        requests = []
        for document in documents:
            if document.get("primary_email") and document.get("email_validation_status") in _UNVERIFIED:
                requests.append(("email", document["primary_email"]))
            if document.get("primary_phone") and document.get("phone_validation_status") in _UNVERIFIED:
                requests.append(("phone", document["primary_phone"]))
        return requests

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def _bulk_insert(self, model, documents: list[Dict[str, Any]], content_type: ImportContentType) -> list[InsertedRecord]:
        columns = {attr.key: attr.columns[0] for attr in sa_inspect(model).column_attrs}
        params = [self._row_params(document, columns) for document in documents]

        # One key set for the whole batch keeps it a single executemany
        keys = set().union(*params)
        for row in params:
            for key in keys - row.keys():
                default = columns[key].default
                row[key] = default.arg if default is not None and default.is_scalar else None

        returning = [model.id]
        if "primary_email" in columns:
            returning.append(model.primary_email)
        if "primary_name" in columns:
            returning.append(model.primary_name)

        rows = self.session.execute(
            insert(model).returning(*returning, sort_by_parameter_order=True),
            params,
        ).all()

        records = [
            InsertedRecord(
                id=row.id,
                content_type=content_type,
                primary_email=getattr(row, "primary_email", None),
                primary_name=getattr(row, "primary_name", None),
            )
            for row in rows
        ]
        current_app.logger.debug(
            "Import batch inserted",
            extra={"importer_content_type": content_type.value, "importer_rows": len(records)},
        )
        return records

    @staticmethod
    def _row_params(document: Dict[str, Any], columns: Dict[str, Any]) -> Dict[str, Any]:
        params = {}
        for key, value in document.items():
            column = columns.get(key)
            if column is None or key == "id":
                continue
            # Blank cells only survive on plain text columns
            if value == "" and (not isinstance(column.type, String) or isinstance(column.type, SAEnum)):
                value = None
            params[key] = value
        return params
