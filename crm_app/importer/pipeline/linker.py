"""
Post-insert relationship linking between contacts and companies.

Company names and contact emails captured on the drafts are resolved after
the batch exists, missing companies are created in one bulk INSERT, and the
relationship rows are written in two bulk INSERTs, one per direction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from flask import current_app
from sqlalchemy import insert
from sqlalchemy.orm import Session

from crm_app.importer.contracts import ImportContentType
from crm_app.importer.errors import LinkingError
from crm_app.importer.pipeline.field_mapper import DraftDocument
from crm_app.importer.pipeline.lookups import ImportLookups
from crm_app.importer.pipeline.persister import InsertedRecord
from crm_app.models import Company, Conformity, db
from crm_app.models.base import utcnow
from crm_app.services.scoring import company_search_text

COMPANY = ImportContentType.COMPANY.value
CUSTOMER = ImportContentType.CUSTOMER.value


@dataclass(frozen=True)
class LinkSummary:
    companies_created: int = 0
    company_links: int = 0
    contact_links: int = 0

    @property
    def links_created(self) -> int:
        return self.company_links + self.contact_links


class ConformityLinker:
    """Write ``Conformity`` rows for the relationship hints of one batch."""

    def __init__(
        self,
        *,
        lookups: ImportLookups,
        session: Session | None = None,
        scope_tags: Iterable[str] = (),
        acting_user_id: int | None = None,
    ) -> None:
        self.lookups = lookups
        self.session: Session = session or db.session
        self.scope_tags = list(scope_tags)
        self.acting_user_id = acting_user_id

    def link(
        self,
        drafts: Sequence[DraftDocument],
        inserted: Sequence[InsertedRecord],
        content_type: ImportContentType,
    ) -> LinkSummary:
        if not (content_type.is_contact_like or content_type.is_company_like):
            return LinkSummary()

        main_type = content_type.conformity_type
        company_links: list[dict] = []
        contact_links: list[dict] = []
        companies_created = 0

        for draft in drafts:
            if draft.related_company_names and not content_type.is_company_like:
                company_ids, created = self._resolve_companies(draft.related_company_names)
                companies_created += created
                own = self._own_record(inserted, "primary_email", draft.get("primary_email"))
                company_links.extend(
                    self._link_row(main_type, own.id, COMPANY, company_id) for company_id in company_ids
                )

            if draft.related_contact_emails and not content_type.is_contact_like:
                contact_ids = self.lookups.customer_ids_by_emails(draft.related_contact_emails)
                own = self._own_record(inserted, "primary_name", draft.get("primary_name"))
                contact_links.extend(
                    self._link_row(main_type, own.id, CUSTOMER, contact_id) for contact_id in contact_ids
                )

        if company_links:
            self.session.execute(insert(Conformity), company_links)
        if contact_links:
            self.session.execute(insert(Conformity), contact_links)

        summary = LinkSummary(
            companies_created=companies_created,
            company_links=len(company_links),
            contact_links=len(contact_links),
        )
        if summary.links_created:
            current_app.logger.info(
                "Import batch linked",
                extra={
                    "importer_content_type": content_type.value,
                    "importer_companies_created": summary.companies_created,
                    "importer_links_created": summary.links_created,
                },
            )
        return summary

    def _resolve_companies(self, names: Sequence[str]) -> tuple[list[int], int]:
        """Existing company ids for ``names``, creating the missing ones in one INSERT."""

        company_ids: list[int] = []
        missing: list[str] = []
        for name in dict.fromkeys(names):
            company_id = self.lookups.company_id_by_name(name)
            if company_id is None:
                missing.append(name)
            else:
                company_ids.append(company_id)

        if missing:
            now = utcnow()
            documents = [
                {
                    "primary_name": name,
                    "names": [name],
                    "search_text": company_search_text({"primary_name": name}),
                    "scope_brand_ids": list(self.scope_tags),
                    "owner_id": self.acting_user_id,
                    "created_at": now,
                    "updated_at": now,
                }
                for name in missing
            ]
            created_ids = self.session.scalars(
                insert(Company).returning(Company.id, sort_by_parameter_order=True), documents
            ).all()
            company_ids.extend(created_ids)

        return company_ids, len(missing)

    @staticmethod
    def _own_record(inserted: Sequence[InsertedRecord], attribute: str, value) -> InsertedRecord:
        if value:
            for record in inserted:
                if getattr(record, attribute) == value:
                    return record
        raise LinkingError(f"Could not match imported record by {attribute} '{value or ''}'")

    @staticmethod
    def _link_row(main_type: str, main_id: int, rel_type: str, rel_id: int) -> dict:
        now = utcnow()
        return {
            "main_type": main_type,
            "main_type_id": main_id,
            "rel_type": rel_type,
            "rel_type_id": rel_id,
            "created_at": now,
            "updated_at": now,
        }
