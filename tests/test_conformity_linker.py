import pytest
from sqlalchemy import select

from crm_app.importer.contracts import ImportContentType
from crm_app.importer.errors import LinkingError
from crm_app.importer.pipeline.field_mapper import DraftDocument
from crm_app.importer.pipeline.lookups import ImportLookups
from crm_app.importer.pipeline.persister import BatchPersister
from crm_app.importer.pipeline.linker import ConformityLinker
from crm_app.models import Company, Conformity, Customer, db


def _persist_and_link(drafts, content_type, user_id, **linker_kwargs):
    lookups = ImportLookups()
    result = BatchPersister(lookups=lookups).persist(drafts, content_type, user_id)
    db.session.commit()
    summary = ConformityLinker(lookups=lookups, acting_user_id=user_id, **linker_kwargs).link(
        drafts, result.records, content_type
    )
    db.session.commit()
    return result, summary


def _links():
    return db.session.scalars(select(Conformity).order_by(Conformity.id)).all()


def test_contact_with_new_company_creates_company_and_one_link(acting_user):
    draft = DraftDocument(fields={"primary_email": "ada@example.com"}, related_company_names=["Acme"])

    result, summary = _persist_and_link([draft], ImportContentType.CUSTOMER, acting_user.id, scope_tags=["brand-1"])

    companies = db.session.scalars(select(Company)).all()
    assert len(companies) == 1
    assert companies[0].primary_name == "Acme"
    assert companies[0].names == ["Acme"]
    assert companies[0].scope_brand_ids == ["brand-1"]
    assert companies[0].owner_id == acting_user.id

    links = _links()
    assert len(links) == 1
    assert (links[0].main_type, links[0].main_type_id) == ("customer", result.inserted_ids[0])
    assert (links[0].rel_type, links[0].rel_type_id) == ("company", companies[0].id)
    assert summary.companies_created == 1
    assert summary.links_created == 1


def test_existing_company_is_reused(acting_user):
    existing = Company(primary_name="Acme", names=["Acme"])
    db.session.add(existing)
    db.session.commit()
    drafts = [
        DraftDocument(fields={"primary_email": "ada@example.com"}, related_company_names=["Acme", "Acme"]),
        DraftDocument(fields={"primary_email": "grace@example.com"}, related_company_names=["Acme"]),
    ]

    _, summary = _persist_and_link(drafts, ImportContentType.CUSTOMER, acting_user.id)

    assert db.session.scalar(select(db.func.count()).select_from(Company)) == 1
    assert {link.rel_type_id for link in _links()} == {existing.id}
    assert summary.companies_created == 0
    assert summary.company_links == 2


def test_leads_link_as_customers(acting_user):
    draft = DraftDocument(fields={"primary_email": "lee@example.com"}, related_company_names=["Acme"])

    _persist_and_link([draft], ImportContentType.LEAD, acting_user.id)

    assert _links()[0].main_type == "customer"


def test_company_links_to_existing_contacts_by_email(acting_user):
    ada = Customer(primary_email="ada@example.com")
    grace = Customer(primary_email="grace@example.com")
    db.session.add_all([ada, grace])
    db.session.commit()
    draft = DraftDocument(
        fields={"primary_name": "Acme"},
        related_contact_emails=["ada@example.com", "grace@example.com", "nobody@example.com"],
    )

    result, summary = _persist_and_link([draft], ImportContentType.COMPANY, acting_user.id)

    links = _links()
    assert {(link.main_type, link.main_type_id) for link in links} == {("company", result.inserted_ids[0])}
    assert sorted(link.rel_type_id for link in links) == sorted([ada.id, grace.id])
    assert summary.contact_links == 2
    assert summary.companies_created == 0


def test_company_hints_on_companies_are_ignored(acting_user):
    draft = DraftDocument(fields={"primary_name": "Acme"}, related_company_names=["Parent"])

    _, summary = _persist_and_link([draft], ImportContentType.COMPANY, acting_user.id)

    assert summary.links_created == 0
    assert _links() == []


def test_drafts_without_hints_write_nothing(acting_user):
    _, summary = _persist_and_link([DraftDocument(fields={"first_name": "Ada"})], ImportContentType.CUSTOMER, acting_user.id)

    assert summary.links_created == 0


def test_work_items_are_never_linked(acting_user):
    summary = ConformityLinker(lookups=ImportLookups()).link(
        [DraftDocument(fields={"name": "Deal"}, related_company_names=["Acme"])], [], ImportContentType.DEAL
    )

    assert summary.links_created == 0
    assert db.session.scalars(select(Company)).all() == []


def test_unmatched_record_raises_linking_error(acting_user):
    lookups = ImportLookups()
    drafts = [DraftDocument(fields={"first_name": "No email"}, related_company_names=["Acme"])]
    result = BatchPersister(lookups=lookups).persist(drafts, ImportContentType.CUSTOMER, acting_user.id)
    db.session.commit()

    with pytest.raises(LinkingError, match="primary_email"):
        ConformityLinker(lookups=lookups).link(drafts, result.records, ImportContentType.CUSTOMER)
