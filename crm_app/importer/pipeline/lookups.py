"""
Read-only lookups used while building and linking an import batch.

A ``ImportLookups`` instance lives for one invocation; owner and tag results
are memoised on the instance so repeated cells cost a single query.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from crm_app.models import Board, BoardType, Company, Customer, Pipeline, ProductCategory, Stage, Tag, User, db


class ImportLookups:
    """Query helpers for owners, tags, the board hierarchy, categories and cross references."""

    def __init__(self, session: Session | None = None) -> None:
        self.session: Session = session or db.session
        self._owners: dict[str, int | None] = {}
        self._tags: dict[str, list[int]] = {}

    # ------------------------------------------------------------------
    # Field mapping
    # ------------------------------------------------------------------

    def owner_id_by_email(self, email: str) -> int | None:
        email = (email or "").strip()
        if not email:
            return None
        if email not in self._owners:
            self._owners[email] = self.session.scalar(select(User.id).where(User.email == email).limit(1))
        return self._owners[email]

    def tag_ids_like(self, name: str) -> list[int]:
        """First tag whose name contains ``name`` (case-insensitive), as a one-element list."""

        name = (name or "").strip()
        if not name:
            return []
        if name not in self._tags:
            tag_id = self.session.scalar(
                select(Tag.id).where(Tag.name.ilike(f"%{name}%")).order_by(Tag.id).limit(1)
            )
            self._tags[name] = [tag_id] if tag_id is not None else []
        return list(self._tags[name])

    # ------------------------------------------------------------------
    # Board hierarchy
    # ------------------------------------------------------------------

    def board_id(self, name: str, board_type: BoardType) -> int | None:
        return self.session.scalar(
            select(Board.id).where(Board.name == name, Board.type == board_type).order_by(Board.id).limit(1)
        )

    def pipeline_id(self, board_id: int, name: str) -> int | None:
        return self.session.scalar(
            select(Pipeline.id).where(Pipeline.board_id == board_id, Pipeline.name == name).limit(1)
        )

    def stage_id(self, pipeline_id: int, name: str) -> int | None:
        return self.session.scalar(
            select(Stage.id).where(Stage.pipeline_id == pipeline_id, Stage.name == name).limit(1)
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def category_ids_by_code(self, codes: Iterable[str]) -> Mapping[str, int]:
        codes = {code for code in codes if code}
        if not codes:
            return {}
        rows = self.session.execute(
            select(ProductCategory.code, ProductCategory.id).where(ProductCategory.code.in_(codes))
        )
        return {code: category_id for code, category_id in rows}

    def converted_source_ids(self, model, source_ids: Iterable[str]) -> set[str]:
        """Source conversation ids from ``source_ids`` already used by an existing ``model`` row."""

        source_ids = {source_id for source_id in source_ids if source_id}
        if not source_ids:
            return set()
        rows = self.session.scalars(
            select(model.source_conversation_id).where(model.source_conversation_id.in_(source_ids))
        )
        return set(rows)

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------

    def company_id_by_name(self, primary_name: str) -> int | None:
        return self.session.scalar(
            select(Company.id).where(Company.primary_name == primary_name).order_by(Company.id).limit(1)
        )

    def customer_ids_by_emails(self, emails: Iterable[str]) -> list[int]:
        emails = {email for email in emails if email}
        if not emails:
            return []
        rows = self.session.scalars(
            select(Customer.id).where(Customer.primary_email.in_(emails)).distinct().order_by(Customer.id)
        )
        return list(rows)
