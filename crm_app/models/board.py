# crm_app/models/board.py
"""
Board → pipeline → stage hierarchy and the work items placed on it.

Deals, tasks and tickets live in separate tables but share their columns via
``BoardItemMixin``.
"""

from sqlalchemy import Enum, Index, UniqueConstraint
from sqlalchemy.orm import declared_attr

from .base import BaseModel, db
from .enums import BoardType


class Board(BaseModel):
    """Top-level kanban board for one work-item type"""

    __tablename__ = "boards"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(Enum(BoardType, name="board_type_enum"), nullable=False, index=True)

    pipelines = db.relationship("Pipeline", back_populates="board", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_board_name_type", "name", "type"),)

    def __repr__(self):
        return f"<Board {self.type.value}:{self.name}>"


class Pipeline(BaseModel):
    __tablename__ = "pipelines"

    id = db.Column(db.Integer, primary_key=True)
    board_id = db.Column(db.Integer, db.ForeignKey("boards.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)

    board = db.relationship("Board", back_populates="pipelines")
    stages = db.relationship("Stage", back_populates="pipeline", cascade="all, delete-orphan")

    __table_args__ = (UniqueConstraint("board_id", "name", name="uq_pipeline_board_name"),)

    def __repr__(self):
        return f"<Pipeline {self.name}>"


class Stage(BaseModel):
    __tablename__ = "stages"

    id = db.Column(db.Integer, primary_key=True)
    pipeline_id = db.Column(db.Integer, db.ForeignKey("pipelines.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)

    pipeline = db.relationship("Pipeline", back_populates="stages")

    __table_args__ = (UniqueConstraint("pipeline_id", "name", name="uq_stage_pipeline_name"),)

    def __repr__(self):
        return f"<Stage {self.name}>"


class BoardItemMixin:
    """Columns shared by every work-item table"""

    name = db.Column(db.String(300), nullable=True)
    description = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(50), nullable=True)
    close_date = db.Column(db.String(50), nullable=True)
    is_complete = db.Column(db.Boolean, nullable=False, default=False)
    source_conversation_id = db.Column(db.String(100), nullable=True, index=True)
    assigned_user_ids = db.Column(db.JSON, nullable=True)
    tag_ids = db.Column(db.JSON, nullable=True)
    scope_brand_ids = db.Column(db.JSON, nullable=True)
    custom_fields_data = db.Column(db.JSON, nullable=True)
    search_text = db.Column(db.Text, nullable=True)

    @declared_attr
    def stage_id(cls):
        return db.Column(db.Integer, db.ForeignKey("stages.id"), nullable=True, index=True)

    @declared_attr
    def user_id(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"


class Deal(BoardItemMixin, BaseModel):
    __tablename__ = "deals"

    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.String(50), nullable=True)


class Task(BoardItemMixin, BaseModel):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)


class Ticket(BoardItemMixin, BaseModel):
    __tablename__ = "tickets"

    id = db.Column(db.Integer, primary_key=True)
    source = db.Column(db.String(100), nullable=True)
