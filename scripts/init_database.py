# scripts/init_database.py

"""
Database initialization script.
This script creates all tables and seeds the data imports rely on:
- A system user that owns records imported without an owner
- One default board -> pipeline -> stage chain per work-item type
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import app  # noqa: E402
from crm_app.models import Board, BoardType, Pipeline, Stage, User, db  # noqa: E402

DEFAULT_STAGES = ("New", "In progress", "Done")


def create_system_user():
    """Create the user imports fall back to"""
    email = os.environ.get("IMPORT_SYSTEM_USER_EMAIL", "importer@localhost")
    user = User.query.filter_by(email=email).first()
    if not user:
        user = User(username="importer", email=email, first_name="Import", last_name="Bot")
        db.session.add(user)
        db.session.commit()
    return user


def create_default_boards():
    """Create a 'Default' board with a 'Default' pipeline for deals, tasks and tickets"""
    created = 0
    for board_type in BoardType:
        board = Board.query.filter_by(name="Default", type=board_type).first()
        if not board:
            board = Board(name="Default", type=board_type)
            db.session.add(board)
            db.session.flush()
            created += 1

        pipeline = Pipeline.query.filter_by(board_id=board.id, name="Default").first()
        if not pipeline:
            pipeline = Pipeline(board_id=board.id, name="Default")
            db.session.add(pipeline)
            db.session.flush()

        for order, name in enumerate(DEFAULT_STAGES):
            if not Stage.query.filter_by(pipeline_id=pipeline.id, name=name).first():
                db.session.add(Stage(pipeline_id=pipeline.id, name=name, order=order))

    db.session.commit()
    return created


def main():
    with app.app_context():
        print("Creating tables...")
        db.create_all()
        user = create_system_user()
        print(f"System user: {user.email} (id={user.id})")
        created = create_default_boards()
        print(f"Default boards created: {created}")
        print("Database initialized.")


if __name__ == "__main__":
    main()
