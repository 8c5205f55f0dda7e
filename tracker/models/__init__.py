"""
Activity Tracker
SQLAlchemy models package.

The shared ``db`` handle lives here; model modules import it as
``from tracker.models import db``. ``create_app`` imports every model
module so ``db.create_all()`` and Alembic see the full metadata.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
