"""
DJT Portal — SQLAlchemy models package.

``db`` is the single Flask-SQLAlchemy handle shared by every model module,
store and service. Model modules are imported by ``create_app`` so that
``db.create_all()`` and Flask-Migrate see the full metadata.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
