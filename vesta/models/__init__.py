"""
Vesta Plan Resilience Review
Models package.

``db`` is the shared Flask-SQLAlchemy handle. Persistent state lives in the
``store_entries`` key-value table (see ``vesta.models.store``); the other
modules here are plain dataclasses serialised into that table.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
