"""
ProjectHub
Shared SQLAlchemy instance.

All domain models import ``db`` from here:
    from projecthub.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
