"""
SitePulse survey service
Model package — the shared Flask-SQLAlchemy handle.

Usage:
    from sitepulse.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
