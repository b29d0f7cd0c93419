"""
WSGI and Flask-Migrate / Alembic entry point.

Usage:
    FLASK_APP=wsgi flask db upgrade
    FLASK_APP=wsgi flask release-stale-claims
"""

from sitepulse import create_app

app = create_app()
