"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
    flask --app wsgi run-job task_conflict_scan
    gunicorn wsgi:app
"""

from projecthub import create_app

app = create_app()
