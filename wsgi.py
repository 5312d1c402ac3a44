"""
WSGI / Flask CLI entry point.

Usage:
    flask --app wsgi run
    flask --app wsgi db upgrade
    flask --app wsgi seed
    flask --app wsgi backup
    gunicorn wsgi:app
"""

from app import create_app

app = create_app()
