"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi invitations-expire     # cron: */5 * * * *
"""

from app import create_app

app = create_app()
