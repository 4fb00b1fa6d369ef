"""
WSGI entry point for gunicorn and the Flask CLI.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi seed-library
    flask --app wsgi library-auto-match --threshold 90
"""

from app import create_app

app = create_app()
