"""
WSGI entry point, also used by the Flask CLI and Flask-Migrate.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi sweep-timeouts
"""

from signum import create_app

app = create_app()
