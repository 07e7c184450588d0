"""
wsgi.py — WSGI entry point.

    gunicorn "tallyup.wsgi:app"
    flask --app tallyup.wsgi run

FLASK_ENV selects the config class (development, testing, production).
"""

import os

from tallyup.app import create_app

app = create_app(os.getenv("FLASK_ENV", "development"))
