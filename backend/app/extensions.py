"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

The read cache is NOT a module-level singleton. One ReadCache is constructed
per app in create_app() and stored on app.extensions; routes fetch it with
get_read_cache().
"""

from flask import current_app
from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Marshmallow instance — available for model serialization helpers.
#
# IMPORTANT — schema inheritance rule:
#   All validation Schema classes (in app/schemas/) must inherit from
#   marshmallow.Schema directly, NOT from ma.Schema, so unit tests can
#   instantiate them without an application context.
ma = Marshmallow()

READ_CACHE_EXTENSION = "read_cache"


def get_read_cache():
    """Returns the ReadCache bound to the current app."""
    return current_app.extensions[READ_CACHE_EXTENSION]
