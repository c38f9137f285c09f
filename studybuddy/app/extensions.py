"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from studybuddy.app.extensions import db, ma
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Marshmallow instance — used by the response schemas in app/schemas/.
#
# IMPORTANT — schema inheritance rule:
#   Request validation schemas inherit from marshmallow.Schema directly, NOT
#   from ma.Schema, so the unit tests can load them without an app context.
#   Only the output (dump-only) schemas use ma.Schema.
ma = Marshmallow()
