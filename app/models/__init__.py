"""
Production Workflow System
Database instance and model registry.

Every model module is imported here so that ``db.create_all()`` and
Flask-Migrate autogenerate see the full metadata.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from app.models import auth  # noqa: E402,F401
from app.models import hierarchy  # noqa: E402,F401
from app.models import workflow  # noqa: E402,F401
from app.models import order  # noqa: E402,F401
from app.models import external_job  # noqa: E402,F401
from app.models import notification  # noqa: E402,F401
