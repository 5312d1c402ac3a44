"""
Team Resource Planner
Database models package.

The ``db`` instance is created here and bound to the app in create_app().
Model modules import ``db`` from this package:

    from app.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
