"""
wrapflow: SQLAlchemy models package.

Every model module imports the shared ``db`` handle from here:

    from wrapflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
