"""
Waltz Report Grid Service
SQLAlchemy instance shared by every model module.

Usage:
    from waltz.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
