"""
AI Use-Case Governance Platform
SQLAlchemy extension instance shared by all models.

Usage:
    from aigov.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
