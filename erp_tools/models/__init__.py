"""
ERP Workflow Tools
Shared SQLAlchemy handle.

Every module keeps its tables in its own bind (see ``config.MODULE_BINDS``);
users, roles, notifications and audit rows live in the default bind.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
