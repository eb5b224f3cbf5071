"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi seed-roles
    flask --app wsgi seed-settings
    flask db init
    flask db migrate -m "description"
    flask db upgrade
"""

from erp_tools import create_app

app = create_app()
