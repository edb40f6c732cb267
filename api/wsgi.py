"""
WSGI entry point for production servers (gunicorn, uwsgi).
"""

from app import create_app
from observability.config import setup_observability

setup_observability()

# WSGI servers look for a module-level 'app'
app = create_app()
