"""
Defines application-wide extensions. Keeps creation/import separate from
initialization to avoid circular imports. Provides Flask-Limiter and
Flask-WTF's CSRF protection.
"""

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect

# Created here; initialized with app in create_app()
limiter = Limiter(key_func=get_remote_address)
csrf = CSRFProtect()


def get_content_filter():
    """The ContentFilter built by create_app() for the current app."""
    return current_app.extensions["content_filter"]
