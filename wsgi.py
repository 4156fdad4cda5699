"""
Production entry point, e.g. `gunicorn wsgi:app`.

APP_CONFIG defaults to ProdConfig, so startup fails fast unless the secret
key, download salt and Supabase credentials are configured.
"""

from steamfamily import create_app

app = create_app()
