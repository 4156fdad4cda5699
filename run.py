"""
Development server.

Defaults APP_CONFIG to DevConfig so a local run does not trip the production
security checks. SUPABASE_URL and SUPABASE_ANON_KEY must still be set (a
.env file next to this script is picked up).
"""

import os

os.environ.setdefault("APP_CONFIG", "steamfamily.config.DevConfig")

from steamfamily import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, port=int(os.getenv("PORT", "5000")))
