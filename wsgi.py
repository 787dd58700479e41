"""
WSGI entry point.

    gunicorn wsgi:application
"""
from dotenv import load_dotenv

load_dotenv()

from sphinx_bounties.factory import create_app

app = create_app()

# Gunicorn/uWSGI compatibility
application = app

if __name__ == "__main__":
    app.run(host="127.0.0.1", port=5000, debug=False)
