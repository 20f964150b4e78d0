"""
Development server: python -m api

Production runs create_app() under a WSGI server; the token cleanup job is
scheduled separately with `flask --app api cleanup-tokens`.
"""
import os

from . import create_app

app = create_app()

if __name__ == "__main__":
    app.run(
        host=os.getenv("FLASK_RUN_HOST", "127.0.0.1"),
        port=int(os.getenv("FLASK_RUN_PORT", "8000")),
        debug=app.config["DEBUG"],
    )
