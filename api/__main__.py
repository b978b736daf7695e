"""
Development runner: python -m api
"""
import logging
import os

from . import create_app

app = create_app()
logger = logging.getLogger("api")

if __name__ == "__main__":
    host = os.getenv("FLASK_RUN_HOST", "127.0.0.1")
    port = int(os.getenv("FLASK_RUN_PORT", "8000"))
    logger.info(
        "Serving auth session API on %s:%s (token issuer %s)",
        host,
        port,
        app.config["JWT_ISSUER"],
    )
    # Production deployments go through a WSGI server (gunicorn/uwsgi)
    app.run(host=host, port=port, debug=app.config.get("DEBUG", False))
