from flask import Blueprint, current_app

from utils.exceptions import StoreUnavailable

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: API and database are up
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
            version:
              type: string
              example: 1.0.0
            database:
              type: string
              example: ok
      503:
        description: Database unreachable
    """
    try:
        current_app.extensions["storage"].ping()
    except StoreUnavailable:
        return {"status": "degraded", "version": "1.0.0", "database": "unavailable"}, 503
    return {"status": "ok", "version": "1.0.0", "database": "ok"}, 200
