from __future__ import annotations

from flask import Blueprint, jsonify, g

from models.schemas.user import PremiumStatusSchema, UserOutSchema
from utils.decorators import jwt_required

bp = Blueprint("users", __name__)

user_out_schema = UserOutSchema()
premium_status_schema = PremiumStatusSchema()


@bp.get("/users/me")
@jwt_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify(
        {
            "data": user_out_schema.dump(g.current_user)
        }
    ), 200


@bp.get("/users/me/premium-status")
@jwt_required()
def premium_status():
    """
    Premium flag of the current user.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify(premium_status_schema.dump(g.current_user)), 200
