"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- GET  /auth/validate

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived stateless access tokens (JWT, HS256) and long-lived
  opaque refresh tokens stored in the DB
- Rotates refresh tokens on every use; a login revokes the user's previous
  refresh tokens
- Logout never fails on a bad or expired credential
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, abort, current_app

from models.schemas.token import RefreshRequestSchema, SessionTokensSchema
from models.schemas.user import UserLoginSchema, UserOutSchema, UserRegisterSchema
from services.session import SessionService
from utils.decorators import bearer_token

bp = Blueprint("auth", __name__)

user_register_schema = UserRegisterSchema()
user_login_schema = UserLoginSchema()
user_out_schema = UserOutSchema()
refresh_request_schema = RefreshRequestSchema()
session_tokens_schema = SessionTokensSchema()


def session_service() -> SessionService:
    return current_app.extensions["session_service"]


@bp.post("/register")
def register():
    """
    Register a new user.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            name: { type: string }
            email: { type: string }
            password: { type: string }
            passwordConfirm: { type: string }
    responses:
      201:
        description: Created
      409:
        description: Email already registered
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = user_register_schema.load(payload)

    user = session_service().register(data["name"], data["email"], data["password"])
    return jsonify(
        {
            "message": "Registration successful, you can now log in",
            "data": user_out_schema.dump(user),
        }
    ), 201


@bp.post("/login")
def login():
    """
    Login: return accessToken and refreshToken
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens, user and access token expiry)
      400:
        description: Invalid email or password
    """
    payload = request.get_json(silent=True) or {}
    data = user_login_schema.load(payload)

    tokens = session_service().authenticate(data["email"], data["password"])
    return jsonify(session_tokens_schema.dump(tokens)), 200


@bp.post("/refresh")
def refresh():
    """
    Use a refresh token to obtain new access and refresh tokens (rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refreshToken: { type: string }
    responses:
      200:
        description: OK (the presented refresh token is no longer valid)
      400:
        description: Invalid refresh token
    """
    payload = request.get_json(silent=True) or {}
    data = refresh_request_schema.load(payload)

    tokens = session_service().refresh(data["refresh_token"])
    return jsonify(session_tokens_schema.dump(tokens)), 200


@bp.post("/logout")
def logout():
    """
    Logout: revoke the refresh token of the bearer
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refreshToken: { type: string }
      -  in: query
         name: refreshToken
         type: string
         required: false
    responses:
      200:
        description: Always, even for missing or expired credentials
    """
    payload = request.get_json(silent=True)
    refresh_token = payload.get("refreshToken") if isinstance(payload, dict) else None
    refresh_token = refresh_token or request.args.get("refreshToken")
    if not isinstance(refresh_token, str):
        refresh_token = None

    session_service().revoke(bearer_token(), refresh_token)
    return jsonify({"message": "Logged out successfully"}), 200


@bp.get("/validate")
def validate():
    """
    Validate a bearer access token (and optionally a refresh token)
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      -  in: query
         name: refreshToken
         type: string
         required: false
    responses:
      200:
        description: Token is valid
      401:
        description: Token invalid, expired, or refresh token revoked
    """
    token = bearer_token()
    if not token:
        abort(401, description="Missing or invalid Authorization header")

    user_id = session_service().validate(token, request.args.get("refreshToken"))
    return jsonify({"valid": True, "userId": user_id}), 200
