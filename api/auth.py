"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- POST /auth/logout-all
- GET  /auth/me
- GET  /auth/role
- PUT  /auth/profile

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens (JSON body) and single-use refresh tokens
  (HTTP-only cookie), both JWTs signed with the configured secret
- Stores one refresh record per issued token so rotation can consume it
  exactly once and logout can drop them all
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort, current_app

from models import storage
from models.user import User
from models.schemas.user import ProfileUpdateSchema, UserCreateSchema, UserOutSchema, UserLoginSchema
from utils.decorators import jwt_required
from utils.exceptions import StoreWriteFailed
from utils.security import hash_password, verify_password
from utils.session_tokens import TokenPair, get_session_tokens, logout as logout_user

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/auth")

user_create_schema = UserCreateSchema()
user_out_schema = UserOutSchema()
user_login_schema = UserLoginSchema()
profile_update_schema = ProfileUpdateSchema()


def _set_refresh_cookie(response, pair: TokenPair):
    cfg = current_app.config
    response.set_cookie(
        cfg["REFRESH_COOKIE_NAME"],
        pair.refresh_token,
        max_age=int(cfg["REFRESH_TOKEN_EXPIRES"].total_seconds()),
        path=cfg["REFRESH_COOKIE_PATH"],
        secure=cfg["REFRESH_COOKIE_SECURE"],
        httponly=True,
        samesite=cfg["REFRESH_COOKIE_SAMESITE"],
    )
    return response


def _clear_refresh_cookie(response):
    cfg = current_app.config
    response.delete_cookie(
        cfg["REFRESH_COOKIE_NAME"],
        path=cfg["REFRESH_COOKIE_PATH"],
        secure=cfg["REFRESH_COOKIE_SECURE"],
        httponly=True,
        samesite=cfg["REFRESH_COOKIE_SAMESITE"],
    )
    return response


def _token_body(pair: TokenPair) -> dict:
    return {
        "access_token": pair.access_token,
        "token_type": "bearer",
        "expires_in": pair.access_expires_in,
    }


@bp.post("/register")
def register():
    """
    register a new customer and start a session.
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
            email: { type: string }
            password: { type: string }
            name: { type: string }
            phone: { type: string }
    responses:
      201:
        description: Created (access token in body, refresh token cookie set)
      409:
        description: Email already registered
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = user_create_schema.load(payload)

    session = storage.get_session()
    if session.query(User).filter(User.email == data["email"]).first():
        abort(409, description="Email already registered")

    user = User(
        email=data["email"],
        password_hash=hash_password(data["password"]),
        name=data.get("name"),
        phone=data.get("phone"),
        role="customer",
    )
    storage.new(user)
    storage.save()

    tokens = get_session_tokens()
    pair = tokens.issuer.issue(tokens.store(), user)
    logger.info("Registered user %s", user.id)

    response = jsonify({"data": user_out_schema.dump(user), **_token_body(pair)})
    response.status_code = 201
    return _set_refresh_cookie(response, pair)


@bp.post("/login")
def login():
    """
    Login: return access_token and set the refresh token cookie
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
        description: OK (returns tokens)
      401:
        description: Unauthorized
    """
    payload = request.get_json(silent=True) or {}
    data = user_login_schema.load(payload)

    session = storage.get_session()
    user: User = session.query(User).filter(User.email == data["email"]).first()
    if not user or not verify_password(data["password"], user.password_hash):
        abort(401, description="Invalid credentials")

    tokens = get_session_tokens()
    pair = tokens.issuer.issue(tokens.store(), user)

    response = jsonify({"data": user_out_schema.dump(user), **_token_body(pair)})
    return _set_refresh_cookie(response, pair)


@bp.post("/refresh")
def refresh():
    """
    Rotate the refresh token cookie and return a new access token.
    The refresh token is only ever read from the cookie, never from the body.
    ---
    tags:
      - Auth
    responses:
      200:
        description: OK (new access token, new refresh cookie)
      401:
        description: Missing, invalid, expired or already used refresh token
      500:
        description: Token store unavailable, retry
    """
    presented = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if not presented:
        abort(401, description="Not authorized")

    tokens = get_session_tokens()
    _, pair = tokens.refresh_handler.rotate(tokens.store(), presented)

    return _set_refresh_cookie(jsonify(_token_body(pair)), pair)


@bp.post("/logout")
@jwt_required()
def logout():
    """
    logout: drops every refresh token of the caller and clears the cookie
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out
      401:
        description: Unauthorized
    """
    return _logout("Logged out successfully")


@bp.post("/logout-all")
@jwt_required()
def logout_all():
    """
    logout from all devices
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out everywhere
    """
    return _logout("Logged out from all devices")


def _logout(message: str):
    user = g.current_user
    try:
        removed = logout_user(get_session_tokens().store(), user.id)
        logger.info("User %s logged out, %d refresh token(s) removed", user.id, removed)
    except StoreWriteFailed:
        # the cleared cookie is enough; leftovers expire or get swept by the cleanup job
        logger.warning("Could not clear refresh tokens of user %s on logout", user.id)
    return _clear_refresh_cookie(jsonify({"success": True, "message": message}))


@bp.get("/me")
@jwt_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify({"data": user_out_schema.dump(g.current_user)}), 200


@bp.get("/role")
@jwt_required()
def role():
    """
    Role of the current user (the dashboard uses it to pick a layout)
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    user = g.current_user
    return jsonify({"message": "User authenticated", "role": user.role, "data": user_out_schema.dump(user)}), 200


@bp.put("/profile")
@jwt_required()
def update_profile():
    """
    Update the current user's profile.
    Empty name/phone/address are ignored; passport_number may be cleared.
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
             name: { type: string }
             phone: { type: string }
             address: { type: string }
             passport_number: { type: string }
    responses:
      200:
        description: Updated
      401:
        description: Unauthorized
      422:
        description: Unknown or invalid field
    """
    data = profile_update_schema.load(request.get_json(silent=True) or {})

    user = g.current_user
    for field in ("name", "phone", "address"):
        if data.get(field):
            setattr(user, field, data[field])
    if "passport_number" in data:
        user.passport_number = data["passport_number"] or None
    user.save()

    return jsonify({"success": True, "data": user_out_schema.dump(user)}), 200
