from __future__ import annotations

import logging
from typing import Tuple

from flask import Blueprint, request, jsonify, g, abort
from sqlalchemy import or_

from models import storage
from models.user import STAFF_ROLES, User
from models.schemas.user import RoleUpdateSchema, UserOutSchema
from utils.decorators import roles_required

MAX_LIMIT = 100
SORTABLE = ("created_at", "updated_at", "name", "email", "role")

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__)

role_update_schema = RoleUpdateSchema()
user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


@bp.get("/users")
@roles_required("admin")
def list_users():
    """
    List users - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: query
        name: role
        type: string
        description: exact role, "all" for every role
      - in: query
        name: staff_only
        type: boolean
        description: only admin, moderator and employee accounts
      - in: query
        name: search
        type: string
        description: case-insensitive match on name, email or phone
      - in: query
        name: sort
        type: string
        enum: [created_at, updated_at, name, email, role]
      - in: query
        name: direction
        type: string
        enum: [asc, desc]
      - in: query
        name: page
        type: integer
      - in: query
        name: limit
        type: integer
    responses:
      200: { description: OK }
      400: { description: Unknown sort field or direction }
      403: { description: Forbidden }
    """
    session = storage.get_session()
    page, limit = parse_pagination()

    sort = request.args.get("sort", "created_at")
    direction = request.args.get("direction", "desc").lower()
    if sort not in SORTABLE or direction not in ("asc", "desc"):
        abort(400, description=f"sort must be one of {', '.join(SORTABLE)} and direction asc or desc")

    query = session.query(User)
    role = request.args.get("role")
    if request.args.get("staff_only", "").lower() == "true":
        query = query.filter(User.role.in_(STAFF_ROLES))
    elif role and role != "all":
        query = query.filter(User.role == role)

    search = request.args.get("search", "").strip()
    if search:
        query = query.filter(or_(
            User.name.icontains(search, autoescape=True),
            User.email.icontains(search, autoescape=True),
            User.phone.icontains(search, autoescape=True),
        ))

    column = getattr(User, sort)
    total = query.count()
    rows = query.order_by(column.asc() if direction == "asc" else column.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total}
        }
    )


@bp.patch("/users/<user_id>/role")
@roles_required("admin")
def set_role(user_id: str):
    """
    Admin-only: change a user's role.
    Body: { "role": "customer" | "admin" | "moderator" | "employee" }
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
      -  in: body
         name: body
         schema:
           type: object
           properties:
             role: { type: string }
    responses:
      200: { description: OK }
      404: { description: Not found }
      422: { description: Unknown role }
    """
    data = role_update_schema.load(request.get_json(silent=True) or {})

    user = storage.get(User, user_id)
    if not user:
        abort(404)
    user.role = data["role"]
    user.save()
    logger.info("User %s role set to %s by %s", user.id, user.role, g.current_user.id)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.delete("/users/<user_id>")
@roles_required("admin")
def delete_user(user_id: str):
    """
    Admin-only: delete a user together with its refresh tokens
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
    responses:
      204: { description: Deleted }
      404: { description: Not found }
      409: { description: Admins cannot delete themselves }
    """
    user = storage.get(User, user_id)
    if not user:
        abort(404)
    if user.id == g.current_user.id:
        abort(409, description="Admins cannot delete their own account")
    user.delete()
    storage.save()
    logger.info("User %s deleted by %s", user_id, g.current_user.id)
    return ("", 204)
