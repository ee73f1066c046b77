import os
from typing import Annotated

from fastapi import Header, HTTPException

from access import Principal


def _admin_token() -> str:
    # read per request so deployments (and tests) can rotate it
    return os.getenv("ADMIN_TOKEN", "")


def current_user(
    x_user_id: Annotated[str | None, Header(alias="x-user-id")] = None,
    x_admin_token: Annotated[str | None, Header(alias="x-admin-token")] = None,
    x_user_category: Annotated[str | None, Header(alias="x-user-category")] = None,
) -> Principal:
    """
    Identity as forwarded by the gateway:
      - X-User-Id names the caller (required),
      - X-Admin-Token matching ADMIN_TOKEN marks the caller as administrator, and
      - X-User-Category carries the candidate category for cutoff evaluation.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized.")

    admin_token = _admin_token()
    is_admin = bool(admin_token) and x_admin_token == admin_token
    return Principal(user_id=x_user_id, is_admin=is_admin, category=x_user_category or None)


def require_admin(
    x_user_id: Annotated[str | None, Header(alias="x-user-id")] = None,
    x_admin_token: Annotated[str | None, Header(alias="x-admin-token")] = None,
) -> Principal:
    """
    Strict admin-only guard. Requires the X-Admin-Token header to match ADMIN_TOKEN.
    """
    admin_token = _admin_token()
    if not admin_token:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured on server.")
    if x_admin_token != admin_token:
        raise HTTPException(status_code=401, detail="Unauthorized.")
    return Principal(user_id=x_user_id or "admin", is_admin=True)
