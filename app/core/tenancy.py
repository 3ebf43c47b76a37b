from __future__ import annotations

from flask import abort, g
from flask_login import current_user


def load_tenant_context() -> None:
    g.owner = None
    if not current_user.is_authenticated:
        return
    if not current_user.activo:
        abort(403)
    g.owner = current_user._get_current_object()


def owner_id() -> int:
    return g.owner.id
