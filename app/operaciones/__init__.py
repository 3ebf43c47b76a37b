from flask import Blueprint

operaciones_bp = Blueprint("operaciones", __name__, url_prefix="/api/operaciones")

from app.operaciones import routes  # noqa: E402,F401
