from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from app.core.errors import ConflictError, ValidationError
from app.core.extensions import db
from app.core.models import User
from app.core.transactions import unit_of_work

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

MIN_PASSWORD_LENGTH = 6


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@auth_bp.post("/register")
def register():
    payload = _payload()
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    nombre = str(payload.get("nombre") or "").strip()
    if not email or "@" not in email:
        raise ValidationError("Debe ser un email valido")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("La contrasena debe tener al menos 6 caracteres")
    if not nombre:
        raise ValidationError("El nombre es obligatorio")
    if User.query.filter_by(email=email).first():
        raise ConflictError("El email ya esta registrado")

    user = User(email=email, nombre=nombre, password_hash=generate_password_hash(password))
    with unit_of_work("registrar_usuario", email=email):
        db.session.add(user)
    login_user(user)
    return jsonify({"user": user.to_dict()}), 201


@auth_bp.post("/login")
def login():
    payload = _payload()
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    user = User.query.filter_by(email=email, activo=True).first()
    if not user or not check_password_hash(user.password_hash, password):
        return jsonify({"error": "unauthorized", "message": "Credenciales invalidas"}), 401
    login_user(user)
    return jsonify({"user": user.to_dict()})


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Sesion cerrada"})


@auth_bp.get("/profile")
@login_required
def profile():
    return jsonify(current_user.to_dict())


@auth_bp.patch("/profile")
@login_required
def update_profile():
    payload = _payload()
    if "nombre" in payload:
        nombre = str(payload.get("nombre") or "").strip()
        if len(nombre) < 2:
            raise ValidationError("El nombre debe tener al menos 2 caracteres")
        current_user.nombre = nombre
    if "fotoPerfil" in payload:
        current_user.foto_perfil = payload.get("fotoPerfil") or None
    db.session.commit()
    return jsonify(current_user.to_dict())
