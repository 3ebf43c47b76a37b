from __future__ import annotations

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app import create_app
from app.core.config import Config
from app.core.extensions import db
from app.core.models import (
    Cliente,
    EstadoOperacion,
    Operacion,
    TipoOperacion,
    User,
    seed_demo_data,
)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def owner_id(app):
    return User.query.filter_by(email="contador@estudio.local").first().id


@pytest.fixture
def login_owner(client):
    def _login():
        return client.post(
            "/auth/login",
            json={"email": "contador@estudio.local", "password": "contador123"},
        )

    return _login


@pytest.fixture
def second_owner(app):
    user = User(
        email="otra@estudio.local",
        nombre="Otra Contadora",
        password_hash=generate_password_hash("otra123"),
    )
    db.session.add(user)
    db.session.flush()
    cliente = Cliente(
        user_id=user.id,
        nombre="Cliente Ajeno SA",
        cuit="30-99999999-9",
        contacto="ajeno@example.com",
        fecha_alta=date(2024, 1, 1),
    )
    db.session.add(cliente)
    db.session.flush()
    operacion = Operacion(
        user_id=user.id,
        cliente_id=cliente.id,
        tipo=TipoOperacion.ASESORIA,
        honorarios=Decimal("5000.00"),
        monto_pagado=Decimal("0.00"),
        estado=EstadoOperacion.PENDIENTE,
        fecha_inicio=date(2025, 1, 1),
    )
    db.session.add(operacion)
    db.session.commit()
    return {"user_id": user.id, "cliente_id": cliente.id, "operacion_id": operacion.id}


@pytest.fixture
def make_operacion(app, owner_id):
    def _make(
        honorarios: str = "10000.00",
        monto_pagado: str = "0.00",
        estado: EstadoOperacion = EstadoOperacion.PENDIENTE,
        fecha_inicio: date = date(2025, 1, 1),
        fecha_limite: date | None = date(2025, 1, 31),
        fecha_completado: date | None = None,
        cliente_id: int | None = None,
    ) -> int:
        if cliente_id is None:
            cliente_id = Cliente.query.filter_by(user_id=owner_id).order_by(Cliente.id.asc()).first().id
        operacion = Operacion(
            user_id=owner_id,
            cliente_id=cliente_id,
            tipo=TipoOperacion.DECLARACION_IMPUESTOS,
            descripcion="Declaracion jurada IVA",
            honorarios=Decimal(honorarios),
            monto_pagado=Decimal(monto_pagado),
            estado=estado,
            fecha_inicio=fecha_inicio,
            fecha_limite=fecha_limite,
            fecha_completado=fecha_completado,
        )
        db.session.add(operacion)
        db.session.commit()
        return operacion.id

    return _make
