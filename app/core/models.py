from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from app.core.extensions import db
from app.core.utils import money


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TipoOperacion(str, Enum):
    DECLARACION_IMPUESTOS = "DECLARACION_IMPUESTOS"
    CONTABILIDAD_MENSUAL = "CONTABILIDAD_MENSUAL"
    ASESORIA = "ASESORIA"
    LIQUIDACION_SUELDOS = "LIQUIDACION_SUELDOS"
    OTRO = "OTRO"


class EstadoOperacion(str, Enum):
    PENDIENTE = "PENDIENTE"
    EN_PROCESO = "EN_PROCESO"
    COMPLETADO = "COMPLETADO"


class User(UserMixin, db.Model):
    # Owner (tenant): every client and operation hangs from one user
    __tablename__ = "usuario"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    nombre: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    foto_perfil: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    rol: Mapped[str] = mapped_column(db.String(30), nullable=False, default="contador")
    activo: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    clientes = relationship("Cliente", back_populates="usuario")

    @property
    def is_active(self) -> bool:
        return bool(self.activo)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "email": self.email,
            "nombre": self.nombre,
            "fotoPerfil": self.foto_perfil,
            "rol": self.rol,
            "activo": self.activo,
        }


class Cliente(db.Model):
    __tablename__ = "cliente"
    __table_args__ = (
        CheckConstraint(
            "monto_mensualidad IS NULL OR monto_mensualidad >= 0",
            name="ck_cliente_monto_mensualidad",
        ),
        Index("ix_cliente_user_activo_fijo", "user_id", "activo", "es_cliente_fijo"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False, index=True)
    nombre: Mapped[str] = mapped_column(db.String(200), nullable=False)
    cuit: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    contacto: Mapped[str] = mapped_column(db.String(200), nullable=False, default="")
    fecha_alta: Mapped[date] = mapped_column(nullable=False, default=date.today)
    activo: Mapped[bool] = mapped_column(nullable=False, default=True)
    es_cliente_fijo: Mapped[bool] = mapped_column(nullable=False, default=False)
    monto_mensualidad: Mapped[Decimal | None] = mapped_column(db.Numeric(10, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    usuario = relationship("User", back_populates="clientes")
    operaciones = relationship("Operacion", back_populates="cliente")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "nombre": self.nombre,
            "cuit": self.cuit,
            "contacto": self.contacto,
            "fechaAlta": self.fecha_alta.isoformat() if self.fecha_alta else None,
            "activo": self.activo,
            "esClienteFijo": self.es_cliente_fijo,
            "montoMensualidad": (
                f"{self.monto_mensualidad:.2f}" if self.monto_mensualidad is not None else None
            ),
        }


class Operacion(db.Model):
    __tablename__ = "operacion"
    __table_args__ = (
        CheckConstraint("monto_total >= 0", name="ck_operacion_monto_total"),
        CheckConstraint(
            "monto_pagado >= 0 AND monto_pagado <= monto_total",
            name="ck_operacion_monto_pagado",
        ),
        CheckConstraint(
            "fecha_limite IS NULL OR fecha_limite >= fecha_inicio",
            name="ck_operacion_fechas",
        ),
        Index("ix_operacion_user_estado_limite", "user_id", "estado", "fecha_limite"),
        Index("ix_operacion_user_completado", "user_id", "estado", "fecha_completado"),
        Index("ix_operacion_user_mensualidad_inicio", "user_id", "es_mensualidad", "fecha_inicio"),
        # One recurring operation per client and billing day
        Index(
            "uq_operacion_mensualidad_cliente_dia",
            "cliente_id",
            "fecha_inicio",
            unique=True,
            sqlite_where=text("es_mensualidad = 1"),
            postgresql_where=text("es_mensualidad"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False, index=True)
    cliente_id: Mapped[int] = mapped_column(ForeignKey("cliente.id"), nullable=False, index=True)
    tipo: Mapped[TipoOperacion] = mapped_column(
        SAEnum(TipoOperacion, name="tipo_operacion"),
        nullable=False,
    )
    descripcion: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    ingresos_brutos: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    honorarios: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    monto_total: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    monto_pagado: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    es_mensualidad: Mapped[bool] = mapped_column(nullable=False, default=False)
    estado: Mapped[EstadoOperacion] = mapped_column(
        SAEnum(EstadoOperacion, name="estado_operacion"),
        nullable=False,
        default=EstadoOperacion.PENDIENTE,
    )
    fecha_inicio: Mapped[date] = mapped_column(nullable=False)
    fecha_limite: Mapped[date | None] = mapped_column(nullable=True)
    fecha_completado: Mapped[date | None] = mapped_column(nullable=True)
    notas: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    cliente = relationship("Cliente", back_populates="operaciones")

    @validates("honorarios")
    def validate_honorarios(self, _key, value):
        # monto_total always mirrors the fee
        amount = money(value)
        if amount < 0:
            raise ValueError("Los honorarios no pueden ser negativos")
        self.monto_total = amount
        return amount

    @validates("monto_pagado", "ingresos_brutos")
    def validate_amounts(self, key, value):
        amount = money(value)
        if amount < 0:
            raise ValueError(f"{key} no puede ser negativo")
        return amount

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "tipo": self.tipo.value,
            "descripcion": self.descripcion,
            "ingresosBrutos": f"{money(self.ingresos_brutos):.2f}",
            "honorarios": f"{money(self.honorarios):.2f}",
            "montoTotal": f"{money(self.monto_total):.2f}",
            "montoPagado": f"{money(self.monto_pagado):.2f}",
            "esMensualidad": self.es_mensualidad,
            "estado": self.estado.value,
            "fechaInicio": self.fecha_inicio.isoformat() if self.fecha_inicio else None,
            "fechaLimite": self.fecha_limite.isoformat() if self.fecha_limite else None,
            "fechaCompletado": self.fecha_completado.isoformat() if self.fecha_completado else None,
            "notas": self.notas,
            "clienteId": self.cliente_id,
            "cliente": {"id": self.cliente.id, "nombre": self.cliente.nombre} if self.cliente else None,
        }


def seed_demo_data(session) -> None:
    owner = User(
        email="contador@estudio.local",
        nombre="Contador Demo",
        password_hash=generate_password_hash("contador123"),
    )
    session.add(owner)
    session.flush()

    session.add_all(
        [
            Cliente(
                user_id=owner.id,
                nombre="Panaderia La Espiga SRL",
                cuit="30-71234567-1",
                contacto="ventas@laespiga.com.ar",
                fecha_alta=date(2024, 3, 1),
                es_cliente_fijo=True,
                monto_mensualidad=Decimal("45000.00"),
            ),
            Cliente(
                user_id=owner.id,
                nombre="Ferreteria Norte SA",
                cuit="30-70987654-2",
                contacto="admin@ferrenorte.com.ar",
                fecha_alta=date(2024, 6, 15),
                es_cliente_fijo=True,
                monto_mensualidad=Decimal("60000.00"),
            ),
            Cliente(
                user_id=owner.id,
                nombre="Lucia Fernandez",
                cuit="27-28456789-3",
                contacto="lucia.fernandez@example.com",
                fecha_alta=date(2025, 1, 10),
            ),
        ]
    )
    session.commit()
