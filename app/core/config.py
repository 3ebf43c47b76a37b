from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///estudio.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    OPERACIONES_PAGE_SIZE = int(os.getenv("OPERACIONES_PAGE_SIZE", "20"))
    OPERACIONES_MAX_PAGE_SIZE = int(os.getenv("OPERACIONES_MAX_PAGE_SIZE", "100"))
    REPORTES_MIN_ANIO = int(os.getenv("REPORTES_MIN_ANIO", "2020"))
