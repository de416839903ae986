# database.py
import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

load_dotenv()

Base = declarative_base()


def _build_database_url():
    """
    Retorna a URL do banco.
    Aceita múltiplas variáveis:
    - DATABASE_URL
    - POSTGRES_URL
    - POSTGRESQL_URL
    - Qualquer variável que contenha 'postgres'
    """
    env_keys = [
        "DATABASE_URL",
        "POSTGRES_URL",
        "POSTGRESQL_URL",
    ]

    for key in env_keys:
        if key in os.environ and os.environ[key].strip():
            return os.environ[key].strip()

    for key, value in os.environ.items():
        if "postgres" in key.lower() and value.strip():
            return value.strip()

    raise RuntimeError(
        "Nenhuma URL de banco encontrada. Defina DATABASE_URL."
    )


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # banco em memória precisa de uma única conexão compartilhada
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {"pool_pre_ping": True}


DATABASE_URL = _build_database_url()

# Postgres hospedado exige SSL; adicionamos se faltar
if DATABASE_URL.startswith("postgres") and "sslmode" not in DATABASE_URL:
    sep = "&" if "?" in DATABASE_URL else "?"
    DATABASE_URL += f"{sep}sslmode=require"

engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Cria tabelas automaticamente (somente se não existirem)."""
    import models  # noqa: F401  registra as tabelas no metadata
    Base.metadata.create_all(bind=engine)
