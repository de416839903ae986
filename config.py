# config.py
import logging
import os

from dotenv import load_dotenv

load_dotenv()


def _lista(valor: str):
    return [v.strip() for v in valor.split(",") if v.strip()]


# Diretório onde ficam os CSVs enviados
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./dados_upload")

# Domínio do e-mail técnico gerado a partir do login
FAKE_EMAIL_DOMAIN = os.getenv("FAKE_EMAIL_DOMAIN", "example.com")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = _lista(os.getenv("CORS_ORIGINS", "*"))

TOP_N_PADRAO = int(os.getenv("TOP_N_PADRAO", "10"))

# Admin criado no startup quando ainda não existe nenhum
ADMIN_LOGIN = os.getenv("ADMIN_LOGIN", "").strip()
ADMIN_NOME = os.getenv("ADMIN_NOME", "Administrador")


def configurar_logging():
    """Configura o logging da aplicação (idempotente)."""
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
