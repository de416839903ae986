import os
import tempfile

# Banco em memória e pasta de upload temporária antes de importar a aplicação
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="painel_upload_")
os.environ["FAKE_EMAIL_DOMAIN"] = "example.com"
os.environ["ADMIN_LOGIN"] = ""

import pytest
from fastapi.testclient import TestClient

import models  # noqa: F401
from database import Base, SessionLocal, engine
from main import app
from models import Candidato, Partido, Perfil


CSV_SECOES = (
    "Zona,Seção,Seções Agregadas,Votos,Local de Votação,Endereço do Local de Votação,Bairro\n"
    "1,10,,50,Escola A,Rua 1,Centro\n"
    "1,11,12;13,30,Escola A,Rua 1,Centro\n"
    "2,20,,x,Escola B,Rua 2,Aldeota\n"
)

CSV_BAIRROS = (
    "Bairro,Votos,% Votos Obtidos\n"
    'Centro,80,"1,5%"\n'
    'Aldeota,40,"0,75"\n'
    "Meireles,120,2.25\n"
)


@pytest.fixture(autouse=True)
def banco():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(banco):
    sessao = SessionLocal()
    try:
        yield sessao
    finally:
        sessao.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def novo_perfil(db):
    """Cria um perfil direto no banco, sem passar pela API."""
    def _novo(login, role="admin"):
        perfil = Perfil(login=login, email=f"{login}@example.com", nome=login.title(), role=role, ativo=True)
        db.add(perfil)
        db.commit()
        db.refresh(perfil)
        return perfil
    return _novo


@pytest.fixture
def admin(novo_perfil):
    return novo_perfil("admin")


@pytest.fixture
def h_admin(admin):
    return {"X-Usuario-Id": str(admin.id)}


@pytest.fixture
def partido(db):
    p = Partido(nome="Partido Exemplo", sigla="PEX", numero=45, ativo=True)
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@pytest.fixture
def candidato(db, partido):
    c = Candidato(nome="Maria Souza", numero=4510, partido_id=partido.id, ativo=True, usa_regionais=True)
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


@pytest.fixture
def csv_secoes():
    return CSV_SECOES.encode("utf-8-sig")


@pytest.fixture
def csv_bairros():
    return CSV_BAIRROS.encode("utf-8-sig")


@pytest.fixture
def enviar(client, h_admin):
    """Envia um CSV pelo endpoint de upload."""
    def _enviar(candidato_id, ano, tipo, conteudo, cidade="Fortaleza", nome=None):
        return client.post(
            f"/candidatos/{candidato_id}/upload",
            params={"ano": ano, "tipo": tipo, "cidade": cidade},
            files={"file": (nome or f"{tipo}.csv", conteudo, "text/csv")},
            headers=h_admin,
        )
    return _enviar
