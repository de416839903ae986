# cadastros.py
import logging
import re
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

import config
from models import (
    AcessoCandidato,
    AcessoPartido,
    Candidato,
    CandidatoBairro,
    Partido,
    Perfil,
)
from schemas import CandidatoIn, PartidoIn, UsuarioIn, UsuarioUpdate

logger = logging.getLogger(__name__)

LOGIN_RE = re.compile(r"^[a-z0-9._-]{3,32}$", re.IGNORECASE)


# =============================
# PARTIDOS
# =============================

def listar_partidos(db: Session, apenas_ativos: bool = False) -> List[Partido]:
    q = db.query(Partido)
    if apenas_ativos:
        q = q.filter(Partido.ativo.is_(True))
    return q.order_by(Partido.nome).all()


def buscar_partido(db: Session, partido_id: int) -> Partido:
    partido = db.query(Partido).filter(Partido.id == partido_id).first()
    if not partido:
        raise HTTPException(404, "Partido não encontrado")
    return partido


def salvar_partido(db: Session, dados: PartidoIn, partido_id: Optional[int] = None) -> Partido:
    partido = buscar_partido(db, partido_id) if partido_id else Partido(ativo=True)
    partido.nome = dados.nome.strip()
    partido.sigla = dados.sigla.strip().upper()
    partido.numero = dados.numero
    try:
        db.add(partido)
        db.commit()
        db.refresh(partido)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Erro ao salvar partido: %s", str(e))
        raise HTTPException(500, "Erro interno ao salvar partido") from e
    logger.info("Partido salvo: %s (%s)", partido.nome, partido.sigla)
    return partido


def alternar_partido(db: Session, partido_id: int) -> Partido:
    partido = buscar_partido(db, partido_id)
    partido.ativo = not partido.ativo
    db.commit()
    db.refresh(partido)
    return partido


# =============================
# CANDIDATOS
# =============================

def _q_candidatos(db: Session):
    return db.query(Candidato).options(
        joinedload(Candidato.partido), selectinload(Candidato.anos)
    )


def listar_candidatos(db: Session, apenas_ativos: bool = False, partido_id: Optional[int] = None) -> List[Candidato]:
    q = _q_candidatos(db)
    if apenas_ativos:
        q = q.filter(Candidato.ativo.is_(True))
    if partido_id is not None:
        q = q.filter(Candidato.partido_id == partido_id)
    return q.order_by(Candidato.nome).all()


def buscar_candidato(db: Session, candidato_id: int) -> Candidato:
    candidato = _q_candidatos(db).filter(Candidato.id == candidato_id).first()
    if not candidato:
        raise HTTPException(404, "Candidato não encontrado")
    return candidato


def salvar_candidato(db: Session, dados: CandidatoIn, candidato_id: Optional[int] = None) -> Candidato:
    buscar_partido(db, dados.partido_id)
    candidato = buscar_candidato(db, candidato_id) if candidato_id else Candidato(ativo=True)
    candidato.nome = dados.nome.strip()
    candidato.partido_id = dados.partido_id
    candidato.numero = dados.numero
    candidato.foto_url = dados.foto_url
    candidato.usa_regionais = dados.usa_regionais
    candidato.auth_user_id = dados.auth_user_id
    try:
        db.add(candidato)
        db.commit()
        db.refresh(candidato)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Erro ao salvar candidato: %s", str(e))
        raise HTTPException(500, "Erro interno ao salvar candidato") from e
    logger.info("Candidato salvo: %s (id=%s)", candidato.nome, candidato.id)
    return candidato


def alternar_candidato(db: Session, candidato_id: int) -> Candidato:
    candidato = buscar_candidato(db, candidato_id)
    candidato.ativo = not candidato.ativo
    db.commit()
    db.refresh(candidato)
    return candidato


def totais_por_candidato(db: Session, candidatos: List[Candidato]) -> List[dict]:
    """Votos totais (soma de candidate_bairros) de cada candidato."""
    ids = [c.id for c in candidatos]
    totais = {}
    if ids:
        totais = dict(
            db.query(CandidatoBairro.candidato_id, func.sum(CandidatoBairro.votos))
            .filter(CandidatoBairro.candidato_id.in_(ids))
            .group_by(CandidatoBairro.candidato_id)
            .all()
        )
    return [
        {
            "id": c.id,
            "nome": c.nome,
            "numero": c.numero,
            "foto_url": c.foto_url,
            "sg_partido": c.partido.sigla if c.partido else None,
            "total_votos": int(totais.get(c.id) or 0),
        }
        for c in candidatos
    ]


# =============================
# USUÁRIOS
# =============================

def login_para_email(login: str, dominio: Optional[str] = None) -> str:
    """Login -> e-mail técnico usado pelo provedor de autenticação."""
    normalizado = re.sub(r"\s+", "", str(login or "").strip().lower())
    return f"{normalizado}@{dominio or config.FAKE_EMAIL_DOMAIN}"


def validar_login(login: str):
    if not LOGIN_RE.match(login or ""):
        raise HTTPException(
            400, "Login deve ter de 3 a 32 caracteres (letras, números, ponto, hífen ou _)."
        )


def listar_usuarios(db: Session) -> List[Perfil]:
    return db.query(Perfil).order_by(Perfil.criado_em.desc(), Perfil.id.desc()).all()


def buscar_usuario(db: Session, perfil_id: int) -> Perfil:
    perfil = db.query(Perfil).filter(Perfil.id == perfil_id).first()
    if not perfil:
        raise HTTPException(404, "Usuário não encontrado")
    return perfil


def criar_usuario(db: Session, dados: UsuarioIn) -> Perfil:
    """
    Cria o perfil e o acesso correspondente à função:
    candidato -> user_candidate_access, presidente -> user_party_access.
    """
    login = (dados.login or "").strip()
    validar_login(login)

    if dados.role == "candidato" and not dados.candidato_id:
        raise HTTPException(400, "Selecione o candidato para este usuário.")
    if dados.role == "presidente" and not dados.partido_id:
        raise HTTPException(400, "Selecione o partido para o presidente.")

    if db.query(Perfil).filter(func.lower(Perfil.login) == login.lower()).first():
        raise HTTPException(409, f"Login '{login}' já está em uso")

    if dados.role == "candidato":
        buscar_candidato(db, dados.candidato_id)
    if dados.role == "presidente":
        buscar_partido(db, dados.partido_id)

    perfil = Perfil(
        login=login.lower(),
        email=login_para_email(login),
        nome=dados.nome.strip(),
        role=dados.role,
        ativo=True,
        auth_user_id=dados.auth_user_id,
    )
    try:
        db.add(perfil)
        db.flush()
        if dados.role == "candidato":
            db.add(AcessoCandidato(perfil_id=perfil.id, candidato_id=dados.candidato_id))
        elif dados.role == "presidente":
            db.add(AcessoPartido(perfil_id=perfil.id, partido_id=dados.partido_id))
        db.commit()
        db.refresh(perfil)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Erro ao criar usuário %s: %s", login, str(e))
        raise HTTPException(500, "Erro interno ao criar usuário") from e

    logger.info("Usuário criado: %s (%s)", perfil.login, perfil.role)
    return perfil


def garantir_admin_inicial(db: Session) -> Optional[Perfil]:
    """Cria o admin de ADMIN_LOGIN se o banco ainda não tiver nenhum admin."""
    if not config.ADMIN_LOGIN:
        return None
    if db.query(Perfil).filter(Perfil.role == "admin").first():
        return None
    logger.info("Nenhum admin encontrado; criando '%s'", config.ADMIN_LOGIN)
    return criar_usuario(
        db, UsuarioIn(login=config.ADMIN_LOGIN, nome=config.ADMIN_NOME, role="admin")
    )


def atualizar_usuario(db: Session, perfil_id: int, dados: UsuarioUpdate) -> Perfil:
    """Atualiza nome e função (login não é editável)."""
    perfil = buscar_usuario(db, perfil_id)
    for campo, valor in dados.model_dump(exclude_unset=True).items():
        if valor is not None:
            setattr(perfil, campo, valor.strip() if campo == "nome" else valor)
    db.commit()
    db.refresh(perfil)
    return perfil


def alternar_usuario(db: Session, perfil_id: int) -> Perfil:
    perfil = buscar_usuario(db, perfil_id)
    perfil.ativo = not perfil.ativo
    db.commit()
    db.refresh(perfil)
    return perfil


# =============================
# ACESSOS
# =============================

def partido_do_presidente(db: Session, perfil: Perfil) -> Optional[Partido]:
    acesso = db.query(AcessoPartido).filter(AcessoPartido.perfil_id == perfil.id).first()
    if not acesso:
        return None
    return db.query(Partido).filter(Partido.id == acesso.partido_id).first()


def candidatos_acessiveis(db: Session, perfil: Perfil) -> List[Candidato]:
    """Candidatos cujos painéis o usuário pode ver."""
    if perfil.role == "admin":
        return listar_candidatos(db)
    if perfil.role == "presidente":
        partido = partido_do_presidente(db, perfil)
        if not partido:
            return []
        return listar_candidatos(db, apenas_ativos=True, partido_id=partido.id)

    ids = [
        cid for (cid,) in db.query(AcessoCandidato.candidato_id)
        .filter(AcessoCandidato.perfil_id == perfil.id)
    ]
    if not ids:
        return []
    return _q_candidatos(db).filter(Candidato.id.in_(ids)).order_by(Candidato.nome).all()


def verificar_acesso_candidato(db: Session, perfil: Perfil, candidato_id: int) -> Candidato:
    candidato = buscar_candidato(db, candidato_id)
    if perfil.role == "admin":
        return candidato
    if candidato_id not in {c.id for c in candidatos_acessiveis(db, perfil)}:
        raise HTTPException(403, "Sem acesso a este candidato")
    return candidato
