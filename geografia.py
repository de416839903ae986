# geografia.py
import logging
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import CandidatoBairro, CandidatoSecao, Regional, RegionalBairro
from schemas import RegionalIn, RegionalUpdate

logger = logging.getLogger(__name__)

SEM_REGIONAL = "Sem Regional"


def _limpo(valor: Optional[str]) -> str:
    return (valor or "").strip()


def listar_cidades(db: Session) -> List[str]:
    """Cidades presentes nas linhas de votos (bairros e seções)."""
    cidades = set()
    for modelo in (CandidatoBairro, CandidatoSecao):
        for (cidade,) in db.query(modelo.cidade).distinct():
            if _limpo(cidade):
                cidades.add(_limpo(cidade))
    return sorted(cidades)


# =============================
# REGIONAIS
# =============================

def buscar_regional(db: Session, regional_id: int) -> Regional:
    regional = db.query(Regional).filter(Regional.id == regional_id).first()
    if not regional:
        raise HTTPException(404, "Regional não encontrada")
    return regional


def listar_regionais(db: Session, cidade: Optional[str] = None, apenas_ativas: bool = False) -> List[Regional]:
    q = db.query(Regional)
    if cidade:
        q = q.filter(Regional.cidade == _limpo(cidade))
    if apenas_ativas:
        q = q.filter(Regional.ativo.is_(True))
    return q.order_by(Regional.nome).all()


def criar_regional(db: Session, dados: RegionalIn) -> Regional:
    regional = Regional(
        nome=dados.nome.strip(),
        sigla=_limpo(dados.sigla) or None,
        cidade=dados.cidade.strip(),
    )
    try:
        db.add(regional)
        db.commit()
        db.refresh(regional)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Erro ao criar regional: %s", str(e))
        raise HTTPException(500, "Erro interno ao criar regional") from e
    logger.info("Regional criada: %s (%s)", regional.nome, regional.cidade)
    return regional


def atualizar_regional(db: Session, regional_id: int, dados: RegionalUpdate) -> Regional:
    regional = buscar_regional(db, regional_id)
    try:
        if dados.nome is not None:
            regional.nome = dados.nome.strip()
        if dados.sigla is not None:
            regional.sigla = _limpo(dados.sigla) or None
        db.commit()
        db.refresh(regional)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Erro ao atualizar regional %s: %s", regional_id, str(e))
        raise HTTPException(500, "Erro interno ao atualizar regional") from e
    return regional


def alternar_regional(db: Session, regional_id: int) -> Regional:
    regional = buscar_regional(db, regional_id)
    regional.ativo = not regional.ativo
    db.commit()
    db.refresh(regional)
    return regional


# =============================
# VÍNCULOS BAIRRO -> REGIONAL
# =============================

def bairros_da_cidade(db: Session, cidade: str) -> List[str]:
    """
    Bairros distintos da cidade em candidate_bairros.
    Se não houver nenhum, usa candidate_secoes.bairro.
    """
    cidade = _limpo(cidade)
    nomes = {
        _limpo(n)
        for (n,) in db.query(CandidatoBairro.bairro_nome)
        .filter(CandidatoBairro.cidade == cidade)
        .distinct()
    }
    nomes.discard("")
    if not nomes:
        nomes = {
            _limpo(n)
            for (n,) in db.query(CandidatoSecao.bairro)
            .filter(CandidatoSecao.cidade == cidade)
            .distinct()
        }
        nomes.discard("")
    return sorted(nomes)


def vinculos_da_cidade(db: Session, cidade: str) -> Dict[str, RegionalBairro]:
    linhas = db.query(RegionalBairro).filter(RegionalBairro.cidade == _limpo(cidade)).all()
    return {v.bairro_nome: v for v in linhas}


def resumo_cidade(db: Session, cidade: str) -> dict:
    cidade = _limpo(cidade)
    regionais = {r.id: r for r in listar_regionais(db, cidade)}
    vinculos = vinculos_da_cidade(db, cidade)
    bairros = sorted(set(bairros_da_cidade(db, cidade)) | set(vinculos))

    itens = []
    for nome in bairros:
        vinculo = vinculos.get(nome)
        regional = regionais.get(vinculo.regional_id) if vinculo else None
        itens.append({
            "bairro_nome": nome,
            "regional_id": regional.id if regional else None,
            "regional_nome": regional.nome if regional else None,
        })

    return {
        "cidade": cidade,
        "total_regionais": len(regionais),
        "total_bairros": len(bairros),
        "vinculados": sum(1 for i in itens if i["regional_id"] is not None),
        "bairros": itens,
    }


def vincular_bairro(db: Session, cidade: str, bairro_nome: str, regional_id: Optional[int]) -> Optional[RegionalBairro]:
    """
    Upsert do vínculo (cidade, bairro) -> regional.
    regional_id None remove o vínculo.
    """
    cidade = _limpo(cidade)
    bairro_nome = _limpo(bairro_nome)
    if not cidade or not bairro_nome:
        raise HTTPException(400, "Cidade e bairro são obrigatórios")

    existente = (
        db.query(RegionalBairro)
        .filter(RegionalBairro.cidade == cidade, RegionalBairro.bairro_nome == bairro_nome)
        .first()
    )

    try:
        if regional_id is None:
            if existente:
                db.delete(existente)
                db.commit()
                logger.info("Vínculo removido: %s / %s", cidade, bairro_nome)
            return None

        regional = buscar_regional(db, regional_id)
        if regional.cidade != cidade:
            raise HTTPException(
                400, f"Regional '{regional.nome}' pertence a outra cidade ({regional.cidade})"
            )

        if existente:
            existente.regional_id = regional.id
        else:
            existente = RegionalBairro(cidade=cidade, bairro_nome=bairro_nome, regional_id=regional.id)
            db.add(existente)
        db.commit()
        db.refresh(existente)
        return existente
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Erro ao salvar vínculo %s / %s: %s", cidade, bairro_nome, str(e))
        raise HTTPException(500, "Erro interno ao salvar vínculo") from e


def vincular_lote(db: Session, cidade: str, regional_id: int, bairros: List[str]) -> int:
    """Vincula vários bairros à mesma regional numa única transação."""
    cidade = _limpo(cidade)
    regional = buscar_regional(db, regional_id)
    if regional.cidade != cidade:
        raise HTTPException(400, f"Regional '{regional.nome}' pertence a outra cidade ({regional.cidade})")

    nomes = sorted({_limpo(b) for b in bairros} - {""})
    vinculos = vinculos_da_cidade(db, cidade)
    try:
        for nome in nomes:
            if nome in vinculos:
                vinculos[nome].regional_id = regional.id
            else:
                db.add(RegionalBairro(cidade=cidade, bairro_nome=nome, regional_id=regional.id))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Erro no vínculo em lote (%s): %s", cidade, str(e))
        raise HTTPException(500, "Erro interno ao salvar vínculos") from e
    logger.info("%s bairros vinculados à regional %s", len(nomes), regional.nome)
    return len(nomes)


def mapa_bairro_regional(db: Session, cidades: Optional[List[str]] = None) -> Dict[Tuple[str, str], Tuple[int, str]]:
    """(cidade, bairro) -> (regional_id, nome da regional)."""
    q = db.query(RegionalBairro.cidade, RegionalBairro.bairro_nome, Regional.id, Regional.nome).join(
        Regional, Regional.id == RegionalBairro.regional_id
    )
    if cidades:
        q = q.filter(RegionalBairro.cidade.in_(cidades))
    return {(c, b): (rid, nome) for c, b, rid, nome in q.all()}
