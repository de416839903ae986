# agregacoes.py
"""
Rankings e indicadores de votação de um candidato.

Todas as linhas do candidato são carregadas uma vez em DataFrames e
filtradas/agrupadas em memória: group by chave -> soma de votos ->
ordenação decrescente -> top N.
"""
import logging
import math
from typing import List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from geografia import SEM_REGIONAL, listar_regionais, mapa_bairro_regional
from models import Candidato, CandidatoBairro, CandidatoSecao
from schemas import FiltrosOut

logger = logging.getLogger(__name__)

SEM_CIDADE = "Sem Cidade"

COLUNAS_SECOES = ["ano", "cidade", "zona", "secao", "bairro", "votos"]
COLUNAS_BAIRROS = ["ano", "cidade", "bairro_nome", "votos", "percentual_votos"]


# =============================
# CARGA
# =============================

def _texto(serie: pd.Series) -> pd.Series:
    return serie.fillna("").astype(str).str.strip()


def carregar_secoes(db: Session, candidato_id: int) -> pd.DataFrame:
    linhas = (
        db.query(
            CandidatoSecao.ano,
            CandidatoSecao.cidade,
            CandidatoSecao.zona,
            CandidatoSecao.secao,
            CandidatoSecao.bairro,
            CandidatoSecao.votos,
        )
        .filter(CandidatoSecao.candidato_id == candidato_id)
        .all()
    )
    df = pd.DataFrame([tuple(r) for r in linhas], columns=COLUNAS_SECOES)
    for col in ("cidade", "zona", "secao", "bairro"):
        df[col] = _texto(df[col])
    df["votos"] = pd.to_numeric(df["votos"], errors="coerce").fillna(0).astype("int64")
    return df


def carregar_bairros(db: Session, candidato_id: int) -> pd.DataFrame:
    linhas = (
        db.query(
            CandidatoBairro.ano,
            CandidatoBairro.cidade,
            CandidatoBairro.bairro_nome,
            CandidatoBairro.votos,
            CandidatoBairro.percentual_votos,
        )
        .filter(CandidatoBairro.candidato_id == candidato_id)
        .all()
    )
    df = pd.DataFrame([tuple(r) for r in linhas], columns=COLUNAS_BAIRROS)
    for col in ("cidade", "bairro_nome"):
        df[col] = _texto(df[col])
    df["votos"] = pd.to_numeric(df["votos"], errors="coerce").fillna(0).astype("int64")
    df["percentual_votos"] = pd.to_numeric(df["percentual_votos"], errors="coerce").fillna(0.0)
    return df


def anexar_regional(df: pd.DataFrame, coluna_bairro: str, mapa: dict) -> pd.DataFrame:
    """Adiciona regional_id/regional a partir do vínculo (cidade, bairro)."""
    df = df.copy()
    chaves = list(zip(df["cidade"], df[coluna_bairro]))
    df["regional_id"] = [mapa.get(k, (None, None))[0] for k in chaves]
    df["regional"] = [mapa.get(k, (None, SEM_REGIONAL))[1] for k in chaves]
    return df


# =============================
# RANKING
# =============================

def ranking(df: pd.DataFrame, chave: str, min_votos: int = 0, top_n: Optional[int] = None) -> List[dict]:
    """
    Agrupa por `chave`, soma votos e ordena por votos (desc), chave (asc).
    Grupos abaixo de min_votos saem; top_n corta o resultado.
    """
    if df.empty:
        return []
    agrupado = df.groupby(chave, as_index=False)["votos"].sum()
    agrupado = agrupado[agrupado["votos"] >= min_votos]
    agrupado = agrupado.sort_values(["votos", chave], ascending=[False, True], kind="mergesort")
    if top_n:
        agrupado = agrupado.head(top_n)
    return [
        {"chave": str(k), "votos": int(v)}
        for k, v in zip(agrupado[chave], agrupado["votos"])
    ]


def ranking_secoes(df: pd.DataFrame, min_votos: int = 0, top_n: Optional[int] = None) -> List[dict]:
    if df.empty:
        return []
    agrupado = df.groupby(["zona", "secao"], as_index=False).agg(
        votos=("votos", "sum"), bairro=("bairro", "first")
    )
    agrupado = agrupado[agrupado["votos"] >= min_votos]
    agrupado = agrupado.sort_values(
        ["votos", "zona", "secao"], ascending=[False, True, True], kind="mergesort"
    )
    if top_n:
        agrupado = agrupado.head(top_n)
    return [
        {"zona": z, "secao": s, "bairro": b, "votos": int(v)}
        for z, s, b, v in zip(agrupado["zona"], agrupado["secao"], agrupado["bairro"], agrupado["votos"])
    ]


def ranking_regionais(df: pd.DataFrame, min_votos: int = 0, top_n: Optional[int] = None) -> List[dict]:
    """
    Ranking por regional_id (nomes podem repetir entre cidades).
    Bairros sem vínculo somam em "Sem Regional", com regional_id nulo.
    """
    if df.empty:
        return []
    df = df.assign(regional_id=df["regional_id"].fillna(0).astype("int64"))
    agrupado = df.groupby(["regional_id", "regional"], as_index=False)["votos"].sum()
    agrupado = agrupado[agrupado["votos"] >= min_votos]
    agrupado = agrupado.sort_values(
        ["votos", "regional", "regional_id"], ascending=[False, True, True], kind="mergesort"
    )
    if top_n:
        agrupado = agrupado.head(top_n)
    return [
        {"regional_id": int(rid) or None, "chave": str(nome), "votos": int(v)}
        for rid, nome, v in zip(agrupado["regional_id"], agrupado["regional"], agrupado["votos"])
    ]


def linha_do_tempo(df_bairros: pd.DataFrame) -> List[dict]:
    if df_bairros.empty:
        return []
    por_ano = df_bairros.groupby("ano", as_index=False)["votos"].sum().sort_values("ano")
    return [{"ano": int(a), "votos": int(v)} for a, v in zip(por_ano["ano"], por_ano["votos"])]


def curva_concentracao(ranking_completo: List[dict]) -> List[dict]:
    """Percentual acumulado de votos ao longo do ranking (regra 80/20)."""
    total = sum(item["votos"] for item in ranking_completo) or 1
    acumulado = 0
    curva = []
    for idx, item in enumerate(ranking_completo, start=1):
        acumulado += item["votos"]
        curva.append({"idx": idx, "cumul_perc": round(100 * acumulado / total, 2)})
    return curva


def concentracao_top20(ranking_completo: List[dict]) -> float:
    """Quanto (%) dos votos vem dos 20% melhores bairros."""
    total = sum(item["votos"] for item in ranking_completo)
    if not total:
        return 0.0
    corte = math.ceil(len(ranking_completo) * 0.2)
    topo = sum(item["votos"] for item in ranking_completo[:corte])
    return round(100 * topo / total, 2)


# =============================
# FILTROS
# =============================

def _ordem_natural(valor: str):
    return (0, int(valor), "") if valor.isdecimal() else (1, 0, valor)


def _filtrar_geografia(df: pd.DataFrame, coluna_bairro: str, filtros: FiltrosOut) -> pd.DataFrame:
    if filtros.cidades:
        df = df[df["cidade"].isin(filtros.cidades)]
    if filtros.bairro:
        df = df[df[coluna_bairro] == filtros.bairro]
    if filtros.regionais:
        df = df[df["regional_id"].isin(filtros.regionais)]
    return df


def _filtrar_busca(df: pd.DataFrame, colunas: List[str], busca: Optional[str]) -> pd.DataFrame:
    termo = (busca or "").strip().lower()
    if not termo or df.empty:
        return df
    mascara = pd.Series(False, index=df.index)
    for col in colunas:
        mascara |= df[col].astype(str).str.lower().str.contains(termo, regex=False)
    return df[mascara]


def filtrar_secoes(df: pd.DataFrame, filtros: FiltrosOut) -> pd.DataFrame:
    if filtros.ano is not None:
        df = df[df["ano"] == filtros.ano]
    df = _filtrar_geografia(df, "bairro", filtros)
    if filtros.zona:
        df = df[df["zona"] == filtros.zona]
    return _filtrar_busca(df, ["zona", "secao", "bairro"], filtros.busca)


def filtrar_bairros(df: pd.DataFrame, filtros: FiltrosOut) -> pd.DataFrame:
    if filtros.ano is not None:
        df = df[df["ano"] == filtros.ano]
    df = _filtrar_geografia(df, "bairro_nome", filtros)
    return _filtrar_busca(df, ["bairro_nome"], filtros.busca)


# =============================
# ANÁLISE COMPLETA
# =============================

def _anos(candidato: Candidato, secoes: pd.DataFrame, bairros: pd.DataFrame) -> List[int]:
    anos = {a.ano for a in candidato.anos}
    anos |= {int(a) for a in secoes["ano"].dropna().unique()}
    anos |= {int(a) for a in bairros["ano"].dropna().unique()}
    return sorted(anos)


def _com_ano_padrao(filtros: FiltrosOut, anos: List[int]) -> FiltrosOut:
    """Sem ano informado, usa o último ano com dados do candidato."""
    if filtros.ano is None and anos:
        return filtros.model_copy(update={"ano": anos[-1]})
    return filtros


def kpis(secoes: pd.DataFrame, bairros: pd.DataFrame, ranking_bairros_completo: List[dict]) -> dict:
    votos_total = int(bairros["votos"].sum()) if not bairros.empty else 0
    total_bairros = int(bairros.loc[bairros["bairro_nome"] != "", "bairro_nome"].nunique())
    total_secoes = int(secoes[["zona", "secao"]].drop_duplicates().shape[0])
    cidades = set(bairros["cidade"]) | set(secoes["cidade"])
    cidades.discard("")
    topo = ranking_bairros_completo[0] if ranking_bairros_completo else None
    return {
        "votos_total": votos_total,
        "total_bairros": total_bairros,
        "total_secoes": total_secoes,
        "total_cidades": len(cidades),
        "top_bairro": topo["chave"] if topo else "-",
        "top_bairro_votos": topo["votos"] if topo else 0,
        "media_por_bairro": round(votos_total / total_bairros, 2) if total_bairros else 0.0,
        "concentracao_top20": concentracao_top20(ranking_bairros_completo),
    }


def analisar_candidato(db: Session, candidato: Candidato, filtros: FiltrosOut) -> dict:
    """
    Monta KPIs, rankings, linha do tempo e curva de concentração
    de um candidato com o conjunto de filtros informado.
    """
    secoes = carregar_secoes(db, candidato.id)
    bairros = carregar_bairros(db, candidato.id)

    anos = _anos(candidato, secoes, bairros)
    filtros = _com_ano_padrao(filtros, anos)

    cidades_dados = sorted((set(secoes["cidade"]) | set(bairros["cidade"])) - {""})
    mapa = mapa_bairro_regional(db, cidades_dados)
    secoes = anexar_regional(secoes, "bairro", mapa)
    bairros = anexar_regional(bairros, "bairro_nome", mapa)

    sec_f = filtrar_secoes(secoes, filtros)
    bai_f = filtrar_bairros(bairros, filtros)

    ranking_bairros_completo = ranking(bai_f[bai_f["bairro_nome"] != ""], "bairro_nome")

    # linha do tempo ignora ano e busca, mas respeita a geografia
    bai_tempo = _filtrar_geografia(bairros, "bairro_nome", filtros)

    # opções dos seletores, dentro do ano/cidades ativos
    sec_ano = secoes if filtros.ano is None else secoes[secoes["ano"] == filtros.ano]
    bai_ano = bairros if filtros.ano is None else bairros[bairros["ano"] == filtros.ano]
    if filtros.cidades:
        sec_ano = sec_ano[sec_ano["cidade"].isin(filtros.cidades)]
        bai_ano = bai_ano[bai_ano["cidade"].isin(filtros.cidades)]
    zonas = sorted(set(sec_ano["zona"]) - {""}, key=_ordem_natural)
    nomes_bairros = sorted(set(bai_ano["bairro_nome"]) - {""})

    regionais = []
    for cidade in (filtros.cidades or cidades_dados):
        regionais.extend(listar_regionais(db, cidade, apenas_ativas=True))

    bai_cidade = bai_f.assign(cidade=bai_f["cidade"].replace("", SEM_CIDADE))

    logger.debug(
        "Análise candidato=%s ano=%s: %s seções, %s bairros",
        candidato.id, filtros.ano, len(sec_f), len(bai_f),
    )

    return {
        "candidato": candidato,
        "filtros": filtros,
        "opcoes": {
            "anos": anos,
            "cidades": cidades_dados,
            "zonas": zonas,
            "bairros": nomes_bairros,
            "regionais": regionais,
        },
        "kpis": kpis(sec_f, bai_f, ranking_bairros_completo),
        "ranking_bairros": ranking(
            bai_f[bai_f["bairro_nome"] != ""], "bairro_nome", filtros.min_votos, filtros.top_n
        ),
        "ranking_zonas": ranking(sec_f, "zona", filtros.min_votos, filtros.top_n),
        "ranking_secoes": ranking_secoes(sec_f, filtros.min_votos, filtros.top_n),
        "ranking_regionais": ranking_regionais(bai_f, filtros.min_votos, filtros.top_n),
        "ranking_cidades": ranking(bai_cidade, "cidade", filtros.min_votos, filtros.top_n),
        "linha_do_tempo": linha_do_tempo(bai_tempo),
        "concentracao": curva_concentracao(ranking_bairros_completo),
    }


def exportar_bairros_csv(db: Session, candidato: Candidato, filtros: FiltrosOut):
    """
    Ranking de bairros filtrado em CSV (Bairro, Cidade, Votos, Percentual).
    Retorna (texto do CSV, ano usado).
    """
    secoes = carregar_secoes(db, candidato.id)
    bairros = carregar_bairros(db, candidato.id)
    filtros = _com_ano_padrao(filtros, _anos(candidato, secoes, bairros))
    mapa = mapa_bairro_regional(db, sorted(set(bairros["cidade"]) - {""}))
    bai_f = filtrar_bairros(anexar_regional(bairros, "bairro_nome", mapa), filtros)

    if bai_f.empty:
        tabela = pd.DataFrame(columns=["bairro_nome", "cidade", "votos", "percentual_votos"])
    else:
        tabela = bai_f.groupby(["bairro_nome", "cidade"], as_index=False).agg(
            votos=("votos", "sum"), percentual_votos=("percentual_votos", "sum")
        )
        tabela = tabela[tabela["votos"] >= filtros.min_votos]
        tabela = tabela.sort_values(["votos", "bairro_nome"], ascending=[False, True], kind="mergesort")
        if filtros.top_n:
            tabela = tabela.head(filtros.top_n)

    tabela = tabela.rename(columns={
        "bairro_nome": "Bairro",
        "cidade": "Cidade",
        "votos": "Votos",
        "percentual_votos": "Percentual",
    })
    return tabela.to_csv(index=False), filtros.ano
