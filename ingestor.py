# ingestor.py
import logging
import re
import unicodedata
from pathlib import Path

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from models import CandidatoAno, CandidatoBairro, CandidatoSecao, ImportLog

logger = logging.getLogger(__name__)

SEP = ","
ENCODING = "utf-8-sig"

# 1.234 / 12.345.678
MILHAR_RE = r"^\d{1,3}(?:\.\d{3})+$"

# Nome normalizado do cabeçalho -> coluna da tabela.
# A normalização remove acentos, então "Seção" e "Secao" caem na mesma chave.
COLUNAS_SECAO = {
    "zona": ["zona"],
    "secao": ["secao"],
    "secoes_agregadas": ["secoes agregadas"],
    "votos": ["votos"],
    "local_votacao": ["local de votacao"],
    "endereco_local": ["endereco do local de votacao", "endereco"],
    "bairro": ["bairro"],
}

COLUNAS_BAIRRO = {
    "bairro_nome": ["bairro"],
    "votos": ["votos"],
    "percentual_votos": ["% votos obtidos", "percentual votos", "percentual"],
}


class ErroCSV(ValueError):
    """Arquivo CSV ilegível ou sem nenhuma coluna reconhecida."""


def normalizar_cabecalho(nome: str) -> str:
    texto = unicodedata.normalize("NFKD", str(nome))
    texto = "".join(c for c in texto if not unicodedata.combining(c))
    return re.sub(r"\s+", " ", texto).strip().lower()


def _ler_csv(origem) -> pd.DataFrame:
    try:
        df = pd.read_csv(
            origem,
            sep=SEP,
            encoding=ENCODING,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as e:
        raise ErroCSV("Arquivo CSV vazio ou sem cabeçalho") from e
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise ErroCSV(f"Não foi possível ler o CSV: {e}") from e
    return df


def _indice_colunas(df: pd.DataFrame, esperadas: dict) -> dict:
    """
    Mapeia coluna da tabela -> coluna do CSV.
    Levanta ErroCSV se nenhuma coluna conhecida aparecer no cabeçalho.
    """
    normalizadas = {normalizar_cabecalho(c): c for c in df.columns}
    indice = {}
    for destino, variantes in esperadas.items():
        for v in variantes:
            if v in normalizadas:
                indice[destino] = normalizadas[v]
                break
    if not indice:
        raise ErroCSV(
            "Nenhuma coluna reconhecida no cabeçalho: "
            + ", ".join(str(c) for c in df.columns)
        )
    return indice


def _texto(df: pd.DataFrame, indice: dict, destino: str) -> pd.Series:
    if destino in indice:
        return df[indice[destino]].astype(str).str.strip()
    return pd.Series([""] * len(df), index=df.index, dtype=object)


def _inteiro(serie: pd.Series) -> pd.Series:
    """Inteiro com fallback 0; aceita separador de milhar (1.234 -> 1234)."""
    texto = serie.astype(str).str.strip()
    milhar = texto.str.match(MILHAR_RE)
    texto = texto.where(~milhar, texto.str.replace(".", "", regex=False))
    return pd.to_numeric(texto, errors="coerce").fillna(0).astype("int64")


def _percentual(serie: pd.Series) -> pd.Series:
    limpo = (
        serie.str.replace("%", "", regex=False)
        .str.replace(",", ".", regex=False)
        .str.strip()
    )
    return pd.to_numeric(limpo, errors="coerce").fillna(0.0).astype(float)


def ler_csv_secoes(origem) -> pd.DataFrame:
    """
    Arquivo 1 (votos por seção) -> colunas de candidate_secoes.
    Zona/seção vazias viram "0"; votos inválidos viram 0.
    """
    df = _ler_csv(origem)
    indice = _indice_colunas(df, COLUNAS_SECAO)

    zona = _texto(df, indice, "zona")
    secao = _texto(df, indice, "secao")

    return pd.DataFrame({
        "zona": zona.where(zona != "", "0"),
        "secao": secao.where(secao != "", "0"),
        "secoes_agregadas": _texto(df, indice, "secoes_agregadas"),
        "votos": _inteiro(_texto(df, indice, "votos")),
        "local_votacao": _texto(df, indice, "local_votacao"),
        "endereco_local": _texto(df, indice, "endereco_local"),
        "bairro": _texto(df, indice, "bairro"),
    })


def ler_csv_bairros(origem) -> pd.DataFrame:
    """Arquivo 2 (votos por bairro) -> colunas de candidate_bairros."""
    df = _ler_csv(origem)
    indice = _indice_colunas(df, COLUNAS_BAIRRO)

    return pd.DataFrame({
        "bairro_nome": _texto(df, indice, "bairro_nome"),
        "votos": _inteiro(_texto(df, indice, "votos")),
        "percentual_votos": _percentual(_texto(df, indice, "percentual_votos")),
    })


# tipo -> (tabela, leitor, campo do nome do arquivo em candidate_anos)
TIPOS = {
    "secao": (CandidatoSecao, ler_csv_secoes, "votos_por_secao_file"),
    "bairro": (CandidatoBairro, ler_csv_bairros, "votos_por_bairro_file"),
}


def _registrar_ano(db: Session, candidato_id: int, ano: int, campo: str, nome_arquivo: str):
    registro = (
        db.query(CandidatoAno)
        .filter(CandidatoAno.candidato_id == candidato_id, CandidatoAno.ano == ano)
        .first()
    )
    if registro is None:
        registro = CandidatoAno(candidato_id=candidato_id, ano=ano)
        db.add(registro)
    setattr(registro, campo, nome_arquivo)
    # o próximo arquivo do mesmo lote precisa enxergar este registro
    db.flush()


def _preparar(tipo: str, origem, candidato_id: int, ano: int, cidade: str = None) -> pd.DataFrame:
    """Lê o CSV e devolve as linhas já no formato da tabela."""
    if tipo not in TIPOS:
        raise ValueError(f"Tipo de arquivo inválido: {tipo}")
    _, leitor, _ = TIPOS[tipo]

    df = leitor(origem)
    df.insert(0, "candidato_id", candidato_id)
    df.insert(1, "ano", ano)
    df["cidade"] = (cidade or "").strip() or None
    return df


def _gravar(db: Session, candidato_id: int, ano: int, tipo: str, df: pd.DataFrame, nome_arquivo: str) -> int:
    """Delete + insert em lote + candidate_anos + import_log, sem commit."""
    modelo, _, campo_arquivo = TIPOS[tipo]
    removidas = (
        db.query(modelo)
        .filter(modelo.candidato_id == candidato_id, modelo.ano == ano)
        .delete(synchronize_session=False)
    )
    if len(df):
        df.to_sql(
            modelo.__tablename__,
            con=db.connection(),
            if_exists="append",
            index=False,
            chunksize=1_000,
        )
    _registrar_ano(db, candidato_id, ano, campo_arquivo, nome_arquivo)
    db.add(ImportLog(
        tipo_arquivo=tipo,
        nome_arquivo=nome_arquivo,
        candidato_id=candidato_id,
        ano=ano,
        linhas_importadas=len(df),
    ))
    return removidas


def substituir_votos(
    db: Session,
    candidato_id: int,
    ano: int,
    tipo: str,
    origem,
    nome_arquivo: str,
    cidade: str = None,
) -> int:
    """
    Substitui TODAS as linhas de um tipo ('secao' ou 'bairro') para candidato+ano.

    O CSV é lido antes de tocar no banco; o delete, o insert em lote,
    o registro em candidate_anos e o import_log vão na mesma transação.
    """
    df = _preparar(tipo, origem, candidato_id, ano, cidade)

    try:
        removidas = _gravar(db, candidato_id, ano, tipo, df, nome_arquivo)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Erro ao gravar %s do candidato %s/%s", tipo, candidato_id, ano
        )
        raise

    logger.info(
        "Importado %s (%s) candidato=%s ano=%s: %s linhas (%s removidas)",
        nome_arquivo, tipo, candidato_id, ano, len(df), removidas,
    )
    return len(df)


def substituir_lote(db: Session, candidato_id: int, ano: int, arquivos, cidade: str = None) -> int:
    """
    Importa vários arquivos [(tipo, origem, nome_arquivo)] de uma vez.
    Todos são lidos antes de gravar; a gravação é uma única transação.
    """
    preparados = []
    for tipo, origem, nome_arquivo in arquivos:
        try:
            df = _preparar(tipo, origem, candidato_id, ano, cidade)
        except ErroCSV as e:
            raise ErroCSV(f"{nome_arquivo}: {e}") from e
        preparados.append((tipo, df, nome_arquivo))

    try:
        for tipo, df, nome_arquivo in preparados:
            _gravar(db, candidato_id, ano, tipo, df, nome_arquivo)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Erro ao gravar lote do candidato %s/%s", candidato_id, ano)
        raise

    total = sum(len(df) for _, df, _ in preparados)
    logger.info(
        "Lote importado candidato=%s ano=%s: %s arquivos, %s linhas",
        candidato_id, ano, len(preparados), total,
    )
    return total


def remover_ano(db: Session, candidato_id: int, ano: int) -> bool:
    """Remove o ano do candidato e todas as linhas de votos daquele ano."""
    registro = (
        db.query(CandidatoAno)
        .filter(CandidatoAno.candidato_id == candidato_id, CandidatoAno.ano == ano)
        .first()
    )
    try:
        for modelo in (CandidatoSecao, CandidatoBairro):
            db.query(modelo).filter(
                modelo.candidato_id == candidato_id, modelo.ano == ano
            ).delete(synchronize_session=False)
        if registro is not None:
            db.delete(registro)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Erro ao remover ano %s do candidato %s", ano, candidato_id)
        raise
    return registro is not None


def caminho_upload(candidato_id: int, ano: int, nome_arquivo: str) -> Path:
    """Destino do arquivo enviado dentro de UPLOAD_DIR."""
    pasta = Path(config.UPLOAD_DIR) / str(candidato_id) / str(ano)
    pasta.mkdir(parents=True, exist_ok=True)
    return pasta / Path(nome_arquivo).name
