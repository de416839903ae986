# schemas.py
from typing import List, Optional
from pydantic import BaseModel, Field


# ============================
# SCHEMAS BÁSICOS
# ============================

class EstatisticasOut(BaseModel):
    total_partidos: int
    total_candidatos: int
    total_linhas_secoes: int
    total_linhas_bairros: int
    anos_disponiveis: List[int]


class UploadResponse(BaseModel):
    mensagem: str
    linhas_importadas: int


class MensagemOut(BaseModel):
    mensagem: str


# ============================
# PARTIDOS
# ============================

class PartidoIn(BaseModel):
    nome: str = Field(min_length=1, max_length=150)
    sigla: str = Field(min_length=1, max_length=20)
    numero: Optional[int] = None


class PartidoOut(BaseModel):
    id: int
    nome: str
    sigla: str
    numero: Optional[int] = None
    ativo: bool

    model_config = {"from_attributes": True}


# ============================
# CANDIDATOS
# ============================

class CandidatoIn(BaseModel):
    nome: str = Field(min_length=1, max_length=200)
    partido_id: int
    numero: Optional[int] = None
    foto_url: Optional[str] = None
    usa_regionais: bool = True
    auth_user_id: Optional[str] = None


class CandidatoAnoOut(BaseModel):
    ano: int
    votos_por_secao_file: Optional[str] = None
    votos_por_bairro_file: Optional[str] = None

    model_config = {"from_attributes": True}


class CandidatoOut(BaseModel):
    id: int
    nome: str
    numero: Optional[int] = None
    foto_url: Optional[str] = None
    ativo: bool
    usa_regionais: bool
    partido: Optional[PartidoOut] = None
    anos: List[CandidatoAnoOut] = []

    model_config = {"from_attributes": True}


class CandidatoVotosOut(BaseModel):
    id: int
    nome: str
    numero: Optional[int] = None
    foto_url: Optional[str] = None
    sg_partido: Optional[str] = None
    total_votos: int


# ============================
# GEOGRAFIA
# ============================

class RegionalIn(BaseModel):
    nome: str = Field(min_length=1, max_length=150)
    cidade: str = Field(min_length=1, max_length=150)
    sigla: Optional[str] = None


class RegionalUpdate(BaseModel):
    nome: Optional[str] = Field(default=None, min_length=1, max_length=150)
    sigla: Optional[str] = None


class RegionalOut(BaseModel):
    id: int
    nome: str
    sigla: Optional[str] = None
    cidade: str
    ativo: bool

    model_config = {"from_attributes": True}


class BairroRegionalOut(BaseModel):
    bairro_nome: str
    regional_id: Optional[int] = None
    regional_nome: Optional[str] = None


class GeografiaCidadeOut(BaseModel):
    cidade: str
    total_regionais: int
    total_bairros: int
    vinculados: int
    bairros: List[BairroRegionalOut]


class VinculoIn(BaseModel):
    cidade: str = Field(min_length=1)
    bairro_nome: str = Field(min_length=1)
    regional_id: Optional[int] = None


class VinculoLoteIn(BaseModel):
    cidade: str = Field(min_length=1)
    regional_id: int
    bairros: List[str] = Field(min_length=1)


# ============================
# USUÁRIOS
# ============================

class UsuarioIn(BaseModel):
    login: str
    nome: str = Field(min_length=1, max_length=200)
    role: str = Field(default="candidato", pattern="^(admin|presidente|candidato)$")
    candidato_id: Optional[int] = None
    partido_id: Optional[int] = None
    auth_user_id: Optional[str] = None


class UsuarioUpdate(BaseModel):
    nome: Optional[str] = Field(default=None, min_length=1, max_length=200)
    role: Optional[str] = Field(default=None, pattern="^(admin|presidente|candidato)$")


class UsuarioOut(BaseModel):
    id: int
    login: str
    email: str
    nome: str
    role: str
    ativo: bool

    model_config = {"from_attributes": True}


class EmailOut(BaseModel):
    login: str
    email: str


# ============================
# DASHBOARD / ANÁLISE
# ============================

class DashboardOut(BaseModel):
    role: str
    usuario: UsuarioOut
    partido: Optional[PartidoOut] = None
    candidatos: List[CandidatoVotosOut] = []
    total_votos: int = 0
    media_por_candidato: float = 0.0
    totais: dict = {}


class RankingItemOut(BaseModel):
    chave: str
    votos: int


class RegionalRankingOut(BaseModel):
    regional_id: Optional[int] = None
    chave: str
    votos: int


class SecaoRankingOut(BaseModel):
    zona: str
    secao: str
    bairro: str
    votos: int


class SerieAnoOut(BaseModel):
    ano: int
    votos: int


class ConcentracaoOut(BaseModel):
    idx: int
    cumul_perc: float


class KpisOut(BaseModel):
    votos_total: int
    total_bairros: int
    total_secoes: int
    total_cidades: int
    top_bairro: str
    top_bairro_votos: int
    media_por_bairro: float
    concentracao_top20: float


class FiltrosOut(BaseModel):
    ano: Optional[int] = None
    cidades: List[str] = []
    regionais: List[int] = []
    zona: Optional[str] = None
    bairro: Optional[str] = None
    busca: Optional[str] = None
    min_votos: int = 0
    top_n: int = 10


class OpcoesOut(BaseModel):
    anos: List[int]
    cidades: List[str]
    zonas: List[str]
    bairros: List[str]
    regionais: List[RegionalOut]


class AnaliseOut(BaseModel):
    candidato: CandidatoOut
    filtros: FiltrosOut
    opcoes: OpcoesOut
    kpis: KpisOut
    ranking_bairros: List[RankingItemOut]
    ranking_zonas: List[RankingItemOut]
    ranking_secoes: List[SecaoRankingOut]
    ranking_regionais: List[RegionalRankingOut]
    ranking_cidades: List[RankingItemOut]
    linha_do_tempo: List[SerieAnoOut]
    concentracao: List[ConcentracaoOut]
