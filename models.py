# models.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Index,
    DateTime,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base

# SQLite só faz autoincremento em INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer, "sqlite")

ROLES = ("admin", "presidente", "candidato")


class Partido(Base):
    __tablename__ = "partidos"

    id = Column(IdType, primary_key=True, autoincrement=True)
    nome = Column(String(150), nullable=False)
    sigla = Column(String(20), nullable=False, index=True)
    numero = Column(Integer, nullable=True)
    ativo = Column(Boolean, nullable=False, default=True)
    criado_em = Column(DateTime, server_default=func.now())

    candidatos = relationship("Candidato", back_populates="partido")


class Candidato(Base):
    __tablename__ = "candidatos"

    id = Column(IdType, primary_key=True, autoincrement=True)
    nome = Column(String(200), nullable=False)
    numero = Column(Integer, nullable=True)
    foto_url = Column(String(500), nullable=True)
    partido_id = Column(IdType, ForeignKey("partidos.id"), nullable=False, index=True)
    ativo = Column(Boolean, nullable=False, default=True)
    usa_regionais = Column(Boolean, nullable=False, default=True)
    # identidade no provedor de autenticação (opcional)
    auth_user_id = Column(String(64), nullable=True)
    criado_em = Column(DateTime, server_default=func.now())

    partido = relationship("Partido", back_populates="candidatos")
    anos = relationship(
        "CandidatoAno",
        back_populates="candidato",
        order_by="CandidatoAno.ano",
        cascade="all, delete-orphan",
    )


class CandidatoAno(Base):
    """
    Um registro por (candidato, ano de eleição), com os nomes
    dos dois arquivos enviados.
    """
    __tablename__ = "candidate_anos"

    id = Column(IdType, primary_key=True, autoincrement=True)
    candidato_id = Column(IdType, ForeignKey("candidatos.id"), nullable=False)
    ano = Column(Integer, nullable=False)
    votos_por_secao_file = Column(String(255), nullable=True)
    votos_por_bairro_file = Column(String(255), nullable=True)
    criado_em = Column(DateTime, server_default=func.now())

    candidato = relationship("Candidato", back_populates="anos")

    __table_args__ = (
        UniqueConstraint("candidato_id", "ano", name="uq_candidate_anos"),
    )


class CandidatoSecao(Base):
    """
    Arquivo 1: votos por seção.
    Zona, Seção, Seções Agregadas, Votos, Local de Votação, Endereço, Bairro.
    """
    __tablename__ = "candidate_secoes"

    id = Column(IdType, primary_key=True, autoincrement=True)
    candidato_id = Column(IdType, ForeignKey("candidatos.id"), nullable=False)
    ano = Column(Integer, nullable=False)

    zona = Column(String(10), nullable=False)
    secao = Column(String(10), nullable=False)
    secoes_agregadas = Column(String(500), nullable=True)
    votos = Column(BigInteger, nullable=False, default=0)

    local_votacao = Column(String(200), nullable=True)
    endereco_local = Column(String(500), nullable=True)
    bairro = Column(String(150), nullable=True)
    cidade = Column(String(150), nullable=True, index=True)

    __table_args__ = (
        Index("ix_csec_candidato_ano", "candidato_id", "ano"),
    )


class CandidatoBairro(Base):
    """Arquivo 2: votos por bairro (Bairro, Votos, % Votos Obtidos)."""
    __tablename__ = "candidate_bairros"

    id = Column(IdType, primary_key=True, autoincrement=True)
    candidato_id = Column(IdType, ForeignKey("candidatos.id"), nullable=False)
    ano = Column(Integer, nullable=False)

    bairro_nome = Column(String(150), nullable=False)
    votos = Column(BigInteger, nullable=False, default=0)
    percentual_votos = Column(Float, nullable=True)
    cidade = Column(String(150), nullable=True, index=True)

    __table_args__ = (
        Index("ix_cbai_candidato_ano", "candidato_id", "ano"),
    )


class Regional(Base):
    """Agrupamento de bairros definido pelo admin, dentro de uma cidade."""
    __tablename__ = "regionais"

    id = Column(IdType, primary_key=True, autoincrement=True)
    nome = Column(String(150), nullable=False)
    sigla = Column(String(20), nullable=True)
    cidade = Column(String(150), nullable=False, index=True)
    ativo = Column(Boolean, nullable=False, default=True)
    criado_em = Column(DateTime, server_default=func.now())


class RegionalBairro(Base):
    """
    Vínculo bairro -> regional.
    Único por (cidade, bairro_nome); é a única representação do mapeamento.
    """
    __tablename__ = "regionais_bairros"

    id = Column(IdType, primary_key=True, autoincrement=True)
    cidade = Column(String(150), nullable=False)
    bairro_nome = Column(String(150), nullable=False)
    regional_id = Column(
        IdType, ForeignKey("regionais.id", ondelete="CASCADE"), nullable=False
    )
    criado_em = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("cidade", "bairro_nome", name="uq_regionais_bairros"),
    )


class Perfil(Base):
    __tablename__ = "profiles"

    id = Column(IdType, primary_key=True, autoincrement=True)
    login = Column(String(32), nullable=False, unique=True)
    email = Column(String(255), nullable=False)
    nome = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default="candidato")
    ativo = Column(Boolean, nullable=False, default=True)
    auth_user_id = Column(String(64), nullable=True)
    criado_em = Column(DateTime, server_default=func.now())


class AcessoCandidato(Base):
    __tablename__ = "user_candidate_access"

    id = Column(IdType, primary_key=True, autoincrement=True)
    perfil_id = Column(IdType, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    candidato_id = Column(IdType, ForeignKey("candidatos.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("perfil_id", "candidato_id", name="uq_acesso_candidato"),
    )


class AcessoPartido(Base):
    __tablename__ = "user_party_access"

    id = Column(IdType, primary_key=True, autoincrement=True)
    perfil_id = Column(IdType, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    partido_id = Column(IdType, ForeignKey("partidos.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("perfil_id", "partido_id", name="uq_acesso_partido"),
    )


class ImportLog(Base):
    """
    Log simples das importações (secao/bairro).
    Só para controle.
    """
    __tablename__ = "import_log"

    id = Column(IdType, primary_key=True, autoincrement=True)
    tipo_arquivo = Column(String(20))       # 'secao' ou 'bairro'
    nome_arquivo = Column(String(255))
    candidato_id = Column(IdType, nullable=True)
    ano = Column(Integer, nullable=True)
    linhas_importadas = Column(BigInteger)
    criado_em = Column(DateTime, server_default=func.now())
