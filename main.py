# main.py
from fastapi import (
    FastAPI,
    Query,
    UploadFile,
    File,
    Header,
    HTTPException,
    Depends,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from typing import Optional, List
from pathlib import Path
import logging
import os
import zipfile
import shutil

from sqlalchemy.orm import Session
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

import agregacoes
import cadastros
import config
import geografia
from database import SessionLocal, get_db, init_db
from ingestor import (
    ErroCSV,
    caminho_upload,
    normalizar_cabecalho,
    remover_ano,
    substituir_lote,
    substituir_votos,
)
from models import Candidato, CandidatoAno, CandidatoBairro, CandidatoSecao, Partido, Perfil
from schemas import (
    AnaliseOut,
    BairroRegionalOut,
    CandidatoIn,
    CandidatoOut,
    CandidatoVotosOut,
    DashboardOut,
    EmailOut,
    EstatisticasOut,
    FiltrosOut,
    GeografiaCidadeOut,
    MensagemOut,
    PartidoIn,
    PartidoOut,
    RegionalIn,
    RegionalOut,
    RegionalUpdate,
    UploadResponse,
    UsuarioIn,
    UsuarioOut,
    UsuarioUpdate,
    VinculoIn,
    VinculoLoteIn,
)

config.configurar_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="API - PAINEL ELEITORAL")

# =============================
# CORS
# =============================
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================
# STARTUP
# =============================

@app.on_event("startup")
def on_startup():
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    init_db()
    with SessionLocal() as db:
        cadastros.garantir_admin_inicial(db)


# =============================
# IDENTIDADE
# =============================

def usuario_atual(
    x_usuario_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
) -> Perfil:
    """
    Perfil de quem chama, vindo do cabeçalho X-Usuario-Id.
    A autenticação em si fica com o provedor externo.
    """
    if x_usuario_id is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Informe o cabeçalho X-Usuario-Id")
    perfil = db.query(Perfil).filter(Perfil.id == x_usuario_id).first()
    if not perfil:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Usuário não encontrado")
    if not perfil.ativo:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Usuário inativo")
    return perfil


def exigir_admin(perfil: Perfil = Depends(usuario_atual)) -> Perfil:
    if perfil.role != "admin":
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Apenas administradores")
    return perfil


def _lista_texto(valor: Optional[str]) -> List[str]:
    return [v.strip() for v in (valor or "").split(",") if v.strip()]


def _lista_ids(valor: Optional[str]) -> List[int]:
    try:
        return [int(v) for v in _lista_texto(valor)]
    except ValueError:
        raise HTTPException(400, "Regionais devem ser IDs numéricos separados por vírgula")


# =============================
# ESTATÍSTICAS
# =============================

@app.get("/estatisticas", response_model=EstatisticasOut)
def estatisticas(db: Session = Depends(get_db)):
    total_secoes = db.query(func.count(CandidatoSecao.id)).scalar() or 0
    total_bairros = db.query(func.count(CandidatoBairro.id)).scalar() or 0

    anos = sorted({a[0] for a in db.query(CandidatoAno.ano).distinct() if a[0]})

    return EstatisticasOut(
        total_partidos=db.query(func.count(Partido.id)).scalar() or 0,
        total_candidatos=db.query(func.count(Candidato.id)).scalar() or 0,
        total_linhas_secoes=total_secoes,
        total_linhas_bairros=total_bairros,
        anos_disponiveis=anos,
    )


# =============================
# AUTH
# =============================

@app.get("/auth/email", response_model=EmailOut)
def email_do_login(login: str = Query(...)):
    """E-mail técnico que o provedor de autenticação usa para este login."""
    cadastros.validar_login(login.strip())
    return EmailOut(login=login.strip(), email=cadastros.login_para_email(login))


# =============================
# PARTIDOS
# =============================

@app.get("/partidos", response_model=List[PartidoOut])
def listar_partidos(
    ativos: bool = Query(False),
    db: Session = Depends(get_db),
    perfil: Perfil = Depends(usuario_atual),
):
    return cadastros.listar_partidos(db, apenas_ativos=ativos)


@app.post("/partidos", response_model=PartidoOut, status_code=status.HTTP_201_CREATED)
def criar_partido(dados: PartidoIn, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    return cadastros.salvar_partido(db, dados)


@app.put("/partidos/{partido_id}", response_model=PartidoOut)
def atualizar_partido(
    partido_id: int, dados: PartidoIn, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)
):
    return cadastros.salvar_partido(db, dados, partido_id)


@app.patch("/partidos/{partido_id}/ativo", response_model=PartidoOut)
def alternar_partido(partido_id: int, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    return cadastros.alternar_partido(db, partido_id)


# =============================
# CANDIDATOS
# =============================

@app.get("/candidatos", response_model=List[CandidatoOut])
def listar_candidatos(db: Session = Depends(get_db), perfil: Perfil = Depends(usuario_atual)):
    """Candidatos visíveis para o usuário (admin vê todos)."""
    return [CandidatoOut.model_validate(c) for c in cadastros.candidatos_acessiveis(db, perfil)]


@app.get("/candidatos/{candidato_id}", response_model=CandidatoOut)
def buscar_candidato(candidato_id: int, db: Session = Depends(get_db), perfil: Perfil = Depends(usuario_atual)):
    return CandidatoOut.model_validate(cadastros.verificar_acesso_candidato(db, perfil, candidato_id))


@app.post("/candidatos", response_model=CandidatoOut, status_code=status.HTTP_201_CREATED)
def criar_candidato(dados: CandidatoIn, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    return CandidatoOut.model_validate(cadastros.salvar_candidato(db, dados))


@app.put("/candidatos/{candidato_id}", response_model=CandidatoOut)
def atualizar_candidato(
    candidato_id: int, dados: CandidatoIn, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)
):
    return CandidatoOut.model_validate(cadastros.salvar_candidato(db, dados, candidato_id))


@app.patch("/candidatos/{candidato_id}/ativo", response_model=CandidatoOut)
def alternar_candidato(candidato_id: int, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    return CandidatoOut.model_validate(cadastros.alternar_candidato(db, candidato_id))


@app.delete("/candidatos/{candidato_id}/anos/{ano}", status_code=status.HTTP_204_NO_CONTENT)
def remover_ano_candidato(
    candidato_id: int, ano: int, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)
):
    cadastros.buscar_candidato(db, candidato_id)
    if not remover_ano(db, candidato_id, ano):
        raise HTTPException(404, f"Candidato não tem dados de {ano}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================
# UPLOAD
# =============================

@app.post("/candidatos/{candidato_id}/upload", response_model=UploadResponse)
async def upload_csv(
    candidato_id: int,
    ano: int = Query(..., ge=1900, le=2100),
    tipo: str = Query(
        ...,
        pattern="^(secao|bairro)$",
        description="Tipo de arquivo: secao (Arquivo 1) ou bairro (Arquivo 2)",
    ),
    cidade: Optional[str] = Query(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    admin: Perfil = Depends(exigir_admin),
):
    """
    Faz upload de UM CSV e substitui os votos daquele tipo para candidato+ano:
      - tipo=secao  -> candidate_secoes
      - tipo=bairro -> candidate_bairros
    """
    cadastros.buscar_candidato(db, candidato_id)
    filename = file.filename or ""

    if not filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Envie um arquivo .csv")

    dest_path = caminho_upload(candidato_id, ano, f"{tipo}_{Path(filename).name}")
    with dest_path.open("wb") as f:
        content = await file.read()
        f.write(content)

    try:
        linhas = substituir_votos(db, candidato_id, ano, tipo, dest_path, filename, cidade)
    except ErroCSV as e:
        dest_path.unlink(missing_ok=True)
        raise HTTPException(status_code=400, detail=f"Erro ao processar CSV: {e}")
    except SQLAlchemyError as e:
        dest_path.unlink(missing_ok=True)
        raise HTTPException(status_code=500, detail=f"Erro ao gravar votos: {e}")

    return UploadResponse(
        mensagem=f"Arquivo {filename} importado com sucesso",
        linhas_importadas=linhas,
    )


@app.post("/candidatos/{candidato_id}/upload-zip", response_model=UploadResponse)
async def upload_zip(
    candidato_id: int,
    ano: int = Query(..., ge=1900, le=2100),
    cidade: Optional[str] = Query(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    admin: Perfil = Depends(exigir_admin),
):
    """
    Upload de um ZIP com os CSVs de um ano.
    - 'secao' no nome -> votos por seção
    - 'bairro' no nome -> votos por bairro
    Todos os CSVs são lidos antes de gravar e entram numa única transação.
    """
    cadastros.buscar_candidato(db, candidato_id)
    filename = file.filename or ""

    if not filename.lower().endswith(".zip"):
        raise HTTPException(status_code=400, detail="Envie um arquivo .zip")

    zip_path = caminho_upload(candidato_id, ano, Path(filename).name)
    with zip_path.open("wb") as f:
        content = await file.read()
        f.write(content)

    extracted_dir = zip_path.parent / (zip_path.name + "_unzipped")
    if extracted_dir.exists():
        shutil.rmtree(extracted_dir)
    extracted_dir.mkdir(parents=True, exist_ok=True)

    arquivos = []

    try:
        with zipfile.ZipFile(zip_path, "r") as zf:
            zf.extractall(extracted_dir)

        for path in sorted(extracted_dir.rglob("*.csv")):
            nome = normalizar_cabecalho(path.name)
            if "secao" in nome or "secoes" in nome:
                tipo = "secao"
            elif "bairro" in nome:
                tipo = "bairro"
            else:
                logger.warning("Ignorando %s dentro de %s", path.name, filename)
                continue
            arquivos.append((tipo, path, path.name))

        if arquivos:
            total_linhas = substituir_lote(db, candidato_id, ano, arquivos, cidade)
    except (zipfile.BadZipFile, ErroCSV) as e:
        raise HTTPException(status_code=400, detail=f"Erro ao processar ZIP: {e}")
    except SQLAlchemyError as e:
        raise HTTPException(status_code=500, detail=f"Erro ao gravar votos: {e}")
    finally:
        zip_path.unlink(missing_ok=True)
        shutil.rmtree(extracted_dir, ignore_errors=True)

    if not arquivos:
        raise HTTPException(status_code=400, detail="Nenhum CSV de seção ou bairro encontrado no ZIP")

    return UploadResponse(
        mensagem=f"ZIP {filename} importado com sucesso",
        linhas_importadas=total_linhas,
    )


# =============================
# GEOGRAFIA
# =============================

@app.get("/geografia/cidades", response_model=List[str])
def cidades(db: Session = Depends(get_db), perfil: Perfil = Depends(usuario_atual)):
    return geografia.listar_cidades(db)


@app.get("/geografia/bairros", response_model=GeografiaCidadeOut)
def bairros_da_cidade(
    cidade: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    admin: Perfil = Depends(exigir_admin),
):
    """Bairros da cidade com a regional de cada um."""
    return geografia.resumo_cidade(db, cidade)


@app.put("/geografia/bairros", response_model=BairroRegionalOut)
def vincular_bairro(dados: VinculoIn, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    """Atribui a regional do bairro; regional_id nulo remove o vínculo."""
    vinculo = geografia.vincular_bairro(db, dados.cidade, dados.bairro_nome, dados.regional_id)
    if vinculo is None:
        return BairroRegionalOut(bairro_nome=dados.bairro_nome.strip())
    regional = geografia.buscar_regional(db, vinculo.regional_id)
    return BairroRegionalOut(
        bairro_nome=vinculo.bairro_nome,
        regional_id=regional.id,
        regional_nome=regional.nome,
    )


@app.post("/geografia/bairros/lote", response_model=MensagemOut)
def vincular_lote(dados: VinculoLoteIn, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    total = geografia.vincular_lote(db, dados.cidade, dados.regional_id, dados.bairros)
    return MensagemOut(mensagem=f"{total} bairros mapeados com sucesso")


@app.get("/regionais", response_model=List[RegionalOut])
def listar_regionais(
    cidade: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    perfil: Perfil = Depends(usuario_atual),
):
    return geografia.listar_regionais(db, cidade)


@app.post("/regionais", response_model=RegionalOut, status_code=status.HTTP_201_CREATED)
def criar_regional(dados: RegionalIn, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    return geografia.criar_regional(db, dados)


@app.put("/regionais/{regional_id}", response_model=RegionalOut)
def atualizar_regional(
    regional_id: int, dados: RegionalUpdate, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)
):
    return geografia.atualizar_regional(db, regional_id, dados)


@app.patch("/regionais/{regional_id}/ativo", response_model=RegionalOut)
def alternar_regional(regional_id: int, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    return geografia.alternar_regional(db, regional_id)


# =============================
# USUÁRIOS
# =============================

@app.get("/usuarios", response_model=List[UsuarioOut])
def listar_usuarios(db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    return cadastros.listar_usuarios(db)


@app.post("/usuarios", response_model=UsuarioOut, status_code=status.HTTP_201_CREATED)
def criar_usuario(dados: UsuarioIn, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    return cadastros.criar_usuario(db, dados)


@app.put("/usuarios/{perfil_id}", response_model=UsuarioOut)
def atualizar_usuario(
    perfil_id: int, dados: UsuarioUpdate, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)
):
    return cadastros.atualizar_usuario(db, perfil_id, dados)


@app.patch("/usuarios/{perfil_id}/ativo", response_model=UsuarioOut)
def alternar_usuario(perfil_id: int, db: Session = Depends(get_db), admin: Perfil = Depends(exigir_admin)):
    if perfil_id == admin.id:
        raise HTTPException(400, "Não é possível desativar o próprio usuário")
    return cadastros.alternar_usuario(db, perfil_id)


# =============================
# DASHBOARD
# =============================

@app.get("/dashboard", response_model=DashboardOut)
def dashboard(db: Session = Depends(get_db), perfil: Perfil = Depends(usuario_atual)):
    """
    Painel conforme a função do usuário:
      - admin: totais gerais + todos os candidatos
      - presidente: candidatos ativos do partido
      - candidato: candidatos liberados para o usuário
    """
    partido = None
    totais = {}

    if perfil.role == "admin":
        candidatos = cadastros.listar_candidatos(db)
        totais = {
            "partidos": db.query(func.count(Partido.id)).scalar() or 0,
            "candidatos": len(candidatos),
            "usuarios": db.query(func.count(Perfil.id)).scalar() or 0,
            "linhas_secoes": db.query(func.count(CandidatoSecao.id)).scalar() or 0,
            "linhas_bairros": db.query(func.count(CandidatoBairro.id)).scalar() or 0,
        }
    elif perfil.role == "presidente":
        partido = cadastros.partido_do_presidente(db, perfil)
        if partido is None:
            raise HTTPException(404, "Acesso ao partido não encontrado")
        candidatos = sorted(
            cadastros.candidatos_acessiveis(db, perfil),
            key=lambda c: (c.numero is None, c.numero or 0, c.nome),
        )
    else:
        candidatos = cadastros.candidatos_acessiveis(db, perfil)

    linhas = cadastros.totais_por_candidato(db, candidatos)
    total_votos = sum(item["total_votos"] for item in linhas)

    return DashboardOut(
        role=perfil.role,
        usuario=UsuarioOut.model_validate(perfil),
        partido=PartidoOut.model_validate(partido) if partido else None,
        candidatos=[CandidatoVotosOut(**item) for item in linhas],
        total_votos=total_votos,
        media_por_candidato=round(total_votos / len(linhas), 2) if linhas else 0.0,
        totais=totais,
    )


# =============================
# ANÁLISE DO CANDIDATO
# =============================

def filtros_analise(
    ano: Optional[int] = Query(None),
    cidades: Optional[str] = Query(None, description="Cidades separadas por vírgula"),
    regionais: Optional[str] = Query(None, description="IDs de regionais separados por vírgula"),
    zona: Optional[str] = Query(None),
    bairro: Optional[str] = Query(None),
    busca: Optional[str] = Query(None),
    min_votos: int = Query(0, ge=0),
    top_n: int = Query(config.TOP_N_PADRAO, ge=1, le=1000),
) -> FiltrosOut:
    return FiltrosOut(
        ano=ano,
        cidades=_lista_texto(cidades),
        regionais=_lista_ids(regionais),
        zona=(zona or "").strip() or None,
        bairro=(bairro or "").strip() or None,
        busca=(busca or "").strip() or None,
        min_votos=min_votos,
        top_n=top_n,
    )


@app.get("/candidatos/{candidato_id}/analise", response_model=AnaliseOut)
def analise_candidato(
    candidato_id: int,
    filtros: FiltrosOut = Depends(filtros_analise),
    db: Session = Depends(get_db),
    perfil: Perfil = Depends(usuario_atual),
):
    """KPIs, rankings, linha do tempo e concentração de votos do candidato."""
    candidato = cadastros.verificar_acesso_candidato(db, perfil, candidato_id)
    resultado = agregacoes.analisar_candidato(db, candidato, filtros)
    resultado["candidato"] = CandidatoOut.model_validate(candidato)
    resultado["opcoes"]["regionais"] = [
        RegionalOut.model_validate(r) for r in resultado["opcoes"]["regionais"]
    ]
    return resultado


@app.get("/candidatos/{candidato_id}/analise/bairros.csv")
def exportar_bairros(
    candidato_id: int,
    filtros: FiltrosOut = Depends(filtros_analise),
    db: Session = Depends(get_db),
    perfil: Perfil = Depends(usuario_atual),
):
    candidato = cadastros.verificar_acesso_candidato(db, perfil, candidato_id)
    csv_texto, ano = agregacoes.exportar_bairros_csv(db, candidato, filtros)
    nome = f"candidato_{candidato.id}_votos_{ano or 'todos'}.csv"
    return Response(
        content=csv_texto,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{nome}"'},
    )
