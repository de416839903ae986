import io
import zipfile

import pytest


BAIRROS_2020 = "Bairro,Votos\nCentro,10\nAldeota,5\n".encode("utf-8-sig")


@pytest.fixture
def com_votos(candidato, enviar, csv_secoes, csv_bairros):
    assert enviar(candidato.id, 2024, "secao", csv_secoes).status_code == 200
    assert enviar(candidato.id, 2024, "bairro", csv_bairros).status_code == 200
    assert enviar(candidato.id, 2020, "bairro", BAIRROS_2020).status_code == 200
    return candidato


@pytest.fixture
def regional_ii(client, h_admin):
    r = client.post("/regionais", json={"nome": "Regional II", "cidade": "Fortaleza"}, headers=h_admin)
    assert r.status_code == 201
    return r.json()


# =============================
# IDENTIDADE E PERMISSÕES
# =============================

def test_estatisticas_sem_autenticacao(client, com_votos):
    r = client.get("/estatisticas")

    assert r.status_code == 200
    body = r.json()
    assert body["total_candidatos"] == 1
    assert body["total_linhas_secoes"] == 3
    assert body["total_linhas_bairros"] == 5
    assert body["anos_disponiveis"] == [2020, 2024]


def test_auth_email(client):
    r = client.get("/auth/email", params={"login": "Joao.Silva"})
    assert r.json() == {"login": "Joao.Silva", "email": "joao.silva@example.com"}

    assert client.get("/auth/email", params={"login": "a b"}).status_code == 400


def test_sem_cabecalho_de_usuario(client):
    assert client.get("/partidos").status_code == 401
    assert client.get("/partidos", headers={"X-Usuario-Id": "999"}).status_code == 401


def test_usuario_inativo(client, db, novo_perfil):
    perfil = novo_perfil("inativo", role="candidato")
    perfil.ativo = False
    db.commit()

    r = client.get("/partidos", headers={"X-Usuario-Id": str(perfil.id)})
    assert r.status_code == 403


def test_apenas_admin_cadastra(client, novo_perfil):
    perfil = novo_perfil("cand", role="candidato")
    r = client.post(
        "/partidos",
        json={"nome": "Partido", "sigla": "PT1"},
        headers={"X-Usuario-Id": str(perfil.id)},
    )
    assert r.status_code == 403


# =============================
# CADASTROS
# =============================

def test_crud_partido_e_candidato(client, h_admin):
    r = client.post("/partidos", json={"nome": "Partido Azul", "sigla": "paz", "numero": 12}, headers=h_admin)
    assert r.status_code == 201
    partido = r.json()
    assert partido["sigla"] == "PAZ"

    r = client.post(
        "/candidatos",
        json={"nome": "João", "partido_id": partido["id"], "numero": 1234},
        headers=h_admin,
    )
    assert r.status_code == 201
    candidato = r.json()
    assert candidato["partido"]["sigla"] == "PAZ"
    assert candidato["anos"] == []

    r = client.put(
        f"/candidatos/{candidato['id']}",
        json={"nome": "João Silva", "partido_id": partido["id"], "numero": 1234, "usa_regionais": False},
        headers=h_admin,
    )
    assert r.json()["nome"] == "João Silva"
    assert r.json()["usa_regionais"] is False

    r = client.patch(f"/partidos/{partido['id']}/ativo", headers=h_admin)
    assert r.json()["ativo"] is False

    assert client.get("/candidatos/999", headers=h_admin).status_code == 404


def test_usuarios(client, h_admin, admin, candidato):
    r = client.post(
        "/usuarios",
        json={"login": "maria", "nome": "Maria", "role": "candidato", "candidato_id": candidato.id},
        headers=h_admin,
    )
    assert r.status_code == 201
    usuario = r.json()
    assert usuario["email"] == "maria@example.com"

    r = client.post("/usuarios", json={"login": "MARIA", "nome": "Outra", "role": "admin"}, headers=h_admin)
    assert r.status_code == 409

    r = client.put(f"/usuarios/{usuario['id']}", json={"nome": "Maria S."}, headers=h_admin)
    assert r.json()["nome"] == "Maria S."
    assert r.json()["role"] == "candidato"

    r = client.patch(f"/usuarios/{usuario['id']}/ativo", headers=h_admin)
    assert r.json()["ativo"] is False

    assert client.patch(f"/usuarios/{admin.id}/ativo", headers=h_admin).status_code == 400
    assert len(client.get("/usuarios", headers=h_admin).json()) == 2


# =============================
# UPLOAD
# =============================

def test_upload_csv(client, h_admin, candidato, enviar, csv_secoes):
    r = enviar(candidato.id, 2024, "secao", csv_secoes)

    assert r.status_code == 200
    assert r.json()["linhas_importadas"] == 3

    anos = client.get(f"/candidatos/{candidato.id}", headers=h_admin).json()["anos"]
    assert anos == [{"ano": 2024, "votos_por_secao_file": "secao.csv", "votos_por_bairro_file": None}]


def test_upload_rejeita_arquivo_que_nao_e_csv(candidato, enviar, csv_secoes):
    r = enviar(candidato.id, 2024, "secao", csv_secoes, nome="votos.xlsx")
    assert r.status_code == 400


def test_upload_csv_ilegivel(candidato, enviar):
    r = enviar(candidato.id, 2024, "bairro", b"coluna,outra\n1,2\n")
    assert r.status_code == 400
    assert "Nenhuma coluna reconhecida" in r.json()["detail"]


def test_upload_tipo_invalido(candidato, enviar, csv_secoes):
    assert enviar(candidato.id, 2024, "zona", csv_secoes).status_code == 422


def test_upload_candidato_inexistente(enviar, csv_secoes):
    assert enviar(999, 2024, "secao", csv_secoes).status_code == 404


def test_upload_zip(client, h_admin, candidato, csv_secoes, csv_bairros):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("votos_secoes.csv", csv_secoes)
        zf.writestr("votos_bairros.csv", csv_bairros)
        zf.writestr("leia-me.txt", "ignorar")

    r = client.post(
        f"/candidatos/{candidato.id}/upload-zip",
        params={"ano": 2024, "cidade": "Fortaleza"},
        files={"file": ("votos_2024.zip", buffer.getvalue(), "application/zip")},
        headers=h_admin,
    )

    assert r.status_code == 200
    assert r.json()["linhas_importadas"] == 6


def test_upload_zip_invalido(client, h_admin, candidato):
    r = client.post(
        f"/candidatos/{candidato.id}/upload-zip",
        params={"ano": 2024},
        files={"file": ("votos.zip", b"isto nao e zip", "application/zip")},
        headers=h_admin,
    )
    assert r.status_code == 400


def test_remover_ano(client, h_admin, com_votos):
    assert client.delete(f"/candidatos/{com_votos.id}/anos/2020", headers=h_admin).status_code == 204
    assert client.delete(f"/candidatos/{com_votos.id}/anos/2020", headers=h_admin).status_code == 404

    anos = client.get(f"/candidatos/{com_votos.id}", headers=h_admin).json()["anos"]
    assert [a["ano"] for a in anos] == [2024]


# =============================
# GEOGRAFIA
# =============================

def test_mapeamento_de_bairros(client, h_admin, com_votos, regional_ii):
    r = client.put(
        "/geografia/bairros",
        json={"cidade": "Fortaleza", "bairro_nome": "Meireles", "regional_id": regional_ii["id"]},
        headers=h_admin,
    )
    assert r.json() == {"bairro_nome": "Meireles", "regional_id": regional_ii["id"], "regional_nome": "Regional II"}

    resumo = client.get("/geografia/bairros", params={"cidade": "Fortaleza"}, headers=h_admin).json()
    assert resumo["total_bairros"] == 3
    assert resumo["vinculados"] == 1

    r = client.put(
        "/geografia/bairros",
        json={"cidade": "Fortaleza", "bairro_nome": "Meireles", "regional_id": None},
        headers=h_admin,
    )
    assert r.json()["regional_id"] is None

    resumo = client.get("/geografia/bairros", params={"cidade": "Fortaleza"}, headers=h_admin).json()
    assert resumo["vinculados"] == 0

    assert client.get("/geografia/cidades", headers=h_admin).json() == ["Fortaleza"]


def test_mapeamento_rejeita_regional_de_outra_cidade(client, h_admin, regional_ii):
    r = client.put(
        "/geografia/bairros",
        json={"cidade": "Caucaia", "bairro_nome": "Centro", "regional_id": regional_ii["id"]},
        headers=h_admin,
    )
    assert r.status_code == 400


# =============================
# ANÁLISE
# =============================

def test_analise_padrao_usa_ultimo_ano(client, h_admin, com_votos):
    r = client.get(f"/candidatos/{com_votos.id}/analise", headers=h_admin)

    assert r.status_code == 200
    body = r.json()
    assert body["filtros"]["ano"] == 2024
    assert body["opcoes"]["anos"] == [2020, 2024]
    assert body["opcoes"]["cidades"] == ["Fortaleza"]
    assert body["opcoes"]["zonas"] == ["1", "2"]

    assert body["ranking_bairros"] == [
        {"chave": "Meireles", "votos": 120},
        {"chave": "Centro", "votos": 80},
        {"chave": "Aldeota", "votos": 40},
    ]
    assert body["ranking_zonas"] == [{"chave": "1", "votos": 80}, {"chave": "2", "votos": 0}]
    assert body["ranking_secoes"][0] == {"zona": "1", "secao": "10", "bairro": "Centro", "votos": 50}
    assert body["ranking_cidades"] == [{"chave": "Fortaleza", "votos": 240}]
    assert body["linha_do_tempo"] == [{"ano": 2020, "votos": 15}, {"ano": 2024, "votos": 240}]

    kpis = body["kpis"]
    assert kpis["votos_total"] == 240
    assert kpis["total_bairros"] == 3
    assert kpis["total_secoes"] == 3
    assert kpis["total_cidades"] == 1
    assert kpis["top_bairro"] == "Meireles"
    assert kpis["media_por_bairro"] == 80.0
    assert kpis["concentracao_top20"] == 50.0
    assert body["concentracao"][-1]["cumul_perc"] == 100.0


def test_analise_por_regional(client, h_admin, com_votos, regional_ii):
    r = client.post(
        "/geografia/bairros/lote",
        json={"cidade": "Fortaleza", "regional_id": regional_ii["id"], "bairros": ["Meireles", "Aldeota"]},
        headers=h_admin,
    )
    assert r.status_code == 200

    body = client.get(f"/candidatos/{com_votos.id}/analise", headers=h_admin).json()
    assert body["ranking_regionais"] == [
        {"regional_id": regional_ii["id"], "chave": "Regional II", "votos": 160},
        {"regional_id": None, "chave": "Sem Regional", "votos": 80},
    ]
    assert [reg["nome"] for reg in body["opcoes"]["regionais"]] == ["Regional II"]

    body = client.get(
        f"/candidatos/{com_votos.id}/analise",
        params={"regionais": str(regional_ii["id"])},
        headers=h_admin,
    ).json()
    assert [b["chave"] for b in body["ranking_bairros"]] == ["Meireles", "Aldeota"]
    assert body["kpis"]["votos_total"] == 160
    assert body["ranking_zonas"] == [{"chave": "2", "votos": 0}]


def test_analise_min_votos_top_n_e_busca(client, h_admin, com_votos):
    body = client.get(
        f"/candidatos/{com_votos.id}/analise",
        params={"min_votos": 50, "top_n": 1},
        headers=h_admin,
    ).json()
    assert body["ranking_bairros"] == [{"chave": "Meireles", "votos": 120}]
    assert body["kpis"]["votos_total"] == 240

    body = client.get(
        f"/candidatos/{com_votos.id}/analise",
        params={"busca": "cen"},
        headers=h_admin,
    ).json()
    assert body["ranking_bairros"] == [{"chave": "Centro", "votos": 80}]
    assert body["linha_do_tempo"] == [{"ano": 2020, "votos": 15}, {"ano": 2024, "votos": 240}]

    body = client.get(
        f"/candidatos/{com_votos.id}/analise", params={"ano": 2020}, headers=h_admin
    ).json()
    assert body["kpis"]["votos_total"] == 15


def test_analise_parametros_invalidos(client, h_admin, com_votos):
    url = f"/candidatos/{com_votos.id}/analise"
    assert client.get(url, params={"regionais": "abc"}, headers=h_admin).status_code == 400
    assert client.get(url, params={"min_votos": -1}, headers=h_admin).status_code == 422
    assert client.get(url, params={"top_n": 0}, headers=h_admin).status_code == 422


def test_analise_sem_dados(client, h_admin, candidato):
    body = client.get(f"/candidatos/{candidato.id}/analise", headers=h_admin).json()

    assert body["filtros"]["ano"] is None
    assert body["ranking_bairros"] == []
    assert body["kpis"]["votos_total"] == 0
    assert body["kpis"]["top_bairro"] == "-"


def test_exportar_csv(client, h_admin, com_votos):
    r = client.get(f"/candidatos/{com_votos.id}/analise/bairros.csv", headers=h_admin)

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert f"candidato_{com_votos.id}_votos_2024.csv" in r.headers["content-disposition"]
    linhas = r.text.strip().splitlines()
    assert linhas[0] == "Bairro,Cidade,Votos,Percentual"
    assert linhas[1].startswith("Meireles,Fortaleza,120,")
    assert len(linhas) == 4


# =============================
# DASHBOARD E ACESSO POR FUNÇÃO
# =============================

def test_dashboard_admin(client, h_admin, com_votos):
    body = client.get("/dashboard", headers=h_admin).json()

    assert body["role"] == "admin"
    assert body["totais"]["candidatos"] == 1
    assert body["totais"]["linhas_bairros"] == 5
    assert body["total_votos"] == 255
    assert body["candidatos"][0]["sg_partido"] == "PEX"


def test_dashboard_presidente(client, h_admin, partido, com_votos):
    r = client.post(
        "/usuarios",
        json={"login": "pres", "nome": "Presidente", "role": "presidente", "partido_id": partido.id},
        headers=h_admin,
    )
    h_pres = {"X-Usuario-Id": str(r.json()["id"])}

    body = client.get("/dashboard", headers=h_pres).json()

    assert body["role"] == "presidente"
    assert body["partido"]["sigla"] == "PEX"
    assert [c["nome"] for c in body["candidatos"]] == ["Maria Souza"]
    assert body["media_por_candidato"] == 255.0
    assert client.get("/usuarios", headers=h_pres).status_code == 403


def test_presidente_sem_partido(client, novo_perfil):
    perfil = novo_perfil("pres", role="presidente")
    r = client.get("/dashboard", headers={"X-Usuario-Id": str(perfil.id)})
    assert r.status_code == 404


def test_candidato_so_ve_o_proprio_painel(client, h_admin, partido, com_votos):
    outro = client.post(
        "/candidatos", json={"nome": "Outro", "partido_id": partido.id}, headers=h_admin
    ).json()
    r = client.post(
        "/usuarios",
        json={"login": "maria", "nome": "Maria", "role": "candidato", "candidato_id": com_votos.id},
        headers=h_admin,
    )
    h_cand = {"X-Usuario-Id": str(r.json()["id"])}

    body = client.get("/dashboard", headers=h_cand).json()
    assert [c["id"] for c in body["candidatos"]] == [com_votos.id]
    assert [c["id"] for c in client.get("/candidatos", headers=h_cand).json()] == [com_votos.id]

    assert client.get(f"/candidatos/{com_votos.id}/analise", headers=h_cand).status_code == 200
    assert client.get(f"/candidatos/{outro['id']}/analise", headers=h_cand).status_code == 403
    assert client.get(f"/candidatos/{outro['id']}/analise/bairros.csv", headers=h_cand).status_code == 403


def test_exportar_csv_usa_o_mesmo_ano_padrao_da_analise(client, h_admin, candidato, enviar, csv_secoes):
    assert enviar(candidato.id, 2020, "bairro", BAIRROS_2020).status_code == 200
    assert enviar(candidato.id, 2024, "secao", csv_secoes).status_code == 200

    analise = client.get(f"/candidatos/{candidato.id}/analise", headers=h_admin).json()
    r = client.get(f"/candidatos/{candidato.id}/analise/bairros.csv", headers=h_admin)

    assert analise["filtros"]["ano"] == 2024
    assert f"candidato_{candidato.id}_votos_2024.csv" in r.headers["content-disposition"]
    assert r.text.strip().splitlines() == ["Bairro,Cidade,Votos,Percentual"]


def test_upload_zip_com_arquivo_ruim_nao_altera_nada(client, h_admin, com_votos):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("a_secoes.csv", "Zona,Seção,Votos\n9,99,1\n")
        zf.writestr("b_bairros.csv", "coluna,outra\n1,2\n")

    r = client.post(
        f"/candidatos/{com_votos.id}/upload-zip",
        params={"ano": 2024, "cidade": "Fortaleza"},
        files={"file": ("votos_2024.zip", buffer.getvalue(), "application/zip")},
        headers=h_admin,
    )

    assert r.status_code == 400
    assert "b_bairros.csv" in r.json()["detail"]
    body = client.get("/estatisticas").json()
    assert body["total_linhas_secoes"] == 3
    assert body["total_linhas_bairros"] == 5
