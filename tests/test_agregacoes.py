import pandas as pd

from agregacoes import (
    anexar_regional,
    concentracao_top20,
    curva_concentracao,
    filtrar_bairros,
    linha_do_tempo,
    ranking,
    ranking_regionais,
    ranking_secoes,
    _ordem_natural,
)
from schemas import FiltrosOut


def _bairros():
    return pd.DataFrame({
        "ano": [2024, 2024, 2024, 2024, 2020],
        "cidade": ["Fortaleza", "Fortaleza", "Fortaleza", "Caucaia", "Fortaleza"],
        "bairro_nome": ["Centro", "Aldeota", "Centro", "Centro", "Centro"],
        "votos": [10, 30, 25, 5, 7],
        "percentual_votos": [0.1, 0.3, 0.25, 0.05, 0.07],
    })


def test_ranking_soma_e_ordena_decrescente():
    df = pd.DataFrame({"bairro": ["A", "B", "A", "C"], "votos": [10, 30, 25, 5]})

    resultado = ranking(df, "bairro")

    assert resultado == [
        {"chave": "A", "votos": 35},
        {"chave": "B", "votos": 30},
        {"chave": "C", "votos": 5},
    ]
    votos = [r["votos"] for r in resultado]
    assert votos == sorted(votos, reverse=True)


def test_ranking_min_votos_e_top_n():
    df = pd.DataFrame({"bairro": ["A", "B", "C", "D"], "votos": [50, 40, 9, 30]})

    assert [r["chave"] for r in ranking(df, "bairro", min_votos=10)] == ["A", "B", "D"]
    assert [r["chave"] for r in ranking(df, "bairro", min_votos=10, top_n=2)] == ["A", "B"]


def test_ranking_empate_ordena_por_chave():
    df = pd.DataFrame({"zona": ["9", "3", "5"], "votos": [10, 10, 20]})
    assert [r["chave"] for r in ranking(df, "zona")] == ["5", "3", "9"]


def test_ranking_vazio():
    assert ranking(pd.DataFrame({"bairro": [], "votos": []}), "bairro") == []


def test_ranking_secoes_agrupa_zona_e_secao():
    df = pd.DataFrame({
        "zona": ["1", "1", "2"],
        "secao": ["10", "10", "20"],
        "bairro": ["Centro", "Centro", "Aldeota"],
        "votos": [5, 6, 20],
    })

    assert ranking_secoes(df) == [
        {"zona": "2", "secao": "20", "bairro": "Aldeota", "votos": 20},
        {"zona": "1", "secao": "10", "bairro": "Centro", "votos": 11},
    ]
    assert len(ranking_secoes(df, top_n=1)) == 1


def test_curva_concentracao_termina_em_100():
    itens = [{"chave": str(i), "votos": v} for i, v in enumerate([50, 30, 10, 5, 5])]

    curva = curva_concentracao(itens)

    assert [c["cumul_perc"] for c in curva] == [50.0, 80.0, 90.0, 95.0, 100.0]
    assert [c["idx"] for c in curva] == [1, 2, 3, 4, 5]


def test_concentracao_top20():
    itens = [{"chave": str(i), "votos": v} for i, v in enumerate([50, 30, 10, 5, 5])]
    assert concentracao_top20(itens) == 50.0
    assert concentracao_top20([]) == 0.0


def test_linha_do_tempo_por_ano():
    assert linha_do_tempo(_bairros()) == [
        {"ano": 2020, "votos": 7},
        {"ano": 2024, "votos": 70},
    ]


def test_anexar_regional_respeita_cidade():
    mapa = {("Fortaleza", "Centro"): (1, "Regional I")}

    df = anexar_regional(_bairros(), "bairro_nome", mapa)

    assert list(df["regional"]) == [
        "Regional I", "Sem Regional", "Regional I", "Sem Regional", "Regional I",
    ]


def test_filtrar_bairros():
    df = anexar_regional(_bairros(), "bairro_nome", {("Fortaleza", "Aldeota"): (2, "Regional II")})

    por_cidade = filtrar_bairros(df, FiltrosOut(ano=2024, cidades=["Fortaleza"]))
    assert int(por_cidade["votos"].sum()) == 65

    por_regional = filtrar_bairros(df, FiltrosOut(ano=2024, regionais=[2]))
    assert list(por_regional["bairro_nome"]) == ["Aldeota"]

    por_busca = filtrar_bairros(df, FiltrosOut(ano=2024, busca="CEN"))
    assert set(por_busca["cidade"]) == {"Fortaleza", "Caucaia"}
    assert int(por_busca["votos"].sum()) == 40


def test_ranking_regionais_separa_mesmo_nome_em_cidades_diferentes():
    df = pd.DataFrame({
        "cidade": ["Fortaleza", "Caucaia", "Fortaleza"],
        "bairro_nome": ["Centro", "Icaraí", "Benfica"],
        "votos": [100, 50, 7],
    })
    mapa = {("Fortaleza", "Centro"): (1, "Norte"), ("Caucaia", "Icaraí"): (2, "Norte")}

    resultado = ranking_regionais(anexar_regional(df, "bairro_nome", mapa))

    assert resultado == [
        {"regional_id": 1, "chave": "Norte", "votos": 100},
        {"regional_id": 2, "chave": "Norte", "votos": 50},
        {"regional_id": None, "chave": "Sem Regional", "votos": 7},
    ]
    assert ranking_regionais(anexar_regional(df, "bairro_nome", mapa), min_votos=60) == [
        {"regional_id": 1, "chave": "Norte", "votos": 100},
    ]


def test_ordem_natural_de_zonas():
    assert sorted(["10", "2", "²", "A"], key=_ordem_natural) == ["2", "10", "A", "²"]
