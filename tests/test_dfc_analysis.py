import json

import pytest

from cortex.services.dfc import DfcData, DfcNode, load_dfc
from cortex.services.dfc_analysis import (
    CHAT_APOLOGY,
    FALLBACK_RECOMMENDATIONS,
    analyze_dfc,
    build_analysis_payload,
    chat_with_dfc,
    classify_series_trend,
    format_currency,
    summarize_dfc,
)
from cortex.services.dfc_metrics import CRESCENTE, ESTAVEL
from cortex.services.llm import LLMError
from cortex.services.secure_query import SecureQueryResult, execute_secure_query
from tests.fakes import FakeLLM


def test_format_currency_brazilian_style():
    assert format_currency(1234.56) == "R$ 1.234,56"
    assert format_currency(-1234.56) == "-R$ 1.234,56"
    assert format_currency(1234.5) == "R$ 1.234,50"
    assert format_currency(0) == "R$ 0,00"
    assert format_currency(1000000) == "R$ 1.000.000,00"


def test_series_trend_compares_first_and_last_months():
    assert classify_series_trend([100]) == ESTAVEL
    assert classify_series_trend([100, 100, 100, 120, 120, 120]) == CRESCENTE
    assert classify_series_trend([0, 0, 50]) == CRESCENTE
    assert classify_series_trend([0, 0, 0]) == ESTAVEL


def test_summarize_dfc(db_session):
    summary = summarize_dfc(load_dfc(db_session, "2024-01", "2024-03"))
    assert summary.total_receitas == 4000
    assert summary.total_despesas == 1900
    assert summary.resultado_liquido == 2100
    assert summary.melhor_mes.mes == "2024-02"
    assert summary.pior_mes.mes == "2024-01"
    assert summary.margem_media == pytest.approx((40 + 60 + 800 / 15) / 3)
    assert summary.tendencia_receitas == CRESCENTE

    body = summary.to_dict()
    assert body["periodo"] == {"inicio": "2024-01", "fim": "2024-03", "totalMeses": 3}
    assert body["mesComMelhorResultado"] == "2024-02"


def test_analysis_payload_is_formatted(db_session):
    payload = build_analysis_payload(summarize_dfc(load_dfc(db_session, "2024-01", "2024-03")))
    assert payload["resumoFinanceiro"]["totalReceitas"] == "R$ 4.000,00"
    assert payload["evolucaoMensal"][0]["margem"] == "40.0%"
    assert payload["principaisCategorias"][0]["id"] == "03.01.01"


def test_analyze_dfc_uses_model_answer(db_session):
    llm = FakeLLM(json_replies=[{"resumoExecutivo": "Tudo certo.", "insights": [{"tipo": "alerta"}], "recomendacoes": ["x"]}])
    result = analyze_dfc(load_dfc(db_session, "2024-01", "2024-03"), llm)
    assert result["resumoExecutivo"] == "Tudo certo."
    assert result["insights"] == [{"tipo": "alerta"}]
    assert result["metricas"]["mesComPiorResultado"] == "2024-01"
    assert "R$ 4.000,00" in llm.calls[0]["messages"][1]["content"]


def test_analyze_dfc_falls_back_when_model_fails(db_session):
    llm = FakeLLM(json_replies=[LLMError("Resposta vazia da API")])
    result = analyze_dfc(load_dfc(db_session, "2024-01", "2024-03"), llm)
    assert result["recomendacoes"] == FALLBACK_RECOMMENDATIONS
    assert "R$ 4.000,00" in result["resumoExecutivo"]
    [insight] = result["insights"]
    assert insight["tipo"] == "tendencia"
    assert insight["titulo"] == "Fee Mensal em alta"


def test_chat_without_query_makes_single_call(db_session):
    llm = FakeLLM(json_replies=[{"resposta": "Receita de R$ 4.000,00.", "dadosReferenciados": {"meses": ["2024-01"]}}])
    result = chat_with_dfc(load_dfc(db_session, "2024-01", "2024-03"), "Quanto faturamos?", [], llm)
    assert result.to_dict() == {"resposta": "Receita de R$ 4.000,00.", "dadosReferenciados": {"meses": ["2024-01"]}}
    assert len(llm.calls) == 1


def test_chat_runs_requested_query_once_and_answers_again(db_session):
    llm = FakeLLM(
        json_replies=[
            {"resposta": "Vou consultar.", "consultaSql": "SELECT COUNT(*) AS n FROM dfc_entries"},
            {"resposta": "Há 9 lançamentos."},
        ]
    )
    queries = []

    def runner(query):
        queries.append(query)
        return execute_secure_query(db_session, query)

    historico = [{"role": "user", "content": "oi"}, {"role": "assistant", "content": "olá"}]
    result = chat_with_dfc(load_dfc(db_session, "2024-01", "2024-03"), "Quantos lançamentos?", historico, llm, runner)

    assert result.resposta == "Há 9 lançamentos."
    assert queries == ["SELECT COUNT(*) AS n FROM dfc_entries"]
    second = llm.calls[1]["messages"]
    assert [m["role"] for m in second[1:3]] == ["user", "assistant"]
    assert '"n": 9' in second[-1]["content"]


def test_chat_reports_rejected_query_to_model(db_session):
    llm = FakeLLM(json_replies=[{"resposta": "x", "consultaSql": "DELETE FROM dfc_entries"}, {"resposta": "Não posso."}])
    result = chat_with_dfc(
        load_dfc(db_session, "2024-01", "2024-03"),
        "Apague tudo",
        [],
        llm,
        lambda q: execute_secure_query(db_session, q),
    )
    assert result.resposta == "Não posso."
    assert "Apenas consultas SELECT" in llm.calls[1]["messages"][-1]["content"]


def test_chat_returns_apology_on_failure(db_session):
    llm = FakeLLM(json_replies=[LLMError("JSON inválido")])
    result = chat_with_dfc(load_dfc(db_session, "2024-01", "2024-03"), "?", [], llm)
    assert result.to_dict() == {"resposta": CHAT_APOLOGY}


def test_chat_truncates_query_rows_in_prompt(db_session):
    rows = [{"i": i} for i in range(80)]
    llm = FakeLLM(json_replies=[{"resposta": "x", "consultaSql": "SELECT i FROM t"}, {"resposta": "ok"}])
    chat_with_dfc(
        load_dfc(db_session, "2024-01", "2024-03"),
        "?",
        [],
        llm,
        lambda q: SecureQueryResult(success=True, data=rows, row_count=len(rows)),
    )
    feedback = llm.calls[1]["messages"][-1]["content"]
    shown = json.loads(feedback.split(":\n", 1)[1].split("\n\n", 1)[0])
    assert len(shown) == 50
    assert "80 linhas" in feedback


def _spiky_dfc():
    meses = [f"2024-{m:02d}" for m in range(1, 9)]

    def leaf(categoria_id, nome, values):
        return DfcNode(categoria_id, nome, 2, True, {m: v for m, v in zip(meses, values)})

    nodes = [
        # z = sqrt(7) ~ 2.65
        leaf("04.01", "Marketing", [100] * 7 + [500]),
        # z = -2.0 exactly: stays "media"
        leaf("04.02", "Eventos", [100] * 4 + [10]),
        # z = sqrt(3) ~ 1.73: anomalous, but ranked fourth
        leaf("04.03", "Viagens", [100] * 3 + [400]),
        # z = sqrt(5) ~ 2.24
        leaf("04.04", "Software", [100] * 5 + [700]),
    ]
    return DfcData(nodes=nodes, meses=meses)


def test_fallback_keeps_three_strongest_anomalies_with_severity():
    dfc = _spiky_dfc()
    assert len(summarize_dfc(dfc).anomalias) == 4

    result = analyze_dfc(dfc, FakeLLM(json_replies=[LLMError("Resposta vazia da API")]))
    anomalias = [i for i in result["insights"] if i["tipo"] == "anomalia"]

    assert [i["categoria"] for i in anomalias] == ["Marketing", "Software", "Eventos"]
    assert [i["severidade"] for i in anomalias] == ["alta", "alta", "media"]
    assert [i["mes"] for i in anomalias] == ["2024-08", "2024-06", "2024-05"]
    assert "2.6 desvios acima da média" in anomalias[0]["descricao"]
    assert "2.0 desvios abaixo da média" in anomalias[2]["descricao"]
    assert anomalias[2]["metricas"] == ["R$ 10,00"]
    assert anomalias[0]["titulo"] == "Variação em Marketing"
