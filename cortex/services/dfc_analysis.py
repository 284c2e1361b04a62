import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from cortex.core.config import get_settings
from cortex.services.dfc import DfcData
from cortex.services.dfc_metrics import (
    CRESCENTE,
    ESTAVEL,
    CategoryMetrics,
    MonthlyData,
    build_monthly_series,
    classify_change,
    compute_category_metrics,
    find_top_categories,
)
from cortex.services.llm import LLMClient
from cortex.services.secure_query import SecureQueryResult

logger = logging.getLogger(__name__)

ANALYSIS_MAX_TOKENS = 4096
CHAT_MAX_TOKENS = 2048
ANALYSIS_TOP_CATEGORIES = 15
CHAT_TOP_CATEGORIES = 20
MAX_ANOMALIES = 10
MAX_QUERY_ROWS_IN_PROMPT = 50

CHAT_APOLOGY = (
    "Desculpe, não consegui processar sua pergunta. Por favor, tente novamente ou reformule sua pergunta."
)

QueryRunner = Callable[[str], SecureQueryResult]


def format_currency(value: float) -> str:
    formatted = f"{abs(value or 0):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    sign = "-" if (value or 0) < 0 and formatted != "0,00" else ""
    return f"{sign}R$ {formatted}"


def format_percent(value: float) -> str:
    return f"{value:.1f}%"


@dataclass
class RankedAnomaly:
    categoria_id: str
    categoria: str
    mes: str
    valor: float
    desvio: float


@dataclass
class DfcSummary:
    meses: list[str]
    series: list[MonthlyData]
    metrics: list[CategoryMetrics]
    total_receitas: float
    total_despesas: float
    margem_media: float
    tendencia_receitas: str
    tendencia_despesas: str
    melhor_mes: MonthlyData | None
    pior_mes: MonthlyData | None
    anomalias: list[RankedAnomaly] = field(default_factory=list)

    @property
    def resultado_liquido(self) -> float:
        return self.total_receitas - self.total_despesas

    @property
    def periodo_inicio(self) -> str:
        return self.meses[0] if self.meses else ""

    @property
    def periodo_fim(self) -> str:
        return self.meses[-1] if self.meses else ""

    def metricas(self) -> dict:
        return {
            "margemMedia": self.margem_media,
            "tendenciaReceitas": self.tendencia_receitas,
            "tendenciaDespesas": self.tendencia_despesas,
            "mesComMelhorResultado": self.melhor_mes.mes if self.melhor_mes else "",
            "mesComPiorResultado": self.pior_mes.mes if self.pior_mes else "",
        }

    def to_dict(self) -> dict:
        return {
            "periodo": {"inicio": self.periodo_inicio, "fim": self.periodo_fim, "totalMeses": len(self.meses)},
            "totalReceitas": self.total_receitas,
            "totalDespesas": self.total_despesas,
            "resultadoLiquido": self.resultado_liquido,
            **self.metricas(),
            "anomalias": [
                {"categoriaId": a.categoria_id, "categoria": a.categoria, "mes": a.mes, "valor": a.valor, "desvio": a.desvio}
                for a in self.anomalias
            ],
        }


def classify_series_trend(values: list[float]) -> str:
    """Compare the average of the first and last few months (up to three)."""
    n = len(values)
    if n < 2:
        return ESTAVEL
    k = max(1, min(3, n // 2))
    first = sum(values[:k]) / k
    last = sum(values[-k:]) / k
    if first == 0:
        return CRESCENTE if last > 0 else ESTAVEL
    return classify_change(first, last)


def _rank_anomalies(metrics: list[CategoryMetrics]) -> list[RankedAnomaly]:
    ranked = [
        RankedAnomaly(categoria_id=m.categoria_id, categoria=m.categoria_nome, mes=a.mes, valor=a.valor, desvio=a.desvio)
        for m in metrics
        for a in m.anomalias
    ]
    ranked.sort(key=lambda a: abs(a.desvio), reverse=True)
    return ranked[:MAX_ANOMALIES]


def summarize_dfc(dfc: DfcData) -> DfcSummary:
    series = build_monthly_series(dfc)
    metrics = compute_category_metrics(dfc.nodes, dfc.meses)

    melhor = pior = None
    for m in series:
        if melhor is None or m.resultado > melhor.resultado:
            melhor = m
        if pior is None or m.resultado < pior.resultado:
            pior = m

    return DfcSummary(
        meses=list(dfc.meses),
        series=series,
        metrics=metrics,
        total_receitas=sum(m.receitas for m in series),
        total_despesas=sum(m.despesas for m in series),
        margem_media=sum(m.margem for m in series) / len(series) if series else 0,
        tendencia_receitas=classify_series_trend([m.receitas for m in series]),
        tendencia_despesas=classify_series_trend([m.despesas for m in series]),
        melhor_mes=melhor,
        pior_mes=pior,
        anomalias=_rank_anomalies(metrics),
    )


def _monthly_payload(series: list[MonthlyData]) -> list[dict]:
    return [
        {
            "mes": m.mes,
            "receitas": format_currency(m.receitas),
            "despesas": format_currency(m.despesas),
            "resultado": format_currency(m.resultado),
            "margem": format_percent(m.margem),
        }
        for m in series
    ]


def _month_highlight(month: MonthlyData | None) -> dict:
    return {"mes": month.mes if month else None, "resultado": format_currency(month.resultado if month else 0)}


def _desvio_label(desvio: float) -> str:
    if desvio > 0:
        return f"+{desvio:.1f} desvios acima da média"
    return f"{desvio:.1f} desvios abaixo da média"


def build_analysis_payload(summary: DfcSummary) -> dict:
    top = find_top_categories(summary.metrics, ANALYSIS_TOP_CATEGORIES)
    return {
        "periodo": {"inicio": summary.periodo_inicio, "fim": summary.periodo_fim, "totalMeses": len(summary.meses)},
        "resumoFinanceiro": {
            "totalReceitas": format_currency(summary.total_receitas),
            "totalDespesas": format_currency(summary.total_despesas),
            "resultadoLiquido": format_currency(summary.resultado_liquido),
            "margemMedia": format_percent(summary.margem_media),
            "tendenciaReceitas": summary.tendencia_receitas,
            "tendenciaDespesas": summary.tendencia_despesas,
        },
        "evolucaoMensal": _monthly_payload(summary.series),
        "principaisCategorias": [
            {
                "nome": c.categoria_nome,
                "id": c.categoria_id,
                "total": format_currency(c.total),
                "media": format_currency(c.media_by_month),
                "tendencia": c.tendencia,
                "anomalias": len(c.anomalias),
            }
            for c in top
        ],
        "anomaliasDetectadas": [
            {"categoria": a.categoria, "mes": a.mes, "valor": format_currency(a.valor), "desvio": _desvio_label(a.desvio)}
            for a in summary.anomalias
        ],
        "melhorMes": _month_highlight(summary.melhor_mes),
        "piorMes": _month_highlight(summary.pior_mes),
    }


ANALYSIS_SYSTEM_PROMPT = """Você é um analista financeiro especializado em fluxo de caixa para agências de marketing digital brasileiras. Analise os dados do DFC (Demonstrativo de Fluxo de Caixa) fornecidos e gere insights acionáveis.

Forneça uma análise em português brasileiro, focando em:
1. Padrões de receita e despesa
2. Anomalias significativas (gastos ou receitas fora do padrão)
3. Tendências que impactam a margem
4. Oportunidades de otimização
5. Alertas sobre riscos financeiros

Responda APENAS com JSON válido no seguinte formato:
{
  "resumoExecutivo": "Resumo de 2-3 frases sobre a situação financeira geral",
  "insights": [
    {
      "tipo": "anomalia|tendencia|oportunidade|alerta",
      "titulo": "Título curto do insight",
      "descricao": "Explicação detalhada do insight com contexto",
      "metricas": ["Métrica relevante 1", "Métrica relevante 2"],
      "severidade": "baixa|media|alta",
      "categoria": "Nome da categoria afetada (se aplicável)",
      "mes": "Mês específico (se aplicável, formato YYYY-MM)"
    }
  ],
  "recomendacoes": ["Recomendação acionável 1", "Recomendação acionável 2", "Recomendação acionável 3"]
}

Gere entre 4 e 8 insights relevantes, priorizando os mais impactantes para o negócio."""

FALLBACK_RECOMMENDATIONS = [
    "Monitore as categorias com anomalias identificadas",
    "Analise as tendências de crescimento de despesas",
    "Revise os meses com margens abaixo da média",
]


def fallback_analysis(summary: DfcSummary) -> dict:
    insights = []
    for a in summary.anomalias[:3]:
        direcao = "acima" if a.desvio > 0 else "abaixo"
        insights.append(
            {
                "tipo": "anomalia",
                "titulo": f"Variação em {a.categoria}",
                "descricao": (
                    f'No mês {a.mes}, a categoria "{a.categoria}" apresentou valor de {format_currency(a.valor)}, '
                    f"que está {abs(a.desvio):.1f} desvios {direcao} da média."
                ),
                "metricas": [format_currency(a.valor)],
                "severidade": "alta" if abs(a.desvio) > 2 else "media",
                "categoria": a.categoria,
                "mes": a.mes,
            }
        )

    top = find_top_categories(summary.metrics, ANALYSIS_TOP_CATEGORIES)
    for c in [c for c in top if c.tendencia != ESTAVEL][:2]:
        insights.append(
            {
                "tipo": "tendencia",
                "titulo": f"{c.categoria_nome} em {'alta' if c.tendencia == CRESCENTE else 'queda'}",
                "descricao": (
                    f'A categoria "{c.categoria_nome}" apresenta tendência {c.tendencia} ao longo do período '
                    f"analisado, com total de {format_currency(c.total)}."
                ),
                "metricas": [format_currency(c.total), f"Média: {format_currency(c.media_by_month)}"],
                "severidade": "media",
                "categoria": c.categoria_nome,
            }
        )

    resumo = (
        f"Período analisado: {summary.periodo_inicio} a {summary.periodo_fim}. "
        f"Total de receitas: {format_currency(summary.total_receitas)}, "
        f"despesas: {format_currency(summary.total_despesas)}. "
        f"Margem média: {format_percent(summary.margem_media)}."
    )
    return {
        "resumoExecutivo": resumo,
        "insights": insights,
        "recomendacoes": list(FALLBACK_RECOMMENDATIONS),
        "metricas": summary.metricas(),
    }


def analyze_dfc(dfc: DfcData, llm: LLMClient) -> dict:
    summary = summarize_dfc(dfc)
    payload = build_analysis_payload(summary)
    messages = [
        {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
        {"role": "user", "content": f"Analise os seguintes dados do DFC:\n\n{json.dumps(payload, ensure_ascii=False, indent=2)}"},
    ]
    try:
        result = llm.complete_json(messages, model=get_settings().openai_dfc_model, max_tokens=ANALYSIS_MAX_TOKENS)
    except Exception:
        logger.exception("DFC analysis via LLM failed; returning deterministic analysis")
        return fallback_analysis(summary)

    return {
        "resumoExecutivo": result.get("resumoExecutivo") or "Análise não disponível",
        "insights": result.get("insights") or [],
        "recomendacoes": result.get("recomendacoes") or [],
        "metricas": summary.metricas(),
    }


@dataclass
class DfcChatResponse:
    resposta: str
    dados_referenciados: dict | None = None

    def to_dict(self) -> dict:
        payload: dict = {"resposta": self.resposta}
        if self.dados_referenciados:
            payload["dadosReferenciados"] = self.dados_referenciados
        return payload


SCHEMA_DESCRIPTION = """TABELAS DISPONÍVEIS:

1. clients (Clientes)
- id: chave primária
- nome: nome do cliente
- cnpj: identificador fiscal, chave de integração
- status: status operacional (ativo, pausado, cancelado)
- cluster: segmentação do cliente
- responsavel: CS responsável

2. contracts (Contratos)
- id: identificador do contrato
- client_id: relaciona com clients.id
- servico: serviço contratado
- status: ativo, pausado, cancelado
- valor_recorrente: valor mensal
- valor_pontual: cobrança única
- squad: squad responsável
- data_inicio, data_encerramento: vigência

3. dfc_entries (Parcelas do fluxo de caixa) - PRINCIPAL PARA DFC
- id: identificador da parcela
- categoria_id: categoria DFC (caminho com pontos, ex. 04.02.01)
- tipo: RECEITA ou DESPESA
- descricao: descrição do evento financeiro
- valor_pago: valor efetivamente pago
- data_vencimento: data da parcela
- status: status da parcela
- client_id: relaciona com clients.id

4. dfc_categories (Plano de contas)
- categoria_id, nome, tipo"""

CHAT_INSTRUCTIONS = """=== INSTRUÇÕES ===
- Responda perguntas sobre o fluxo de caixa de forma clara e objetiva em português brasileiro
- Use os dados fornecidos para embasar suas respostas
- Formate valores em reais brasileiros (R$)
- Seja conciso mas informativo
- Se a pergunta não puder ser respondida com os dados disponíveis, explique o que está faltando
- Quando mencionar categorias ou meses específicos, cite os valores exatos dos dados
- Se precisar de dados que não estão no contexto, preencha "consultaSql" com UMA consulta SELECT.
  Consultas contendo DROP, DELETE, UPDATE, INSERT, ALTER, TRUNCATE, CREATE, GRANT ou REVOKE
  (inclusive como parte de nomes de colunas, como created_at) são recusadas.

Responda APENAS com JSON válido:
{
  "resposta": "Sua resposta detalhada aqui",
  "dadosReferenciados": {
    "categorias": ["categoria1", "categoria2"],
    "meses": ["2024-01", "2024-02"],
    "valores": ["R$ 10.000,00", "R$ 20.000,00"]
  },
  "consultaSql": null
}"""


def build_chat_context(summary: DfcSummary) -> dict:
    top = find_top_categories(summary.metrics, CHAT_TOP_CATEGORIES)
    return {
        "periodo": {"inicio": summary.periodo_inicio, "fim": summary.periodo_fim, "meses": summary.meses},
        "resumoFinanceiro": {
            "totalReceitas": format_currency(summary.total_receitas),
            "totalDespesas": format_currency(summary.total_despesas),
            "resultadoLiquido": format_currency(summary.resultado_liquido),
            "margemMedia": format_percent(summary.margem_media),
        },
        "evolucaoMensal": _monthly_payload(summary.series),
        "categorias": [
            {
                "nome": c.categoria_nome,
                "total": format_currency(c.total),
                "media": format_currency(c.media_by_month),
                "tendencia": c.tendencia,
            }
            for c in top
        ],
        "destaques": {"melhorMes": _month_highlight(summary.melhor_mes), "piorMes": _month_highlight(summary.pior_mes)},
    }


def build_chat_system_prompt(summary: DfcSummary) -> str:
    context = json.dumps(build_chat_context(summary), ensure_ascii=False, indent=2)
    return (
        "Você é um assistente financeiro especializado em análise de DFC (Demonstrativo de Fluxo de Caixa) "
        "para uma agência de marketing digital brasileira.\n\n"
        f"=== ESTRUTURA DO BANCO DE DADOS ===\n\n{SCHEMA_DESCRIPTION}\n\n"
        f"=== DADOS FINANCEIROS DO PERÍODO ===\n{context}\n\n"
        f"{CHAT_INSTRUCTIONS}"
    )


def _query_feedback(query: str, result: SecureQueryResult) -> str:
    if not result.success:
        return f"A consulta `{query}` foi recusada ou falhou: {result.error}. Responda com os dados que já possui."
    rows = (result.data or [])[:MAX_QUERY_ROWS_IN_PROMPT]
    body = json.dumps(rows, ensure_ascii=False, default=str)
    return (
        f"Resultado da consulta `{query}` ({result.row_count} linhas, exibindo até {MAX_QUERY_ROWS_IN_PROMPT}):\n{body}\n\n"
        "Agora responda à pergunta original no mesmo formato JSON, com consultaSql null."
    )


def _to_chat_response(result: dict) -> DfcChatResponse:
    resposta = result.get("resposta")
    if not isinstance(resposta, str) or not resposta.strip():
        raise ValueError("Resposta sem o campo 'resposta'")
    referenciados = result.get("dadosReferenciados")
    return DfcChatResponse(resposta=resposta, dados_referenciados=referenciados if isinstance(referenciados, dict) else None)


def chat_with_dfc(
    dfc: DfcData,
    pergunta: str,
    historico: list[dict[str, str]] | None,
    llm: LLMClient,
    query_runner: QueryRunner | None = None,
) -> DfcChatResponse:
    summary = summarize_dfc(dfc)
    messages = [{"role": "system", "content": build_chat_system_prompt(summary)}]
    messages.extend({"role": h["role"], "content": h["content"]} for h in historico or [])
    messages.append({"role": "user", "content": pergunta})

    model = get_settings().openai_dfc_model
    try:
        result = llm.complete_json(messages, model=model, max_tokens=CHAT_MAX_TOKENS)
        query = result.get("consultaSql")
        if isinstance(query, str) and query.strip() and query_runner is not None:
            logger.info("DFC chat requested a database query")
            query_result = query_runner(query)
            messages.append({"role": "assistant", "content": json.dumps(result, ensure_ascii=False)})
            messages.append({"role": "user", "content": _query_feedback(query, query_result)})
            result = llm.complete_json(messages, model=model, max_tokens=CHAT_MAX_TOKENS)
        return _to_chat_response(result)
    except Exception:
        logger.exception("DFC chat failed")
        return DfcChatResponse(resposta=CHAT_APOLOGY)
