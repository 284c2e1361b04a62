import math
from dataclasses import dataclass, field

from cortex.services.dfc import ROOT_DESPESAS, ROOT_RECEITAS, DfcData, DfcNode

# Business thresholds; both still await stakeholder tuning.
TREND_THRESHOLD_PCT = 15.0
ANOMALY_Z_THRESHOLD = 1.5
MIN_POINTS_FOR_TREND = 3
MIN_CATEGORY_LEVEL = 2

CRESCENTE = "crescente"
DECRESCENTE = "decrescente"
ESTAVEL = "estavel"


@dataclass
class MonthlyData:
    mes: str
    receitas: float
    despesas: float
    resultado: float
    margem: float

    def to_dict(self) -> dict:
        return {
            "mes": self.mes,
            "receitas": self.receitas,
            "despesas": self.despesas,
            "resultado": self.resultado,
            "margem": self.margem,
        }


@dataclass
class Anomaly:
    mes: str
    valor: float
    desvio: float


@dataclass
class CategoryMetrics:
    categoria_id: str
    categoria_nome: str
    total: float
    media_by_month: float
    variancia: float
    tendencia: str
    anomalias: list[Anomaly] = field(default_factory=list)

    @property
    def desvio_padrao(self) -> float:
        return math.sqrt(self.variancia)

    def to_dict(self) -> dict:
        return {
            "categoriaId": self.categoria_id,
            "categoriaNome": self.categoria_nome,
            "total": self.total,
            "mediaByMonth": self.media_by_month,
            "variancia": self.variancia,
            "tendencia": self.tendencia,
            "anomalias": [{"mes": a.mes, "valor": a.valor, "desvio": a.desvio} for a in self.anomalias],
        }


def _find_node(nodes: list[DfcNode], categoria_id: str) -> DfcNode | None:
    return next((n for n in nodes if n.categoria_id == categoria_id), None)


def build_monthly_series(dfc: DfcData) -> list[MonthlyData]:
    """One entry per month of `dfc.meses`, in order. A missing root counts as zero."""
    receitas_node = _find_node(dfc.nodes, ROOT_RECEITAS)
    despesas_node = _find_node(dfc.nodes, ROOT_DESPESAS)

    series = []
    for mes in dfc.meses:
        receitas = receitas_node.values_by_month.get(mes, 0) if receitas_node else 0
        despesas = abs(despesas_node.values_by_month.get(mes, 0)) if despesas_node else 0
        resultado = receitas - despesas
        margem = resultado / receitas * 100 if receitas > 0 else 0
        series.append(MonthlyData(mes=mes, receitas=receitas, despesas=despesas, resultado=resultado, margem=margem))
    return series


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def classify_change(before: float, after: float) -> str:
    change_pct = (after - before) / before * 100
    if change_pct > TREND_THRESHOLD_PCT:
        return CRESCENTE
    if change_pct < -TREND_THRESHOLD_PCT:
        return DECRESCENTE
    return ESTAVEL


def classify_trend(non_zero_values: list[float]) -> str:
    """First half vs second half average; the middle element of an odd-length
    series belongs to the second half."""
    if len(non_zero_values) < MIN_POINTS_FOR_TREND:
        return ESTAVEL
    mid = len(non_zero_values) // 2
    return classify_change(_mean(non_zero_values[:mid]), _mean(non_zero_values[mid:]))


def detect_anomalies(meses: list[str], values: list[float], media: float, desvio_padrao: float) -> list[Anomaly]:
    # zero months mean "no activity", never an anomalously low month
    anomalias = []
    if desvio_padrao <= 0:
        return anomalias
    for mes, valor in zip(meses, values):
        if valor <= 0:
            continue
        z_score = (valor - media) / desvio_padrao
        if abs(z_score) > ANOMALY_Z_THRESHOLD:
            anomalias.append(Anomaly(mes=mes, valor=valor, desvio=z_score))
    return anomalias


def _category_metrics(node: DfcNode, meses: list[str]) -> CategoryMetrics:
    values = [abs(node.values_by_month.get(mes) or 0) for mes in meses]
    non_zero = [v for v in values if v > 0]

    if not non_zero:
        return CategoryMetrics(
            categoria_id=node.categoria_id,
            categoria_nome=node.categoria_nome,
            total=0,
            media_by_month=0,
            variancia=0,
            tendencia=ESTAVEL,
        )

    total = sum(non_zero)
    media = total / len(non_zero)
    variancia = sum((v - media) ** 2 for v in non_zero) / len(non_zero)

    return CategoryMetrics(
        categoria_id=node.categoria_id,
        categoria_nome=node.categoria_nome,
        total=total,
        media_by_month=media,
        variancia=variancia,
        tendencia=classify_trend(non_zero),
        anomalias=detect_anomalies(meses, values, media, math.sqrt(variancia)),
    )


def compute_category_metrics(nodes: list[DfcNode], meses: list[str]) -> list[CategoryMetrics]:
    """Per-leaf statistics for leaves at nivel >= 2, in input order.

    Categories without any activity in the period are dropped.
    """
    leaves = [n for n in nodes if n.is_leaf and n.nivel >= MIN_CATEGORY_LEVEL]
    metrics = [_category_metrics(node, meses) for node in leaves]
    return [m for m in metrics if m.total > 0]


def find_top_categories(metrics: list[CategoryMetrics], limit: int = 10) -> list[CategoryMetrics]:
    # sorted() is stable, ties keep their input order
    return sorted(metrics, key=lambda m: m.total, reverse=True)[:limit]
