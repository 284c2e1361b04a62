import pytest

from cortex.services.dfc import ROOT_DESPESAS, ROOT_RECEITAS, DfcData, DfcNode
from cortex.services.dfc_metrics import (
    CRESCENTE,
    DECRESCENTE,
    ESTAVEL,
    build_monthly_series,
    classify_trend,
    compute_category_metrics,
    find_top_categories,
)


def _months(n):
    return [f"{2023 + i // 12}-{i % 12 + 1:02d}" for i in range(n)]


def _leaf(categoria_id, values, nivel=2, meses=None):
    meses = meses or _months(len(values))
    return DfcNode(
        categoria_id=categoria_id,
        categoria_nome=f"Categoria {categoria_id}",
        nivel=nivel,
        is_leaf=True,
        values_by_month={m: v for m, v in zip(meses, values) if v},
    )


def test_monthly_series_margin():
    meses = ["2024-01", "2024-02"]
    dfc = DfcData(
        nodes=[
            DfcNode(ROOT_RECEITAS, "Receitas", 0, False, {"2024-01": 1000.0}),
            DfcNode(ROOT_DESPESAS, "Despesas", 0, False, {"2024-01": -600.0, "2024-02": -200.0}),
        ],
        meses=meses,
    )
    series = build_monthly_series(dfc)
    assert [m.mes for m in series] == meses
    assert series[0].resultado == 400
    assert series[0].margem == pytest.approx(40.0)
    # no revenue: margin is defined as zero
    assert series[1].receitas == 0
    assert series[1].despesas == 200
    assert series[1].margem == 0


def test_monthly_series_without_roots_is_all_zero():
    series = build_monthly_series(DfcData(nodes=[], meses=["2024-01"]))
    assert series[0].to_dict() == {"mes": "2024-01", "receitas": 0, "despesas": 0, "resultado": 0, "margem": 0}


def test_trend_classification():
    assert classify_trend([100, 100, 100, 200, 200, 200]) == CRESCENTE
    assert classify_trend([200, 200, 200, 100, 100, 100]) == DECRESCENTE
    assert classify_trend([100, 100, 100, 95, 95, 95]) == ESTAVEL
    assert classify_trend([100, 500]) == ESTAVEL


def test_metrics_skip_inactive_and_shallow_categories():
    meses = _months(3)
    nodes = [
        _leaf("03.01", [100, 100, 100], meses=meses),
        _leaf("03.02", [0, 0, 0], meses=meses),
        _leaf("05", [50, 50, 50], nivel=1, meses=meses),
        DfcNode("04.01", "Pai", 2, False, {meses[0]: -10.0}),
    ]
    metrics = compute_category_metrics(nodes, meses)
    assert [m.categoria_id for m in metrics] == ["03.01"]
    assert metrics[0].total == 300
    assert metrics[0].media_by_month == 100
    assert metrics[0].variancia == 0
    assert metrics[0].anomalias == []


def test_metrics_use_absolute_values_of_despesas():
    meses = _months(2)
    node = _leaf("04.01", [-300, -100], meses=meses)
    [m] = compute_category_metrics([node], meses)
    assert m.total == 400
    assert m.media_by_month == 200
    assert m.variancia == 10000
    assert m.desvio_padrao == 100


def test_zscore_exactly_at_threshold_is_not_anomalous():
    values = [100] * 9 + [113] * 4
    meses = _months(len(values))
    [m] = compute_category_metrics([_leaf("04.01", values, meses=meses)], meses)
    assert m.media_by_month == pytest.approx(104)
    assert m.desvio_padrao == pytest.approx(6)
    assert m.anomalias == []


def test_zscore_above_threshold_is_anomalous():
    values = [100] * 16 + [200] * 7
    meses = _months(len(values))
    [m] = compute_category_metrics([_leaf("04.01", values, meses=meses)], meses)
    assert len(m.anomalias) == 7
    assert {a.valor for a in m.anomalias} == {200}
    assert m.anomalias[0].desvio == pytest.approx((16 / 7) ** 0.5)
    assert m.anomalias[0].mes == meses[16]


def test_zero_months_are_never_anomalies():
    values = [100, 0, 100, 0, 100, 400]
    meses = _months(len(values))
    [m] = compute_category_metrics([_leaf("04.01", values, meses=meses)], meses)
    # statistics only see the four active months
    assert m.media_by_month == 175
    assert all(a.valor > 0 for a in m.anomalias)
    assert meses[1] not in {a.mes for a in m.anomalias}


def test_top_categories_sorted_and_stable():
    meses = _months(1)
    nodes = [
        _leaf("04.01", [50], meses=meses),
        _leaf("04.02", [300], meses=meses),
        _leaf("04.03", [50], meses=meses),
        _leaf("04.04", [120], meses=meses),
    ]
    metrics = compute_category_metrics(nodes, meses)
    top = find_top_categories(metrics, limit=3)
    assert [m.categoria_id for m in top] == ["04.02", "04.04", "04.01"]
    assert [m.categoria_id for m in find_top_categories(metrics)] == ["04.02", "04.04", "04.01", "04.03"]


def test_top_categories_keep_tie_order_under_limit():
    meses = _months(1)
    metrics = compute_category_metrics(
        [_leaf("04.01", [5], meses=meses), _leaf("04.02", [5], meses=meses), _leaf("04.03", [10], meses=meses)], meses
    )
    assert [m.categoria_id for m in find_top_categories(metrics, limit=2)] == ["04.03", "04.01"]
