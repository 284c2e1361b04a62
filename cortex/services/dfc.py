"""DFC (cash-flow statement) tree materialization.

Categories are dotted paths ("04.02.01") hanging below one of two synthetic
roots, RECEITAS and DESPESAS. Every prefix of a posted category becomes a node,
so each non-root node's parent is either another node or a root. Despesas are
carried as negative amounts.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import Session

from cortex.core.config import get_settings
from cortex.models import DfcCategory, DfcEntry
from cortex.services.cache import TtlCache, build_cache_key
from cortex.services.maintenance import local_now

logger = logging.getLogger(__name__)

ROOT_RECEITAS = "RECEITAS"
ROOT_DESPESAS = "DESPESAS"
ROOT_BY_TIPO = {"RECEITA": ROOT_RECEITAS, "DESPESA": ROOT_DESPESAS}
ROOT_NAMES = {ROOT_RECEITAS: "Receitas", ROOT_DESPESAS: "Despesas"}
DEFAULT_PERIOD_MONTHS = 12

dfc_cache = TtlCache(get_settings().dfc_cache_ttl, max_entries=get_settings().dfc_cache_max_entries)


@dataclass
class DfcNode:
    categoria_id: str
    categoria_nome: str
    nivel: int
    is_leaf: bool
    values_by_month: dict[str, float] = field(default_factory=dict)
    parent_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "categoriaId": self.categoria_id,
            "categoriaNome": self.categoria_nome,
            "nivel": self.nivel,
            "isLeaf": self.is_leaf,
            "parentId": self.parent_id,
            "valuesByMonth": dict(self.values_by_month),
        }


@dataclass
class DfcData:
    nodes: list[DfcNode]
    meses: list[str]

    def to_dict(self) -> dict:
        return {"nodes": [n.to_dict() for n in self.nodes], "meses": list(self.meses)}


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def parse_period_bound(value: str | date | None, *, end: bool = False) -> date | None:
    """Accepts YYYY-MM or YYYY-MM-DD. A bare month means its first day (or, for
    the end bound, any day in it: only the month matters for bucketing)."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    raw = value.strip()
    try:
        if len(raw) == 7:
            year, month = raw.split("-")
            return date(int(year), int(month), 1)
        return date.fromisoformat(raw[:10])
    except ValueError:
        bound = "dataFim" if end else "dataInicio"
        raise ValueError(f"Período inválido em {bound}: {value!r}") from None


def _shift_months(value: date, delta: int) -> date:
    index = value.year * 12 + (value.month - 1) + delta
    return date(index // 12, index % 12 + 1, 1)


def resolve_period(data_inicio: str | date | None, data_fim: str | date | None) -> tuple[date, date]:
    fim = parse_period_bound(data_fim, end=True) or local_now().date()
    inicio = parse_period_bound(data_inicio) or _shift_months(fim, -(DEFAULT_PERIOD_MONTHS - 1))
    if month_key(fim) < month_key(inicio):
        raise ValueError("dataFim deve ser posterior a dataInicio")
    return inicio, fim


def months_between(inicio: date, fim: date) -> list[str]:
    meses = []
    cursor = date(inicio.year, inicio.month, 1)
    last = month_key(fim)
    while month_key(cursor) <= last:
        meses.append(month_key(cursor))
        cursor = _shift_months(cursor, 1)
    return meses


def _ancestors(categoria_id: str) -> list[str]:
    parts = categoria_id.split(".")
    return [".".join(parts[:i]) for i in range(1, len(parts) + 1)]


def _sort_key(categoria_id: str) -> list:
    # numeric segments compare as numbers so "2" < "10"
    return [(0, int(p), "") if p.isdigit() else (1, 0, p) for p in categoria_id.split(".")]


def build_dfc_tree(rows: list[tuple[str, str, date, float]], names: dict[str, str], meses: list[str]) -> DfcData:
    """Aggregate (categoria_id, tipo, data, valor) rows into the DFC tree.

    Rows outside `meses` and rows of an unknown tipo are ignored.
    """
    known = set(meses)
    nodes: dict[str, DfcNode] = {}
    children: dict[str, list[str]] = {}

    def node_for(categoria_id: str, parent_id: str | None, nivel: int) -> DfcNode:
        node = nodes.get(categoria_id)
        if node is None:
            node = DfcNode(
                categoria_id=categoria_id,
                categoria_nome=names.get(categoria_id) or ROOT_NAMES.get(categoria_id) or categoria_id,
                nivel=nivel,
                is_leaf=True,
                parent_id=parent_id,
            )
            nodes[categoria_id] = node
            children.setdefault(categoria_id, [])
            if parent_id is not None and categoria_id not in children[parent_id]:
                children[parent_id].append(categoria_id)
        return node

    for categoria_id, tipo, data, valor in rows:
        root_id = ROOT_BY_TIPO.get((tipo or "").upper())
        if root_id is None:
            logger.warning("Ignoring DFC entry with unknown tipo %r (categoria %s)", tipo, categoria_id)
            continue
        mes = month_key(data)
        if mes not in known:
            continue
        amount = abs(float(valor or 0))
        signed = -amount if root_id == ROOT_DESPESAS else amount

        path = [node_for(root_id, None, 0)]
        parent = root_id
        for nivel, prefix in enumerate(_ancestors(categoria_id.strip()), start=1):
            path.append(node_for(prefix, parent, nivel))
            parent = prefix
        for node in path:
            node.values_by_month[mes] = node.values_by_month.get(mes, 0.0) + signed

    ordered: list[DfcNode] = []

    def walk(categoria_id: str) -> None:
        node = nodes[categoria_id]
        kids = sorted(children.get(categoria_id, []), key=_sort_key)
        node.is_leaf = not kids
        ordered.append(node)
        for kid in kids:
            walk(kid)

    for root_id in (ROOT_RECEITAS, ROOT_DESPESAS):
        if root_id in nodes:
            walk(root_id)

    return DfcData(nodes=ordered, meses=list(meses))


def fetch_dfc(db: Session, inicio: date, fim: date) -> DfcData:
    meses = months_between(inicio, fim)
    first_day = date(inicio.year, inicio.month, 1)
    last_day = _shift_months(fim, 1)

    names = {c.categoria_id: c.nome for c in db.query(DfcCategory).all()}
    rows = (
        db.query(DfcEntry.categoria_id, DfcEntry.tipo, DfcEntry.data_vencimento, DfcEntry.valor_pago)
        .filter(DfcEntry.data_vencimento >= first_day, DfcEntry.data_vencimento < last_day)
        .order_by(DfcEntry.data_vencimento.asc())
        .all()
    )
    return build_dfc_tree([tuple(r) for r in rows], names, meses)


def load_dfc(db: Session, data_inicio: str | date | None = None, data_fim: str | date | None = None) -> DfcData:
    inicio, fim = resolve_period(data_inicio, data_fim)
    key = build_cache_key("dfc", {"inicio": month_key(inicio), "fim": month_key(fim)})
    return dfc_cache.get_or_set(key, lambda: fetch_dfc(db, inicio, fim))
