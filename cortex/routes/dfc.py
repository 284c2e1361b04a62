from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from cortex.core.db import get_db
from cortex.schemas import DfcChatRequest, DfcPeriod
from cortex.services.dfc import DfcData, load_dfc
from cortex.services.dfc_analysis import analyze_dfc, chat_with_dfc, summarize_dfc
from cortex.services.dfc_metrics import find_top_categories
from cortex.services.llm import LLMClient, get_llm
from cortex.services.secure_query import execute_secure_query

router = APIRouter(prefix="/api/dfc", tags=["dfc"])


def _load(db: Session, data_inicio: str | None, data_fim: str | None) -> DfcData:
    try:
        return load_dfc(db, data_inicio, data_fim)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("")
def dfc_tree(
    data_inicio: str | None = Query(default=None, alias="dataInicio"),
    data_fim: str | None = Query(default=None, alias="dataFim"),
    db: Session = Depends(get_db),
):
    return _load(db, data_inicio, data_fim).to_dict()


@router.get("/metrics")
def dfc_metrics(
    data_inicio: str | None = Query(default=None, alias="dataInicio"),
    data_fim: str | None = Query(default=None, alias="dataFim"),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    summary = summarize_dfc(_load(db, data_inicio, data_fim))
    return {
        "serie": [m.to_dict() for m in summary.series],
        "categorias": [c.to_dict() for c in find_top_categories(summary.metrics, limit)],
        "resumo": summary.to_dict(),
    }


@router.post("/analyze")
def dfc_analyze(payload: DfcPeriod, db: Session = Depends(get_db), llm: LLMClient = Depends(get_llm)):
    dfc = _load(db, payload.data_inicio, payload.data_fim)
    return analyze_dfc(dfc, llm)


@router.post("/chat")
def dfc_chat(payload: DfcChatRequest, db: Session = Depends(get_db), llm: LLMClient = Depends(get_llm)):
    dfc = _load(db, payload.data_inicio, payload.data_fim)
    historico = [turn.model_dump() for turn in payload.historico]
    result = chat_with_dfc(dfc, payload.pergunta, historico, llm, lambda q: execute_secure_query(db, q))
    return result.to_dict()
