from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cortex.core.db import get_db
from cortex.schemas import AssistantChatRequest
from cortex.services.assistant import AssistantRequest, AssistantRouter, CasesWebhookClient, get_cases_client
from cortex.services.dfc import load_dfc
from cortex.services.llm import LLMClient, get_llm
from cortex.services.secure_query import execute_secure_query

router = APIRouter(prefix="/api/assistants", tags=["assistants"])


def get_assistant(
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
    cases_client: CasesWebhookClient = Depends(get_cases_client),
) -> AssistantRouter:
    return AssistantRouter(
        llm=llm,
        dfc_loader=lambda inicio, fim: load_dfc(db, inicio, fim),
        cases_client=cases_client,
        query_runner=lambda query: execute_secure_query(db, query),
    )


@router.post("/chat")
def assistant_chat(payload: AssistantChatRequest, assistant: AssistantRouter = Depends(get_assistant)):
    request = AssistantRequest(
        message=payload.message,
        context=payload.context,
        historico=[turn.model_dump() for turn in payload.historico],
        metadata=payload.metadata.model_dump(by_alias=True),
    )
    return assistant.chat(request).to_dict()
