from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class HistoryTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AssistantMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    page_context: str = Field(default="", alias="pageContext")
    data_inicio: str | None = Field(default=None, alias="dataInicio")
    data_fim: str | None = Field(default=None, alias="dataFim")


class AssistantChatRequest(BaseModel):
    message: str = Field(min_length=1)
    context: Literal["auto", "geral", "financeiro", "cases", "clientes"] = "auto"
    historico: list[HistoryTurn] = Field(default_factory=list)
    metadata: AssistantMetadata = Field(default_factory=AssistantMetadata)


class DfcPeriod(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data_inicio: str | None = Field(default=None, alias="dataInicio")
    data_fim: str | None = Field(default=None, alias="dataFim")


class DfcChatRequest(DfcPeriod):
    pergunta: str = Field(min_length=1)
    historico: list[HistoryTurn] = Field(default_factory=list)
