"""Unified assistant: routes a chat message to a context-specific handler.

Contexts: geral, clientes, financeiro, cases. "auto" asks a small classifier
model to pick one. Handlers never raise; failures become a fixed apology that
echoes the context back to the UI.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from cortex.core.config import get_settings
from cortex.services.dfc import DfcData
from cortex.services.dfc_analysis import QueryRunner, chat_with_dfc
from cortex.services.llm import LLMClient

logger = logging.getLogger(__name__)

GERAL = "geral"
FINANCEIRO = "financeiro"
CASES = "cases"
CLIENTES = "clientes"
AUTO = "auto"
CONTEXTS = (GERAL, FINANCEIRO, CASES, CLIENTES)

CHAT_MAX_TOKENS = 1024
DETECTION_MAX_TOKENS = 20

EMPTY_REPLY = "Não consegui processar sua mensagem."
NO_CASES_REPLY = "Sem resposta do servidor."
APOLOGY_GERAL = "Desculpe, ocorreu um erro ao processar sua mensagem. Tente novamente."
APOLOGY_FINANCEIRO = "Desculpe, ocorreu um erro ao consultar os dados financeiros. Tente novamente."
APOLOGY_CASES = "Desculpe, ocorreu um erro ao consultar os cases. Tente novamente."

CONTEXT_DETECTION_PROMPT = """Você é um classificador de contexto para o GPTurbo, assistente virtual da Turbo Partners.

Analise a mensagem do usuário e determine qual contexto é mais apropriado para respondê-la.

Contextos disponíveis:
- "financeiro": Perguntas sobre DFC, fluxo de caixa, receitas, despesas, lucros, margens, resultados financeiros, faturamento, inadimplência
- "cases": Perguntas sobre cases de sucesso, projetos realizados, estratégias de marketing implementadas, resultados de campanhas
- "clientes": Perguntas sobre clientes específicos, contratos, retenção, churn, LTV, quantidade de clientes
- "geral": Perguntas gerais sobre a Turbo Partners, serviços oferecidos, equipe, processos internos, ou qualquer outra coisa

Também considere o contexto da página atual do usuário (se fornecido).

Responda APENAS com o nome do contexto em minúsculas: "financeiro", "cases", "clientes" ou "geral".
Não adicione explicações, apenas a palavra do contexto."""

GERAL_SYSTEM_PROMPT = """Você é o assistente virtual da Turbo Partners, uma agência de marketing digital especializada em performance e growth hacking.

Sobre a Turbo Partners:
- Somos uma agência focada em resultados mensuráveis
- Oferecemos serviços de Tráfego Pago, Growth Marketing, Branding, Social Media, SEO e desenvolvimento de estratégias digitais
- Nossa missão é acelerar o crescimento dos nossos clientes através de marketing digital data-driven
- Trabalhamos com empresas de diversos segmentos, desde startups até grandes corporações

Você está integrado ao Turbo Cortex, nossa plataforma interna de gestão e análise de dados.

Diretrizes:
- Sempre responda em português brasileiro
- Seja objetivo e útil nas respostas
- Quando não souber algo específico, sugira onde o usuário pode encontrar a informação
- Mantenha um tom profissional mas acessível
- Formate valores monetários como R$ X.XXX,XX
- Use markdown para estruturar respostas longas"""

CLIENTES_SYSTEM_PROMPT = f"""{GERAL_SYSTEM_PROMPT}

Contexto adicional: Você está ajudando com informações sobre clientes da agência.
- Pode auxiliar com dúvidas sobre contratos, status de clientes, histórico de faturamento
- Sugira consultas na plataforma quando apropriado
- Se precisar de dados específicos que não possui, oriente o usuário a verificar na página de clientes"""


@dataclass
class AssistantRequest:
    message: str
    context: str = AUTO
    historico: list[dict[str, str]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class AssistantResponse:
    resposta: str
    context: str
    dados_referenciados: dict | None = None

    def to_dict(self) -> dict:
        payload: dict = {"resposta": self.resposta, "context": self.context}
        if self.dados_referenciados:
            payload["dadosReferenciados"] = self.dados_referenciados
        return payload


# Ordered extraction rules for the cases webhook. The workflow tool answers
# either a list of items or a flat object; the first non-empty string wins.
CASES_REPLY_RULES: tuple[tuple[str, str], ...] = (
    ("list", "output"),
    ("list", "response"),
    ("list", "message"),
    ("list", "text"),
    ("object", "output"),
    ("object", "response"),
    ("object", "message"),
)


def extract_cases_reply(data: Any) -> str:
    if isinstance(data, list):
        shape, target = "list", (data[0] if data else None)
    elif isinstance(data, dict):
        shape, target = "object", data
    else:
        return NO_CASES_REPLY

    if not isinstance(target, dict):
        return NO_CASES_REPLY
    for rule_shape, key in CASES_REPLY_RULES:
        if rule_shape != shape:
            continue
        value = target.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return NO_CASES_REPLY


class CasesWebhookClient:
    def __init__(self, url: str, timeout: float = 60.0, transport: httpx.BaseTransport | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    def ask(self, message: str) -> str:
        with httpx.Client(timeout=self.timeout, transport=self._transport) as http:
            response = http.post(self.url, json={"message": message})
        response.raise_for_status()
        return extract_cases_reply(response.json())


def get_cases_client() -> CasesWebhookClient:
    settings = get_settings()
    return CasesWebhookClient(settings.cases_webhook_url, timeout=settings.cases_webhook_timeout)


DfcLoader = Callable[[str | None, str | None], DfcData]


class AssistantRouter:
    def __init__(
        self,
        llm: LLMClient,
        dfc_loader: DfcLoader,
        cases_client: CasesWebhookClient,
        query_runner: QueryRunner | None = None,
    ) -> None:
        self.llm = llm
        self.dfc_loader = dfc_loader
        self.cases_client = cases_client
        self.query_runner = query_runner
        self._handlers: dict[str, Callable[[AssistantRequest], AssistantResponse]] = {
            GERAL: self._chat_geral,
            CLIENTES: self._chat_clientes,
            FINANCEIRO: self._chat_financeiro,
            CASES: self._chat_cases,
        }

    def detect_context(self, message: str, page_context: str | None = None) -> str:
        content = f"Página atual: {page_context}\n\nMensagem do usuário: {message}" if page_context else message
        try:
            detected = self.llm.complete(
                [{"role": "system", "content": CONTEXT_DETECTION_PROMPT}, {"role": "user", "content": content}],
                model=get_settings().openai_classifier_model,
                max_tokens=DETECTION_MAX_TOKENS,
                temperature=0,
            )
        except Exception:
            logger.exception("Context detection failed; falling back to %s", GERAL)
            return GERAL

        detected = (detected or GERAL).strip().strip('".').lower()
        if detected in CONTEXTS:
            logger.info("Auto-detected assistant context: %s", detected)
            return detected
        return GERAL

    def chat(self, request: AssistantRequest) -> AssistantResponse:
        context = request.context
        if not context or context == AUTO:
            context = self.detect_context(request.message, request.metadata.get("pageContext"))
        logger.info("Processing assistant request with context: %s", context)

        handler = self._handlers.get(context, self._chat_geral)
        response = handler(request)
        response.context = context
        return response

    def _conversation(self, system_prompt: str, request: AssistantRequest) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": h["role"], "content": h["content"]} for h in request.historico)
        messages.append({"role": "user", "content": request.message})
        return messages

    def _chat_with_prompt(self, system_prompt: str, request: AssistantRequest, context: str) -> AssistantResponse:
        try:
            reply = self.llm.complete(
                self._conversation(system_prompt, request),
                model=get_settings().openai_model,
                max_tokens=CHAT_MAX_TOKENS,
            )
        except Exception:
            logger.exception("Assistant %s handler failed", context)
            return AssistantResponse(resposta=APOLOGY_GERAL, context=context)
        return AssistantResponse(resposta=reply or EMPTY_REPLY, context=context)

    def _chat_geral(self, request: AssistantRequest) -> AssistantResponse:
        return self._chat_with_prompt(GERAL_SYSTEM_PROMPT, request, GERAL)

    def _chat_clientes(self, request: AssistantRequest) -> AssistantResponse:
        return self._chat_with_prompt(CLIENTES_SYSTEM_PROMPT, request, CLIENTES)

    def _chat_financeiro(self, request: AssistantRequest) -> AssistantResponse:
        try:
            dfc = self.dfc_loader(request.metadata.get("dataInicio"), request.metadata.get("dataFim"))
            result = chat_with_dfc(dfc, request.message, request.historico, self.llm, self.query_runner)
        except Exception:
            logger.exception("Assistant financeiro handler failed")
            return AssistantResponse(resposta=APOLOGY_FINANCEIRO, context=FINANCEIRO)
        return AssistantResponse(
            resposta=result.resposta, context=FINANCEIRO, dados_referenciados=result.dados_referenciados
        )

    def _chat_cases(self, request: AssistantRequest) -> AssistantResponse:
        try:
            reply = self.cases_client.ask(request.message)
        except Exception:
            logger.exception("Assistant cases handler failed")
            return AssistantResponse(resposta=APOLOGY_CASES, context=CASES)
        return AssistantResponse(resposta=reply, context=CASES)
