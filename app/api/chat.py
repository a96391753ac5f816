"""Chat endpoint.

POST /chat: compose a prompt from the user turn, history, mode and tone and
forward it to the upstream model through the shared gateway.

Failures are raised as ClassifiedError and rendered as plain text by the
exception handlers registered in app.main.
"""

import logging

from fastapi import APIRouter, Depends, Request

from app.core.rate_limit import chat_rate_limit, limiter
from app.gateway.gateway import ChatGateway
from app.schemas.chat import ChatRequestIn, ChatResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def get_gateway(request: Request) -> ChatGateway:
    return request.app.state.gateway


@router.post("/chat", response_model=ChatResponse)
@limiter.limit(chat_rate_limit)
async def chat(
    request: Request,
    body: ChatRequestIn,
    gateway: ChatGateway = Depends(get_gateway),
):
    chat_request = body.to_chat_request()
    logger.info(
        "Chat request: mode=%s tone=%s history=%d",
        chat_request.mode.value,
        chat_request.tone.value,
        len(chat_request.history),
    )
    content = await gateway.handle(chat_request)
    return ChatResponse(content=content)
