"""Endpoints del canal webchat."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response

from omniserve.repositories.conversations import ConversationNotFound

from . import schemas, service

router = APIRouter(prefix="/webchat", tags=["webchat"])


def _get_controller() -> service.SessionController:
    return service.get_session_controller()


def _history(controller: service.SessionController, session_id: str) -> schemas.HistoryResponse:
    try:
        conversation = controller.conversation(session_id)
    except (service.SessionNotFound, ConversationNotFound) as exc:
        raise HTTPException(status_code=404, detail="session_not_found") from exc
    return schemas.HistoryResponse(
        session_id=session_id,
        status=conversation.status.value,
        pending=controller.is_pending(session_id),
        messages=[schemas.ChatMessage.from_message(m) for m in conversation.messages],
    )


@router.post(
    "/sessions",
    response_model=schemas.SessionResponse,
    status_code=201,
    summary="Inicia una sesión de chat con la identidad del cliente",
)
async def start_session(payload: schemas.StartSessionRequest) -> schemas.SessionResponse:
    controller = _get_controller()
    try:
        session = controller.start_session(
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
        )
    except service.InvalidCustomerIdentity as exc:
        raise HTTPException(status_code=422, detail="customer_identity_required") from exc
    conversation = controller.conversation(session.id)
    return schemas.SessionResponse(
        session_id=session.id,
        conversation_id=conversation.id,
        messages=[schemas.ChatMessage.from_message(m) for m in conversation.messages],
    )


@router.get(
    "/sessions/{session_id}/messages",
    response_model=schemas.HistoryResponse,
    summary="Recupera el historial de la sesión en orden cronológico",
)
async def get_session_messages(session_id: str) -> schemas.HistoryResponse:
    return _history(_get_controller(), session_id)


@router.post(
    "/sessions/{session_id}/messages",
    response_model=schemas.SendResponse,
    summary="Envía un mensaje del cliente al agente",
)
async def post_session_message(
    session_id: str, payload: schemas.MessageRequest
) -> schemas.SendResponse:
    """Los rechazos (texto vacío o envío pendiente) se responden sin error visible."""
    controller = _get_controller()
    try:
        if not payload.wait:
            controller.dispatch(session_id, payload.content)
            return schemas.SendResponse(accepted=True)
        outcome = await controller.send_message(session_id, payload.content)
    except service.MessageRejected as exc:
        return schemas.SendResponse(accepted=False, reason=exc.reason)
    except (service.SessionNotFound, ConversationNotFound) as exc:
        raise HTTPException(status_code=404, detail="session_not_found") from exc

    return schemas.SendResponse(
        accepted=True,
        reply=schemas.ChatMessage.from_message(outcome.reply) if outcome.reply else None,
        reply_kind=outcome.reply_kind,
        escalated_conversation_id=outcome.escalated_conversation_id,
        discarded=outcome.discarded,
    )


@router.delete(
    "/sessions/{session_id}",
    status_code=204,
    summary="Reinicia la sesión del widget",
)
async def reset_session(session_id: str) -> Response:
    try:
        _get_controller().reset_session(session_id)
    except service.SessionNotFound as exc:
        raise HTTPException(status_code=404, detail="session_not_found") from exc
    return Response(status_code=204)
