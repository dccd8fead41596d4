"""REST API for chat history, message details and purging."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from devchat.api.deps import get_repository
from devchat.core.errors import NotFound
from devchat.core.identifiers import IdKind, session_timestamp, validate
from devchat.services.reconcile import reconcile_session
from devchat.services.repository import ChatRepository

router = APIRouter()
logger = logging.getLogger(__name__)


def _check_chat_id(chat_id: str) -> None:
    if not validate(chat_id, IdKind.SESSION):
        raise HTTPException(status_code=400, detail="Chat ID must be in format chat(timestamp)")


@router.get("/")
async def list_conversations(repository: ChatRepository = Depends(get_repository)):
    return [
        {
            "id": s.id,
            "created_at": session_timestamp(s.id).isoformat(),
            "last_updated": s.last_updated.isoformat(),
            "message_count": s.message_count,
            "preview": s.preview,
        }
        for s in repository.list_sessions()
    ]


@router.get("/{chat_id}")
async def get_conversation(chat_id: str, repository: ChatRepository = Depends(get_repository)):
    _check_chat_id(chat_id)
    session = repository.get_session(chat_id)
    if not session:
        logger.debug(f"Conversation {chat_id} not found")
        raise HTTPException(status_code=404, detail="Conversation not found")

    return {
        **session.model_dump(mode="json"),
        "messages": [m.model_dump(mode="json") for m in repository.list_messages(chat_id)],
    }


@router.get("/{chat_id}/messages/{message_id}")
async def get_message_details(chat_id: str, message_id: str, repository: ChatRepository = Depends(get_repository)):
    _check_chat_id(chat_id)
    if not validate(message_id, IdKind.MESSAGE):
        raise HTTPException(status_code=400, detail="Invalid message_id format")

    details = repository.message_details(chat_id, message_id)
    if details is None:
        raise HTTPException(status_code=404, detail="Message not found")
    message, artifacts = details
    return {
        "message": message.model_dump(mode="json"),
        "artifacts": [a.model_dump(mode="json") for a in artifacts],
    }


@router.delete("/{chat_id}")
async def delete_conversation(chat_id: str, repository: ChatRepository = Depends(get_repository)):
    _check_chat_id(chat_id)
    if not repository.get_session(chat_id):
        logger.debug(f"Delete: conversation {chat_id} not found")
        raise HTTPException(status_code=404, detail="Conversation not found")

    deleted = repository.purge_session(chat_id)
    return {"status": "deleted", "deleted_count": deleted}


@router.delete("/")
async def delete_all_conversations(repository: ChatRepository = Depends(get_repository)):
    deleted = repository.purge_all()
    return {"status": "deleted", "deleted_count": deleted}


@router.post("/{chat_id}/reconcile")
async def reconcile_conversation(chat_id: str, repository: ChatRepository = Depends(get_repository)):
    _check_chat_id(chat_id)
    try:
        report = reconcile_session(repository, chat_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return report.to_dict()
