import logging
from abc import ABC, abstractmethod
from uuid import UUID

import requests

from shared.core.config import settings
from ..core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class ConversationChannel(ABC):
    """Appends system messages to a rental conversation."""

    @abstractmethod
    def post_system_message(self, conversation_id: UUID, title: str, text: str) -> None:
        ...


class HttpConversationChannel(ConversationChannel):
    def __init__(self, base_url: str, token: str | None = None, timeout: int = 15):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def post_system_message(self, conversation_id, title, text):
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = requests.post(
                f"{self.base_url}/conversations/{conversation_id}/messages",
                json={"messageType": "system", "title": title, "text": text},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalServiceError(f"Chat service unreachable: {e}") from e

        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Chat service rejected message ({response.status_code})")


class LoggingConversationChannel(ConversationChannel):
    """Used when no chat service is configured."""

    def post_system_message(self, conversation_id, title, text):
        logger.info(f"[conversation {conversation_id}] {title}: {text}")


def get_conversation_channel() -> ConversationChannel:
    if settings.CHAT_SERVICE_URL:
        return HttpConversationChannel(
            settings.CHAT_SERVICE_URL,
            token=settings.CHAT_SERVICE_TOKEN,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    return LoggingConversationChannel()
