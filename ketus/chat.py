import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable
from uuid import uuid4

from flask import current_app

from ketus.ai import ChatReply, history_to_turns
from ketus.store import fetch_logs, get_profile

APOLOGY_TEXT = "Słuchaj, coś mi się w biochemii pomieszało. Powtórz to, proszę."


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def new_message(role: str, content: str) -> dict:
    return {
        "id": uuid4().hex,
        "role": role,
        "content": content,
        "timestamp": int(time.time() * 1000),
    }


class ConversationStore:
    """Per-browser-session chat transcripts kept in process memory only.

    Transcripts are trimmed to the newest ``history_limit`` messages and the
    least recently used conversation is evicted past ``max_conversations``.
    """

    def __init__(self, history_limit: int = 100, max_conversations: int = 1000):
        self.history_limit = history_limit
        self.max_conversations = max_conversations
        self._conversations: OrderedDict[str, list[dict]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, chat_id: str | None) -> list[dict]:
        if not chat_id:
            return []
        with self._lock:
            messages = self._conversations.get(chat_id)
            if messages is None:
                return []
            self._conversations.move_to_end(chat_id)
            return list(messages)

    def save(self, chat_id: str, messages: list[dict]) -> None:
        with self._lock:
            self._conversations[chat_id] = list(messages[-self.history_limit :])
            self._conversations.move_to_end(chat_id)
            while len(self._conversations) > self.max_conversations:
                self._conversations.popitem(last=False)

    def drop(self, chat_id: str | None) -> None:
        if not chat_id:
            return
        with self._lock:
            self._conversations.pop(chat_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._conversations)


@dataclass
class ChatTurn:
    reply: dict
    saved: list[dict] = field(default_factory=list)
    failed_saves: int = 0


class KetusSession:
    def __init__(
        self,
        messages: list[dict],
        logs: list[dict],
        *,
        chat_fn: Callable[[str, list[dict]], ChatReply],
        save_fn: Callable[[dict], dict],
        today_fn: Callable[[], date] = utc_today,
    ):
        self.messages = messages
        self.logs = logs
        self.chat_fn = chat_fn
        self.save_fn = save_fn
        self.today_fn = today_fn

    def send_message(self, text: str) -> ChatTurn:
        content = (text or "").strip()
        if not content:
            raise ValueError("Message text is required.")

        history = history_to_turns(self.messages)
        self.messages.append(new_message("user", content))

        try:
            reply = self.chat_fn(content, history)
        except Exception:
            current_app.logger.exception("Conversational gateway call failed")
            assistant = new_message("assistant", APOLOGY_TEXT)
            self.messages.append(assistant)
            return ChatTurn(reply=assistant)

        turn = ChatTurn(reply={})
        for metrics in reply.metric_calls:
            new_log = dict(metrics or {}, date=self.today_fn().isoformat())
            try:
                saved = self.save_fn(new_log)
            except Exception:
                current_app.logger.exception("Failed to save metric log")
                turn.failed_saves += 1
                continue
            current_app.logger.info("Saved metric log id=%s", saved.get("id"))
            self.logs.append(saved)
            turn.saved.append(saved)

        turn.reply = new_message("assistant", reply.text)
        self.messages.append(turn.reply)
        return turn


def load_user_data(user) -> tuple[list[dict], dict | None]:
    try:
        return fetch_logs(user), get_profile(user)
    except Exception:
        current_app.logger.exception("Error loading data for user_id=%s", getattr(user, "id", None))
        return [], None
