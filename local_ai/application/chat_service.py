"""
Chat service - Application service owning chat sessions over the shared runtime.
Builds budgeted system prompts and drives streaming replies.
"""

from __future__ import annotations
import logging
import time
from typing import Optional, List, Dict, Callable, Sequence

from ..domain.errors import NoActiveSessionError
from ..domain.interfaces.runtime_api import RuntimeAPI
from ..domain.models.conversation import ChatMessage, ChatSession, PaperContext
from ..domain.services.prompt_builder import (
    DEFAULT_CONTEXT_BUDGET,
    DEFAULT_LABEL_LENGTH,
    build_system_prompt,
    session_label,
)
from .model_registry import DEFAULT_MODEL


class ChatSessionManager:
    """Owns every chat session and the pointer to the active one."""

    def __init__(
        self,
        runtime: RuntimeAPI,
        model: str = DEFAULT_MODEL,
        context_budget: int = DEFAULT_CONTEXT_BUDGET,
        label_length: int = DEFAULT_LABEL_LENGTH,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None
    ):
        self._runtime = runtime
        self._model = model
        self._context_budget = context_budget
        self._label_length = label_length
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        # dicts keep insertion order, which close_session relies on
        self._sessions: Dict[str, ChatSession] = {}
        self._active_session_id = ""

    # -----------------
    # Accessors
    # -----------------
    def get_model(self) -> str:
        return self._model

    def set_model(self, model: str) -> None:
        self._logger.info(f"Chat model set to {model}")
        self._model = model

    @property
    def context_budget(self) -> int:
        return self._context_budget

    def get_active_session(self) -> Optional[ChatSession]:
        return self._sessions.get(self._active_session_id)

    def get_active_session_id(self) -> str:
        return self._active_session_id

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        return self._sessions.get(session_id)

    def get_all_sessions(self) -> List[ChatSession]:
        return list(self._sessions.values())

    def get_papers(self) -> List[PaperContext]:
        session = self.get_active_session()
        return list(session.papers) if session else []

    def get_messages(self) -> List[ChatMessage]:
        session = self.get_active_session()
        return list(session.messages) if session else []

    def is_active(self) -> bool:
        """True when the active session has at least one paper."""
        session = self.get_active_session()
        return bool(session and session.papers)

    # -----------------
    # Session lifecycle
    # -----------------
    def start_chat(self, papers: Sequence[PaperContext], session_id: Optional[str] = None) -> ChatSession:
        """Create (or replace) a session for ``papers`` and make it active."""
        sid = session_id or f"session-{int(self._clock() * 1000)}"
        paper_list = list(papers)
        session = ChatSession(
            id=sid,
            label=session_label(paper_list, self._label_length),
            papers=paper_list,
            messages=[ChatMessage.system(self._system_prompt(paper_list))],
        )
        # Replacing keeps the original insertion slot
        self._sessions[sid] = session
        self._active_session_id = sid

        self._logger.info(
            f"Chat session \"{sid}\" started with {len(paper_list)} paper(s), model={self._model}"
        )
        return session

    def add_papers(self, papers: Sequence[PaperContext]) -> None:
        """Attach more papers to the active session (for comparison)."""
        session = self.get_active_session()
        if session is None:
            return

        session.papers.extend(papers)
        self._refresh(session)
        self._logger.info(
            f"Added {len(papers)} paper(s) to \"{session.id}\", total={len(session.papers)}"
        )

    def switch_session(self, session_id: str) -> bool:
        if session_id in self._sessions:
            self._active_session_id = session_id
            return True
        return False

    def close_session(self, session_id: str) -> None:
        """Drop a session; if it was active, fall back to the newest remaining one."""
        if self._sessions.pop(session_id, None) is None:
            return
        self._logger.info(f"Chat session \"{session_id}\" closed")
        if self._active_session_id == session_id:
            remaining = list(self._sessions)
            self._active_session_id = remaining[-1] if remaining else ""

    def clear_chat(self) -> None:
        self._sessions.clear()
        self._active_session_id = ""

    # -----------------
    # Messaging
    # -----------------
    def send_message(self, text: str, on_token: Optional[Callable[[str], None]] = None) -> str:
        """Send ``text`` in the active session and return the assistant reply.

        On any failure (including cancellation) the user message is removed
        again, so history only holds completed exchanges.
        """
        session = self.get_active_session()
        if session is None:
            raise NoActiveSessionError("No active chat session")

        user_message = ChatMessage.user(text)
        session.messages.append(user_message)
        try:
            reply = self._runtime.chat(self._model, session.to_api_format(), on_token)
        except BaseException:
            self._rollback(session, user_message)
            raise

        session.messages.append(ChatMessage.assistant(reply))
        return reply

    def abort_generation(self) -> bool:
        """Cancel whatever chat request is in flight, whichever session sent it."""
        return self._runtime.abort()

    # -----------------
    # Helpers
    # -----------------
    def _system_prompt(self, papers: Sequence[PaperContext]) -> str:
        return build_system_prompt(papers, self._context_budget)

    def _refresh(self, session: ChatSession) -> None:
        system = ChatMessage.system(self._system_prompt(session.papers))
        if session.messages:
            session.messages[0] = system
        else:
            session.messages.append(system)
        session.label = session_label(session.papers, self._label_length)

    @staticmethod
    def _rollback(session: ChatSession, message: ChatMessage) -> None:
        for index in range(len(session.messages) - 1, -1, -1):
            if session.messages[index] is message:
                del session.messages[index]
                return
