"""
CLI presentation layer - Interactive terminal front end for chat sessions.
Coordinates with the session manager; owns no chat state itself.
"""

from __future__ import annotations
import logging
import sys
from typing import Callable, Optional, TextIO

from ..application.chat_service import ChatSessionManager
from ..domain.errors import CancellationError, LocalAIError
from ..utils import load_papers, truncate_text


class ChatCLI:
    """CLI interface for chat interactions."""

    def __init__(
        self,
        chat: ChatSessionManager,
        input_fn: Callable[[str], str] = input,
        out: TextIO = sys.stdout,
        logger: Optional[logging.Logger] = None
    ):
        self._chat = chat
        self._input = input_fn
        self._out = out
        self._logger = logger or logging.getLogger(__name__)

    def interactive_mode(self) -> None:
        """Run interactive chat mode."""
        self._print_welcome()

        while True:
            try:
                user_input = self._input("You: ").strip()
            except (EOFError, KeyboardInterrupt):
                self._print("")
                break

            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit"):
                break
            if user_input.startswith("/"):
                self.handle_command(user_input)
                continue

            self.process_message(user_input)

    def process_message(self, text: str) -> Optional[str]:
        """Send one message, streaming tokens; Ctrl-C aborts the reply."""
        if self._chat.get_active_session() is None:
            self._print("⚠️ No active session. Load papers with /new FILE...")
            return None

        self._write("🤖 ")
        try:
            reply = self._chat.send_message(text, on_token=self._write)
        except KeyboardInterrupt:
            self._chat.abort_generation()
            self._print("\n⏹️ Generation aborted")
            return None
        except CancellationError:
            self._print("")
            return None
        except LocalAIError as e:
            self._logger.error(f"Chat error: {e}")
            self._print(f"\n❌ Error: {e}")
            return None
        self._print("")
        return reply

    def handle_command(self, line: str) -> bool:
        """Handle a slash command. Returns False for unknown commands."""
        command, _, rest = line.partition(" ")
        rest = rest.strip()

        if command == "/sessions":
            self._list_sessions()
        elif command == "/switch":
            if self._chat.switch_session(rest):
                self._print(f"➡️ Switched to {rest}")
            else:
                self._print(f"⚠️ No session {rest!r}")
        elif command == "/close":
            self._chat.close_session(rest or self._chat.get_active_session_id())
            self._print(f"🗑️ Closed. Active: {self._chat.get_active_session_id() or '<none>'}")
        elif command in ("/new", "/add"):
            self._load(command, rest.split())
        elif command == "/clear":
            self._chat.clear_chat()
            self._print("🧹 All sessions cleared")
        elif command == "/model":
            if rest:
                self._chat.set_model(rest)
            self._print(f"🧠 Model: {self._chat.get_model()}")
        elif command == "/help":
            self._print_help()
        else:
            self._print(f"⚠️ Unknown command {command}; try /help")
            return False
        return True

    def _load(self, command: str, paths) -> None:
        if not paths:
            self._print(f"⚠️ Usage: {command} FILE [FILE...]")
            return
        try:
            papers = load_papers(paths)
        except (OSError, ValueError) as e:
            self._print(f"❌ Could not load papers: {e}")
            return
        if command == "/new" or self._chat.get_active_session() is None:
            session = self._chat.start_chat(papers)
            self._print(f"📄 Started {session.id} ({session.label})")
        else:
            self._chat.add_papers(papers)
            self._print(f"📄 Now {len(self._chat.get_papers())} paper(s) in this session")

    def _list_sessions(self) -> None:
        sessions = self._chat.get_all_sessions()
        if not sessions:
            self._print("No sessions")
            return
        active = self._chat.get_active_session_id()
        for session in sessions:
            marker = "*" if session.id == active else " "
            turns = sum(1 for m in session.messages if m.role.value == "user")
            self._print(f"{marker} {session.id}  {truncate_text(session.label, 40)}  ({turns} turn(s))")

    def _print_welcome(self) -> None:
        self._print(f"🚀 Local AI chat | model {self._chat.get_model()}")
        self._print("Type /help for commands, 'quit' to exit.")

    def _print_help(self) -> None:
        self._print(
            "/sessions            list sessions\n"
            "/switch ID           switch active session\n"
            "/close [ID]          close a session (default: active)\n"
            "/new FILE...         start a session with papers\n"
            "/add FILE...         add papers to the active session\n"
            "/clear               drop every session\n"
            "/model [NAME]        show or set the model"
        )

    def _write(self, text: str) -> None:
        self._out.write(text)
        self._out.flush()

    def _print(self, text: str) -> None:
        self._out.write(text + "\n")
