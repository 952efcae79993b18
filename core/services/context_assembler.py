"""
Prompt context assembly.

Turns an ordered chat transcript into the role-tagged turns a language model
consumes. The assembler keeps the transcript as-is: no reordering,
deduplication, summarizing or truncation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from core.models import Sender

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

_SENDER_ROLES = {
    Sender.user: ROLE_USER,
    Sender.ai: ROLE_ASSISTANT,
}


@dataclass(frozen=True)
class PromptTurn:
    role: str
    content: str

    def as_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


def role_for_sender(sender) -> str:
    return _SENDER_ROLES[Sender(sender)]


def assemble(history: Iterable, system_instruction: Optional[str] = None) -> list[PromptTurn]:
    """
    Map messages (anything with .sender and .content) to prompt turns.

    The system instruction, when given, leads the list. It comes from
    configuration and is never stored as a message.
    """
    turns: list[PromptTurn] = []
    if system_instruction and system_instruction.strip():
        turns.append(PromptTurn(role=ROLE_SYSTEM, content=system_instruction.strip()))
    for message in history:
        turns.append(PromptTurn(role=role_for_sender(message.sender), content=message.content))
    return turns
