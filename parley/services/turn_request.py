"""Turn Request Builder: the ordered prompt sent to the generation endpoint."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from parley.prompts.persona import (
    PLAIN,
    build_formatting_contract,
    build_grounding_section,
    build_persona,
)


@dataclass(frozen=True)
class PromptMessage:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class TurnRequestBuilder:
    """Prepends one system message to the caller's turns.

    The turns are passed through untouched: no reordering, no deduplication.
    The formatting contract is only an instruction; nothing downstream relies
    on the model obeying it.
    """

    def __init__(self, persona: str | None = None, formatting: str = PLAIN):
        self.persona = persona if persona is not None else build_persona()
        self.formatting = formatting
        # Fail on an unknown policy at construction, not mid-turn
        build_formatting_contract(formatting)

    def system_prompt(self, grounding_block: str = "") -> str:
        parts = [self.persona]
        if grounding_block:
            parts.append(build_grounding_section(grounding_block))
        parts.append(build_formatting_contract(self.formatting))
        return "\n\n".join(parts)

    def build(
        self,
        prior_turns: Sequence[PromptMessage],
        user_text: str,
        grounding_block: str = "",
    ) -> list[PromptMessage]:
        messages = [PromptMessage("system", self.system_prompt(grounding_block))]
        messages.extend(prior_turns)
        messages.append(PromptMessage("user", user_text))
        return messages
