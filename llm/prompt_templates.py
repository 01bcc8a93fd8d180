"""
Prompt templates for the chat backend.

The conversation prompt is the rendered transcript followed by the new
human input.
"""

from typing import Iterable, Sequence, Tuple

from .messages import BUFFER_PREFIXES, ChatMessage

CHAT_TEMPLATE = "{chat_history}\n{human_input}"
CHAT_VARIABLES = ("chat_history", "human_input")


class PromptTemplate:
    """A str.format template with a declared set of input variables."""

    def __init__(self, template: str = CHAT_TEMPLATE, input_variables: Sequence[str] = CHAT_VARIABLES):
        self.template = template
        self.input_variables: Tuple[str, ...] = tuple(input_variables)

    def format(self, **values: str) -> str:
        missing = [name for name in self.input_variables if name not in values]
        if missing:
            raise ValueError(f"Missing prompt variables: {', '.join(missing)}")
        return self.template.format(**{name: values[name] for name in self.input_variables})

    def __repr__(self) -> str:
        return f"PromptTemplate({self.template!r})"


def get_buffer_string(messages: Iterable[ChatMessage]) -> str:
    """
    Render a transcript as prompt text.

    Each message becomes a "Human: ...", "AI: ..." or "System: ..." line.
    Messages of unknown role keep their raw type as prefix.
    """
    lines = []
    for message in messages:
        prefix = BUFFER_PREFIXES.get(message.role, message.role.value)
        lines.append(f"{prefix}: {message.content}")
    return "\n".join(lines)


def build_chat_prompt(template: PromptTemplate, history: Sequence[ChatMessage], human_input: str) -> str:
    """Render the prompt for one turn."""
    return template.format(chat_history=get_buffer_string(history), human_input=human_input)
