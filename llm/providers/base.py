"""
Text-generation capability used by the turn coordinator.
"""

from typing import AsyncIterator, Protocol, runtime_checkable


@runtime_checkable
class TextGenerator(Protocol):
    """
    Given a prompt, produce a lazy, finite sequence of text fragments.

    Implementations raise GenerationError (or ContentPolicyError) while
    iterating when the provider fails. Closing the iterator early must
    release the underlying connection.
    """

    def stream(self, prompt: str) -> AsyncIterator[str]:
        ...
