"""
OpenAI LLM Provider.

Streams chat completions from OpenAI or an Azure OpenAI deployment.
"""

import logging
from typing import Any, AsyncIterator, Optional

import openai
from openai import AsyncAzureOpenAI, AsyncOpenAI

from ..errors import CONTENT_POLICY_MARKER, ContentPolicyError, GenerationError

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """
    OpenAI streaming text generator.

    Works against api.openai.com, any OpenAI-compatible base URL, or an
    Azure OpenAI endpoint.
    """

    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_AZURE_API_VERSION = "2024-06-01"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        max_tokens: int = 1024,
        temperature: float = 0.3,
        base_url: Optional[str] = None,
        azure_endpoint: Optional[str] = None,
        api_version: str = DEFAULT_AZURE_API_VERSION,
        client: Optional[Any] = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI or Azure OpenAI key
            model_id: Model ID (deployment name on Azure)
            max_tokens: Maximum tokens
            temperature: Generation temperature
            base_url: Override for OpenAI-compatible endpoints
            azure_endpoint: Azure OpenAI endpoint; selects the Azure client
            api_version: Azure OpenAI API version
            client: Pre-built async client
        """
        if client is not None:
            self._client = client
        elif azure_endpoint:
            self._client = AsyncAzureOpenAI(
                azure_endpoint=azure_endpoint,
                api_key=api_key,
                api_version=api_version,
            )
        else:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)

        self.model_id = model_id
        self.max_tokens = max_tokens
        self.temperature = temperature

        logger.info(f"OpenAI provider initialized: {model_id}{' (azure)' if azure_endpoint else ''}")

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """
        Stream the reply to a prompt fragment by fragment.

        Args:
            prompt: Full prompt including the rendered transcript

        Yields:
            Text fragments in generation order
        """
        try:
            response = await self._client.chat.completions.create(
                model=self.model_id,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                stream=True,
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise _wrap_error(e) from e

        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.delta and choice.delta.content:
                    yield choice.delta.content
                if choice.finish_reason == "content_filter":
                    raise ContentPolicyError(
                        f"The response was filtered due to the {CONTENT_POLICY_MARKER}"
                    )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI streaming failed: {e}")
            raise _wrap_error(e) from e
        finally:
            # Releases the HTTP stream when the consumer stops early
            await response.close()


def _wrap_error(error: openai.OpenAIError) -> GenerationError:
    if getattr(error, "code", None) == "content_filter" or CONTENT_POLICY_MARKER in str(error).lower():
        return ContentPolicyError(str(error))
    return GenerationError(str(error))
