import logging
from typing import Optional

import httpx
from openai import AsyncOpenAI
from openai.types.responses import Response

from edudesign.config import FAST_MODEL
from edudesign.models import Generation

logger = logging.getLogger("llm")


def system_message(text: str):
    return {"role": "system", "content": text}


def user_message(text: str):
    return {"role": "user", "content": text}


class TextGenerator:
    """
    Text-in, text-out access to a language model through the Responses API.

    Every call is stateless: the reply is not appended to a conversation, so
    one instance can serve concurrent units of a batch.

    Args:
        system_prompt (str, optional): Instructions sent before every prompt. Defaults to None.
        model (str, optional): The model identifier to use. Defaults to FAST_MODEL.
        client (AsyncOpenAI, optional): Client to use. When None, one is built on top of http_client.
        http_client (httpx.AsyncClient, optional): Connection pool owned by the caller.
        max_retries (int, optional): Retries performed by the OpenAI client. Defaults to 3.
    """

    def __init__(
        self,
        system_prompt: str = None,
        model: str = FAST_MODEL,
        client: AsyncOpenAI = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
    ):
        self.http_client = http_client
        self.client = client or AsyncOpenAI(http_client=http_client, max_retries=max_retries)
        self.system_prompt = system_prompt
        self.model = model

    def _messages(self, prompt: str) -> list[dict]:
        messages = []
        if self.system_prompt:
            messages.append(system_message(self.system_prompt))
        messages.append(user_message(prompt))
        return messages

    async def _chat(self, prompt: str, **kwargs) -> Response:
        if self.model.startswith("o"):
            kwargs.pop("temperature", None)  # o-series models reject temperature
        return await self.client.responses.create(model=self.model, input=self._messages(prompt), **kwargs)

    async def generate(self, prompt: str, **kwargs) -> Generation:
        func_name = "generate"
        logger.info(f"[{func_name}] Calling LLM ({self.model}).")
        response = await self._chat(prompt, **kwargs)
        text = response.output_text or ""
        logger.debug(f"[{func_name}] Reply: '{text[:100]}...'")
        return Generation(text=text)

    async def aclose(self):
        if self.http_client is not None:
            await self.http_client.aclose()
