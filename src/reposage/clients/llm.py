from logging import Logger
from typing import Any

import httpx
from fastmcp.utilities.logging import get_logger
from openai import APIConnectionError, APIStatusError, AsyncOpenAI
from openai.types.chat import ChatCompletion, ChatCompletionMessageParam

from reposage.clients.errors.base import MissingCredentialError
from reposage.clients.errors.upstream import MalformedUpstreamResponseError, RequestError, UpstreamHttpError
from reposage.config import get_openai_api_key, get_openai_base_url, get_openai_model
from reposage.prompts.extract import parse_json_object

DEFAULT_TEMPERATURE = 0.2


class LLMAdvisor:
    """Sends bounded prompts to an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        openai_client: AsyncOpenAI | None = None,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        logger: Logger | None = None,
    ):
        self.openai_client: AsyncOpenAI | None = openai_client
        self.api_key: str | None = api_key
        self._model: str | None = model
        self.base_url: str | None = base_url
        self.http_client: httpx.AsyncClient | None = http_client
        self.logger: Logger = logger or get_logger(__name__)

    @property
    def model(self) -> str:
        return self._model or get_openai_model()

    def require_credentials(self, action: str = "Ask model") -> None:
        if self.openai_client is None and not (self.api_key or get_openai_api_key()):
            raise MissingCredentialError(credential="OPENAI_API_KEY", action=action)

    def _get_openai_client(self) -> AsyncOpenAI:
        if self.openai_client is None:
            self.require_credentials()
            self.openai_client = AsyncOpenAI(
                api_key=self.api_key or get_openai_api_key(),
                base_url=self.base_url or get_openai_base_url(),
                max_retries=0,
                http_client=self.http_client,
            )
        return self.openai_client

    async def ask(self, system_prompt: str, user_prompt: str, json_mode: bool = False, temperature: float = DEFAULT_TEMPERATURE) -> str:
        """Send one system and one user message and return the text of the first choice.

        Raises:
            MissingCredentialError: If no API key is configured.
            UpstreamHttpError: If the API answers with a non-success status.
            RequestError: If the API could not be reached.
            MalformedUpstreamResponseError: If the response has no message content.
        """

        openai_client: AsyncOpenAI = self._get_openai_client()

        messages: list[ChatCompletionMessageParam] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        request_args: dict[str, Any] = {"model": self.model, "temperature": temperature, "messages": messages}
        if json_mode:
            request_args["response_format"] = {"type": "json_object"}

        self.logger.info(f"Asking {self.model} with a prompt of {len(system_prompt) + len(user_prompt)} characters (json_mode={json_mode})")

        try:
            completion: ChatCompletion = await openai_client.chat.completions.create(**request_args)
        except APIStatusError as e:
            upstream_message: str | None = None
            if isinstance(e.body, dict):
                upstream_message = e.body.get("message")  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]

            self.logger.error(f"Chat completion failed with status {e.status_code}: {upstream_message or e.message}")

            raise UpstreamHttpError(
                action="Chat completion",
                status_code=e.status_code,
                status_text=httpx.codes.get_reason_phrase(e.status_code) or str(e.status_code),
                upstream_message=str(upstream_message) if upstream_message else e.message,
                extra_info={"model": self.model},
            ) from e
        except APIConnectionError as e:
            self.logger.error(f"Chat completion could not reach the model API: {e}")

            raise RequestError(action="Chat completion", message=str(e), extra_info={"model": self.model}) from e

        if not completion.choices or completion.choices[0].message.content is None:
            raise MalformedUpstreamResponseError(action="Chat completion", reason="no message content", extra_info={"model": self.model})

        return completion.choices[0].message.content

    async def ask_json(self, system_prompt: str, user_prompt: str, temperature: float = DEFAULT_TEMPERATURE) -> dict[str, Any]:
        """Ask for a JSON object. A response that is not a JSON object yields an empty dict."""

        text: str = await self.ask(system_prompt=system_prompt, user_prompt=user_prompt, json_mode=True, temperature=temperature)

        parsed: dict[str, Any] = parse_json_object(text)

        if not parsed:
            self.logger.warning(f"Model {self.model} did not return a JSON object")

        return parsed
