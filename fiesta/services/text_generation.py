import logging
from typing import Any, AsyncIterator, Dict, List, Optional
from openai import AsyncOpenAI
from fiesta.core.config import get_settings
from fiesta.schemas.chat import GenerationOptions


logger = logging.getLogger(__name__)


class TextGenerationError(RuntimeError):
    """Ошибка обращения к сервису генерации текста"""


class OpenAIService:
    def __init__(self, gpt_model: str = None):
        settings = get_settings()
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required for AI services")

        client_kwargs = {"api_key": settings.openai_api_key}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self.client = AsyncOpenAI(**client_kwargs)
        self.model = gpt_model or settings.gpt_model_fast
        self.search_model = settings.gpt_model_search

    async def generate(self, prompt: str, model: Optional[str] = None, max_tokens: int = 500,
                       temperature: float = 0.3) -> str:
        """Блокирующая генерация: промпт на входе, текст на выходе"""
        try:
            response = await self.client.chat.completions.create(
                model=model or self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
            return (response.choices[0].message.content or "").strip()
        except Exception as e:
            raise TextGenerationError(f"OpenAI API error: {str(e)}") from e

    def _request_kwargs(self, messages: List[Dict[str, str]], options: GenerationOptions) -> Dict[str, Any]:
        if options.search and self.search_model:
            # search-preview модели не принимают temperature
            return {
                "model": self.search_model,
                "messages": messages,
                "web_search_options": {},
            }
        return {
            "model": options.model or self.model,
            "messages": messages,
            "temperature": options.temperature,
        }

    async def stream_chat(self, messages: List[Dict[str, str]], options: GenerationOptions) -> AsyncIterator[str]:
        """
        Потоковая генерация ответа.

        Args:
            messages: Сообщения в формате OpenAI (system, история, user)
            options: Модель, веб-поиск, бюджет шагов

        Yields:
            str: Фрагменты текста в порядке получения
        """
        kwargs = self._request_kwargs(messages, options)
        logger.debug(f"OpenAI stream: model={kwargs['model']}, search={options.search}, max_steps={options.max_steps}")

        try:
            stream = await self.client.chat.completions.create(stream=True, **kwargs)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except Exception as e:
            raise TextGenerationError(f"OpenAI API error: {str(e)}") from e
