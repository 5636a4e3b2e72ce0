from __future__ import annotations

from typing import Optional

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.litellm import LiteLLMProvider

from app.config import get_settings
from app.constants.default_system_prompt import DefaultSystemPrompt
from app.infra.logging_config import get_logger

logger = get_logger("llm")


class ReportGenerationRunner:
    """Runs an enhancement prompt through the configured model and returns raw text."""

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        system_prompt: Optional[str] = None,
        model: Optional[Model] = None,
    ) -> None:
        if model is None:
            provider = LiteLLMProvider(api_key=api_key, api_base=api_base)
            model = OpenAIChatModel(model_name or "gpt-4o-mini", provider=provider)
            logger.info(f"Initializing report generation runner with model {model_name}")
        self._agent = Agent(
            model,
            system_prompt=system_prompt or DefaultSystemPrompt.CONTENT,
        )

    async def generate(self, prompt_text: str) -> str:
        result = await self._agent.run(prompt_text)
        return str(result.output)


def build_generation_runner_from_env() -> Optional[ReportGenerationRunner]:
    """Runner from settings, or None when generation is disabled or has no key."""
    settings = get_settings()
    logger.info(
        "LLM runner config: enabled=%s, model=%s, api_key=%s, api_base=%s",
        settings.llm_enabled,
        settings.llm_model,
        "set" if settings.litellm_api_key else "not set",
        settings.litellm_api_base or "(default)",
    )
    if not settings.llm_enabled:
        return None
    if not settings.litellm_api_key:
        logger.warning(
            "LITELLM_API_KEY is not set; report generation endpoints will return 503."
        )
        return None

    return ReportGenerationRunner(
        model_name=settings.llm_model,
        api_key=settings.litellm_api_key,
        api_base=settings.litellm_api_base,
    )
