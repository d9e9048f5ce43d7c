"""
LLM Factory Module.

Single place where chat model instances are created, so model, temperature,
timeout and retry policy come from Config instead of being spelled out at
call sites.

Usage:
    from src.common.llm_factory import create_llm

    llm = create_llm()
    response = llm.invoke([SystemMessage(content="..."), HumanMessage(content="...")])
"""

import logging
from typing import Any, List, Optional

from langchain_core.callbacks import BaseCallbackHandler
from langchain_openai import ChatOpenAI

from src.common.config import Config

logger = logging.getLogger(__name__)


def create_llm(
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    callbacks: Optional[List[BaseCallbackHandler]] = None,
    **kwargs: Any,
) -> ChatOpenAI:
    """
    Create a ChatOpenAI instance for tool detection.

    The client's own retries are disabled; callers retry rate limits
    themselves with tenacity so the attempt count is visible in one place.

    Args:
        model: Model name (defaults to Config.ANALYZER_MODEL)
        temperature: Temperature (defaults to Config.ANALYZER_TEMPERATURE)
        callbacks: Optional LangChain callbacks
        **kwargs: Additional ChatOpenAI parameters

    Returns:
        ChatOpenAI instance
    """
    effective_model = model or Config.ANALYZER_MODEL
    effective_temperature = (
        temperature if temperature is not None else Config.ANALYZER_TEMPERATURE
    )

    llm = ChatOpenAI(
        model=effective_model,
        temperature=effective_temperature,
        api_key=Config.OPENAI_API_KEY,
        timeout=Config.LLM_TIMEOUT_SECONDS,
        max_retries=0,
        callbacks=callbacks,
        **kwargs,
    )

    logger.debug(f"Created OpenAI LLM: model={effective_model}")
    return llm
