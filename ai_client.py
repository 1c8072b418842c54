"""
AI text-generation collaborator.

A prompt is registered under an id together with the function that renders
its text from a typed input model. ``generate`` sends the rendered prompt to
the OpenAI chat completions API in JSON mode and validates the reply against
the caller's output model.
"""
import json
import logging
from functools import lru_cache
from typing import Callable, Dict, Optional, Type, TypeVar

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ValidationError

from config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

PromptRenderer = Callable[[BaseModel], str]
PROMPTS: Dict[str, PromptRenderer] = {}


class AIGenerationError(Exception):
    """The AI service could not produce a usable response."""


def prompt(prompt_id: str):
    def register(fn: PromptRenderer) -> PromptRenderer:
        PROMPTS[prompt_id] = fn
        return fn

    return register


@lru_cache(maxsize=1)
def _client() -> AsyncOpenAI:
    key = get_settings().openai_api_key
    if not key:
        raise AIGenerationError("AI service is not configured (OPENAI_API_KEY missing)")
    return AsyncOpenAI(api_key=key)


def _system_message(output_model: Type[BaseModel]) -> str:
    schema = json.dumps(output_model.model_json_schema())
    return (
        "Reply with a single JSON object and nothing else. "
        f"It must validate against this JSON schema: {schema}"
    )


async def generate(
    prompt_id: str,
    payload: BaseModel,
    output_model: Type[T],
    image_data_uri: Optional[str] = None,
) -> Optional[T]:
    """
    Run a registered prompt. Returns None when the model answers with no
    content; raises AIGenerationError on transport, API or schema failures.
    """
    try:
        render = PROMPTS[prompt_id]
    except KeyError:
        raise AIGenerationError(f"Unknown prompt: {prompt_id}")

    text = render(payload)
    user_content: object = text
    if image_data_uri:
        user_content = [
            {"type": "text", "text": text},
            {"type": "image_url", "image_url": {"url": image_data_uri}},
        ]

    try:
        rsp = await _client().chat.completions.create(
            model=get_settings().openai_model,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": _system_message(output_model)},
                {"role": "user", "content": user_content},
            ],
        )
    except OpenAIError as e:
        raise AIGenerationError(str(e)) from e

    content = rsp.choices[0].message.content if rsp.choices else None
    if not content or not content.strip():
        logger.warning("prompt %s returned no content", prompt_id)
        return None

    try:
        return output_model.model_validate_json(content)
    except ValidationError as e:
        raise AIGenerationError(f"{prompt_id}: response failed schema validation") from e
