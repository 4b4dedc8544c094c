from langchain_core.runnables import RunnableConfig
import os

from typing import Any, Optional


def get_api_key_for_model(model_name: str, config: Optional[RunnableConfig] = None) -> Optional[str]:
    """Get API key for a specific model from environment or config."""
    should_get_from_config = os.getenv("GET_API_KEYS_FROM_CONFIG", "false")
    model_name = model_name.lower()
    if should_get_from_config.lower() == "true":
        api_keys = (config or {}).get("configurable", {}).get("apiKeys", {})
        if not api_keys:
            return None
        if model_name.startswith("anthropic:"):
            return api_keys.get("ANTHROPIC_API_KEY")
        elif model_name.startswith("openai:"):
            return api_keys.get("OPENAI_API_KEY")
        return None
    else:
        if model_name.startswith("anthropic:"):
            return os.getenv("ANTHROPIC_API_KEY")
        elif model_name.startswith("openai:"):
            return os.getenv("OPENAI_API_KEY")
        return None


def message_text(message: Any) -> str:
    """
    Plain text of a chat model reply.

    Anthropic replies may carry a list of content blocks; only ``text`` blocks count.
    """
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return ""


def format_number(value: float) -> str:
    return f"{value:,}"
