"""Feature flags: controls mock/live provider selection."""
from config.settings import get_settings


def is_mock_llm() -> bool:
    return get_settings().MOCK_LLM


def use_in_memory_channels() -> bool:
    return get_settings().USE_IN_MEMORY_CHANNELS
