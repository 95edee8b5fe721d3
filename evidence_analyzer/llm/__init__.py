"""Remote capability client and phase chains."""

from .client import (
    LangChainCapability,
    LLMSettings,
    RemoteCapability,
    RemoteRequest,
    RemoteResponse,
    ScriptedCapability,
    create_chat_model,
    get_llm_settings,
)
from .chains import run_extraction_chain, run_reasoning_chain
from .parsing import IncrementalStepSplitter, parse_json_response, split_reasoning_steps

__all__ = [
    "LLMSettings",
    "get_llm_settings",
    "create_chat_model",
    "RemoteCapability",
    "RemoteRequest",
    "RemoteResponse",
    "LangChainCapability",
    "ScriptedCapability",
    "run_extraction_chain",
    "run_reasoning_chain",
    "parse_json_response",
    "split_reasoning_steps",
    "IncrementalStepSplitter",
]
