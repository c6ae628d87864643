"""Chorus engine — session registry, chunk routing and plan synthesis."""
from .models import (
    AgentKind,
    AutocompleteOption,
    OptionCategory,
    Plan,
    PlanStep,
    Session,
    SessionStatus,
    StepStatus,
    StreamChunk,
)
from .config import EngineConfig, fire_event
from .errors import (
    ChorusError,
    DuplicateSessionError,
    GenerationError,
    PlanFormatError,
    UnknownAgentError,
)
from .lifecycle import next_runnable_steps, set_step_status
from .sequencing import RequestSequencer
from .session_registry import SessionRegistry

__all__ = [
    # Models
    "AgentKind",
    "AutocompleteOption",
    "OptionCategory",
    "Plan",
    "PlanStep",
    "Session",
    "SessionStatus",
    "StepStatus",
    "StreamChunk",
    # Config
    "EngineConfig",
    "fire_event",
    # YAML config (lazy import)
    "ChorusConfig",
    "load_yaml_config",
    # Sessions
    "SessionRegistry",
    "RequestSequencer",
    # Routing (lazy import to avoid circular deps with chorus.shared)
    "ChunkRouter",
    "TranscriptView",
    "SessionMultiplexer",
    # Plans
    "set_step_status",
    "next_runnable_steps",
    "PlanSynthesizer",
    "build_generator",
    # Errors
    "ChorusError",
    "DuplicateSessionError",
    "GenerationError",
    "PlanFormatError",
    "UnknownAgentError",
]


def __getattr__(name: str):
    if name == "ChorusConfig":
        from .yaml_config import ChorusConfig
        return ChorusConfig
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "ChunkRouter":
        from .chunk_router import ChunkRouter
        return ChunkRouter
    if name == "TranscriptView":
        from .chunk_router import TranscriptView
        return TranscriptView
    if name == "SessionMultiplexer":
        from .multiplexer import SessionMultiplexer
        return SessionMultiplexer
    if name == "PlanSynthesizer":
        from .plan_synthesizer import PlanSynthesizer
        return PlanSynthesizer
    if name == "build_generator":
        from .providers import build_generator
        return build_generator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
