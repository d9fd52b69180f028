"""Catalog of text-generation models available through OpenRouter"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple


class ModelConfigError(ValueError):
    """Raised when a model configuration references unknown or inconsistent models"""


@dataclass(frozen=True)
class ModelDescriptor:
    """Static description of a generation model"""
    id: str
    name: str
    provider: str
    description: str
    context_length: int
    input_pricing: float  # per 1M tokens
    output_pricing: float  # per 1M tokens
    is_free: bool
    is_recommended: bool
    max_requests_per_minute: Optional[int] = None
    special_features: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "description": self.description,
            "context_length": self.context_length,
            "input_pricing": self.input_pricing,
            "output_pricing": self.output_pricing,
            "is_free": self.is_free,
            "is_recommended": self.is_recommended,
            "max_requests_per_minute": self.max_requests_per_minute,
            "special_features": list(self.special_features),
        }


FREE_MODELS: Tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="deepseek/deepseek-r1:free",
        name="DeepSeek R1 (Free)",
        provider="DeepSeek",
        description="671B parameter reasoning model with 37B active parameters.",
        context_length=64000,
        input_pricing=0,
        output_pricing=0,
        is_free=True,
        is_recommended=True,
        max_requests_per_minute=20,
        special_features=("reasoning", "open-source", "large-context"),
    ),
    ModelDescriptor(
        id="deepseek/deepseek-chat:free",
        name="DeepSeek V3 (Free)",
        provider="DeepSeek",
        description="Instruction-following and coding model pre-trained on 15 trillion tokens.",
        context_length=64000,
        input_pricing=0,
        output_pricing=0,
        is_free=True,
        is_recommended=True,
        max_requests_per_minute=30,
        special_features=("coding", "instruction-following", "multilingual"),
    ),
    ModelDescriptor(
        id="moonshot/moonshot-v1-8k:free",
        name="Moonshot V1 8K (Free)",
        provider="Moonshot AI",
        description="Multilingual model with strong reasoning capabilities.",
        context_length=8192,
        input_pricing=0,
        output_pricing=0,
        is_free=True,
        is_recommended=True,
        max_requests_per_minute=25,
        special_features=("chinese", "reasoning", "multilingual"),
    ),
    ModelDescriptor(
        id="google/gemma-2-9b-it:free",
        name="Gemma 2 9B IT (Free)",
        provider="Google",
        description="Instruction-tuned model for coding and creative tasks.",
        context_length=8192,
        input_pricing=0,
        output_pricing=0,
        is_free=True,
        is_recommended=False,
        max_requests_per_minute=30,
        special_features=("instruction-tuned", "creative", "coding"),
    ),
    ModelDescriptor(
        id="meta-llama/llama-3.1-8b-instruct:free",
        name="Llama 3.1 8B Instruct (Free)",
        provider="Meta",
        description="Open-source general model with multilingual support.",
        context_length=128000,
        input_pricing=0,
        output_pricing=0,
        is_free=True,
        is_recommended=False,
        max_requests_per_minute=30,
        special_features=("open-source", "large-context", "multilingual"),
    ),
    ModelDescriptor(
        id="microsoft/phi-3-medium-128k-instruct:free",
        name="Phi-3 Medium 128K (Free)",
        provider="Microsoft",
        description="Compact model with a very large context window.",
        context_length=128000,
        input_pricing=0,
        output_pricing=0,
        is_free=True,
        is_recommended=False,
        max_requests_per_minute=25,
        special_features=("large-context", "compact", "analysis"),
    ),
    ModelDescriptor(
        id="qwen/qwq-32b-preview:free",
        name="QwQ 32B Preview (Free)",
        provider="Qwen",
        description="Reasoning-focused model for problem solving.",
        context_length=32000,
        input_pricing=0,
        output_pricing=0,
        is_free=True,
        is_recommended=False,
        max_requests_per_minute=20,
        special_features=("reasoning", "problem-solving", "preview"),
    ),
)

PREMIUM_MODELS: Tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="openai/gpt-4o-mini",
        name="GPT-4o Mini",
        provider="OpenAI",
        description="Cost-effective GPT-4o variant.",
        context_length=128000,
        input_pricing=0.15,
        output_pricing=0.6,
        is_free=False,
        is_recommended=True,
        special_features=("cost-effective", "versatile", "large-context"),
    ),
    ModelDescriptor(
        id="anthropic/claude-3-haiku",
        name="Claude 3 Haiku",
        provider="Anthropic",
        description="Fast model for quick analysis and summaries.",
        context_length=200000,
        input_pricing=0.25,
        output_pricing=1.25,
        is_free=False,
        is_recommended=True,
        special_features=("fast", "analysis", "summarization"),
    ),
)

ALL_MODELS: Tuple[ModelDescriptor, ...] = FREE_MODELS + PREMIUM_MODELS

_MODELS_BY_ID: Dict[str, ModelDescriptor] = {m.id: m for m in ALL_MODELS}


@dataclass
class ModelConfiguration:
    """Primary/fallback/enabled model selection"""
    primary: str
    fallback: str
    enabled: List[str] = field(default_factory=list)
    version: Optional[int] = None

    def validate(self):
        """Raise ModelConfigError unless every id is known and primary/fallback are enabled"""
        if not self.primary or not self.fallback:
            raise ModelConfigError("Primary and fallback models are required")
        if not self.enabled:
            raise ModelConfigError("At least one model must be enabled")

        _, invalid = validate_model_config([self.primary, self.fallback, *self.enabled])
        if invalid:
            raise ModelConfigError(f"Invalid model IDs: {', '.join(dict.fromkeys(invalid))}")

        if self.primary not in self.enabled:
            raise ModelConfigError("Primary model must be in enabled models list")
        if self.fallback not in self.enabled:
            raise ModelConfigError("Fallback model must be in enabled models list")

    def to_dict(self) -> Dict:
        return {
            "primary": self.primary,
            "fallback": self.fallback,
            "enabled": list(self.enabled),
            "version": self.version,
        }


def default_model_config() -> ModelConfiguration:
    """Hardcoded configuration used until an administrator saves one"""
    return ModelConfiguration(
        primary="deepseek/deepseek-r1:free",
        fallback="deepseek/deepseek-chat:free",
        enabled=[m.id for m in FREE_MODELS[:5]],
    )


def get_model_by_id(model_id: str) -> Optional[ModelDescriptor]:
    return _MODELS_BY_ID.get(model_id)


def list_models() -> List[ModelDescriptor]:
    return list(ALL_MODELS)


def list_free() -> List[ModelDescriptor]:
    return [m for m in ALL_MODELS if m.is_free]


def list_recommended_free() -> List[ModelDescriptor]:
    return [m for m in ALL_MODELS if m.is_free and m.is_recommended]


def validate_model_config(model_ids: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Partition ids into (valid, invalid), keeping input order in each"""
    valid = [mid for mid in model_ids if mid in _MODELS_BY_ID]
    invalid = [mid for mid in model_ids if mid not in _MODELS_BY_ID]
    return valid, invalid
