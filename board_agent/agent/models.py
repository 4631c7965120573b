"""Backend model buckets.

Each task kind maps to one fixed provider/model configuration. The values are
not request-tunable.
"""

from dataclasses import dataclass

from board_agent.agent.safety import TaskKind


@dataclass(frozen=True)
class ModelSpec:
    model_id: str
    display_name: str
    provider: str  # "openai" | "anthropic"
    api_model_name: str
    temperature: float
    max_tokens: int
    max_turns: int


SIMPLE_MODEL = ModelSpec(
    model_id="fast",
    display_name="GPT-4o",
    provider="openai",
    api_model_name="gpt-4o",
    temperature=0.7,
    max_tokens=1024,
    max_turns=3,
)

CREATIVE_MODEL = ModelSpec(
    model_id="creative",
    display_name="Claude Sonnet 4.6",
    provider="anthropic",
    api_model_name="claude-sonnet-4-6",
    temperature=0.7,
    max_tokens=8192,
    max_turns=15,
)

MODEL_BUCKETS: dict[TaskKind, ModelSpec] = {
    TaskKind.SIMPLE: SIMPLE_MODEL,
    TaskKind.CREATIVE: CREATIVE_MODEL,
}


def get_model_spec(kind: TaskKind) -> ModelSpec:
    return MODEL_BUCKETS[kind]
