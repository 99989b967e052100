from typing import Literal

from pydantic import BaseModel, Field

Persona = Literal[
    "general",
    "analyst",
    "trader",
    "advisor",
    "riskManager",
    "economist",
]

DEFAULT_PERSONA: Persona = "general"

_DEFAULT_PROMPTS: dict[str, str] = {
    "general": (
        "You are a helpful AI assistant. Provide clear, concise, "
        "and accurate responses."
    ),
    "analyst": (
        "You are a financial analyst. Provide detailed market analysis, "
        "technical indicators, and data-driven insights."
    ),
    "trader": (
        "You are an experienced trader. Focus on trading strategies, "
        "entry/exit points, and risk management."
    ),
    "advisor": (
        "You are a financial advisor. Provide personalized investment advice "
        "based on user goals and risk tolerance."
    ),
    "riskManager": (
        "You are a risk management expert. Analyze potential risks, "
        "volatility, and provide hedging strategies."
    ),
    "economist": (
        "You are an economist. Analyze macroeconomic trends, policy impacts, "
        "and economic indicators."
    ),
}


class PersonaConfig(BaseModel):
    """System prompt templates keyed by assistant persona.

    The persona only selects the system prompt; it never influences
    which provider answers.
    """

    prompts: dict[str, str] = Field(
        default_factory=lambda: dict(_DEFAULT_PROMPTS),
        description="System prompt per assistantType",
    )

    def system_prompt(self, persona: str) -> str:
        """Return the prompt for *persona*, falling back to ``general``."""
        if persona in self.prompts:
            return self.prompts[persona]
        return self.prompts.get(DEFAULT_PERSONA, _DEFAULT_PROMPTS[DEFAULT_PERSONA])
