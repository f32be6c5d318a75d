"""Rule-based complexity routing and tier model selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from helena_agent.config import ModelConfig, SettingsProvider
from helena_agent.types import AgentMode

logger = logging.getLogger(__name__)

Tier = Literal[1, 2, 3]
Provider = Literal["openai", "anthropic", "ollama"]

DRAFTING_TERMS = ("schriftsatz", "entwurf", "erstelle", "verfasse", "formuliere")
RESEARCH_TERM = "recherchiere"
LEGAL_TERMS = ("gesetz", "urteil", "paragraph", "bgh", "bverfg", "zpo", "bgb", "stgb")
COMPARE_TERMS = ("vergleiche", "gegenueberstelle")
EXHAUSTIVE_TERMS = ("analysiere", "pruefe")
SCOPE_TERMS = ("alle", "vollstaendig", "komplett", "saemtliche")
FILING_TERMS = ("klage", "antrag", "berufung", "revision", "widerspruch")
SIMPLE_QUESTION_STARTS = (
    "was ist",
    "zeige",
    "welche",
    "wie viele",
    "wann",
    "wer ist",
    "wo ist",
)

LONG_QUERY_CHARS = 300
SHORT_QUERY_CHARS = 80


@dataclass(slots=True, frozen=True)
class ComplexityResult:
    mode: AgentMode
    tier: Tier
    reason: str


@dataclass(slots=True, frozen=True)
class ModelSelection:
    model_name: str
    provider: Provider
    tier: Tier


def classify_complexity(message: str) -> ComplexityResult:
    """First matching rule wins; the cascade is ordered by cost."""
    text = message.lower().strip()

    if "schriftsatz" in text:
        filing = _first_match(text, FILING_TERMS)
        if filing:
            return ComplexityResult(
                "background", 3, f"Schriftsatz mit {filing} erkannt -- hoechste Qualitaetsstufe"
            )

    drafting = _first_match(text, DRAFTING_TERMS)
    if drafting:
        return ComplexityResult(
            "background", 2, f"Entwurfsaufgabe ({drafting}) -- Hintergrundverarbeitung"
        )

    if RESEARCH_TERM in text:
        legal = _first_match(text, LEGAL_TERMS)
        if legal:
            return ComplexityResult(
                "background", 2, f"Rechtliche Recherche ({legal}) -- Hintergrundverarbeitung"
            )

    compare = _first_match(text, COMPARE_TERMS)
    if compare:
        return ComplexityResult(
            "background", 2, f"Vergleichsanalyse ({compare}) -- Hintergrundverarbeitung"
        )

    exhaustive = _first_match(text, EXHAUSTIVE_TERMS)
    if exhaustive and _first_match(text, SCOPE_TERMS):
        return ComplexityResult(
            "background", 2, f"Umfassende Analyse ({exhaustive}) -- Hintergrundverarbeitung"
        )

    if len(text) > LONG_QUERY_CHARS:
        return ComplexityResult(
            "background", 2, f"Lange Anfrage ({len(text)} Zeichen) -- Hintergrundverarbeitung"
        )

    if len(text) < SHORT_QUERY_CHARS and text.startswith(SIMPLE_QUESTION_STARTS):
        return ComplexityResult("inline", 1, "Einfache Frage -- schnelles Modell inline")

    return ComplexityResult("inline", 2, "Standard-Komplexitaet -- Inline mit mittlerem Modell")


def escalate_tier(tier: int) -> Tier:
    return min(tier + 1, 3)  # type: ignore[return-value]


def get_model_for_tier(
    tier: int,
    settings: SettingsProvider,
    config: ModelConfig | None = None,
) -> ModelSelection:
    """Resolve the configured model id for `tier`.

    Fallback chain: the tier's own key, then each lower tier, then the global
    provider model, then the built-in default.
    """

    cfg = config or ModelConfig()
    model_name: str | None = None
    for candidate in range(tier, 0, -1):
        value = settings.get(cfg.tier_key_template.format(tier=candidate))
        if value:
            model_name = str(value)
            break
    if model_name is None:
        model_name = str(settings.get(cfg.global_model_key, cfg.default_model))

    selection = ModelSelection(
        model_name=model_name,
        provider=detect_provider(model_name),
        tier=min(max(tier, 1), 3),  # type: ignore[arg-type]
    )
    logger.debug("Tier %s resolved to %s (%s)", tier, selection.model_name, selection.provider)
    return selection


def detect_provider(model_name: str) -> Provider:
    lowered = model_name.lower()
    if lowered.startswith(("openai/", "gpt", "o1", "o3")):
        return "openai"
    if "claude" in lowered:
        return "anthropic"
    return "ollama"


def _first_match(text: str, terms: tuple[str, ...]) -> str | None:
    for term in terms:
        if term in text:
            return term
    return None
