from dataclasses import dataclass

from loguru import logger

from chatbot.config import Settings, get_settings

DEFAULT_MODEL_ID = "grok"


@dataclass(frozen=True)
class ProviderSelection:
    provider: str
    model_name: str
    credential_source: str
    base_url: str

    @property
    def api_key(self) -> str:
        return getattr(get_settings(), self.credential_source.lower(), "") or ""


def _routes(settings: Settings) -> dict[str, ProviderSelection]:
    return {
        "grok": ProviderSelection(
            provider="xai",
            model_name=settings.xai_model,
            credential_source="XAI_API_KEY",
            base_url=settings.xai_base_url,
        ),
        "groq": ProviderSelection(
            provider="groq",
            model_name=settings.groq_model,
            credential_source="GROQ_API_KEY",
            base_url=settings.groq_base_url,
        ),
    }


def select_provider(model_id: str | None) -> ProviderSelection:
    """
    Map a model identifier to a concrete provider.

    Unknown identifiers fall back to the default route so stale stored settings
    keep working. Credentials are not checked here; a missing key fails at the
    provider call.
    """
    routes = _routes(get_settings())
    if model_id in routes:
        return routes[model_id]
    logger.warning(f"[router] unknown model {model_id!r}, using {DEFAULT_MODEL_ID!r}")
    return routes[DEFAULT_MODEL_ID]


def available_models() -> list[dict]:
    routes = _routes(get_settings())
    return [
        {
            "id": model_id,
            "provider": selection.provider,
            "model_name": selection.model_name,
            "configured": bool(selection.api_key),
            "default": model_id == DEFAULT_MODEL_ID,
        }
        for model_id, selection in routes.items()
    ]
