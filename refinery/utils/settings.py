import os
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


class MissingCredentialError(ValueError):
    """Raised at startup when the reasoning collaborator credential is absent."""


class RefinerySettings(BaseModel):
    provider: Literal["gemini", "openrouter"] = "gemini"
    api_key: str = Field(min_length=1, repr=False)
    model_name: str = "gemini-2.5-flash"
    fallback_models: List[str] = Field(default_factory=list)
    temperature: float = 0.2
    max_retries: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    timeout_seconds: float = Field(default=120.0, gt=0)
    use_response_schema: bool = True
    audit_sample_size: int = Field(default=30, ge=1)
    clean_sample_size: int = Field(default=200, ge=1)
    query_sample_size: int = Field(default=50, ge=1)
    chart_max_rows: int = Field(default=50, ge=1)
    log_dir: Optional[str] = None
    log_level: str = "INFO"
    model_config = ConfigDict(frozen=True)


_DEFAULT_MODELS = {
    "gemini": "gemini-2.5-flash",
    "openrouter": "minimax/minimax-m2.5",
}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


def _resolve_api_key(provider: str) -> Optional[str]:
    if provider == "openrouter":
        return os.getenv("OPENROUTER_API_KEY")
    return os.getenv("GOOGLE_API_KEY") or os.getenv("API_KEY")


def load_settings(use_dotenv: bool = True) -> RefinerySettings:
    """
    Reads settings from the environment (and .env when use_dotenv is set).
    Raises MissingCredentialError when the provider credential is absent.
    """
    if use_dotenv:
        load_dotenv()

    provider = (os.getenv("REFINERY_LLM_PROVIDER") or "gemini").strip().lower()
    if provider not in _DEFAULT_MODELS:
        raise ValueError(f"Unsupported REFINERY_LLM_PROVIDER: {provider}")

    api_key = _resolve_api_key(provider)
    if not api_key:
        env_name = "OPENROUTER_API_KEY" if provider == "openrouter" else "GOOGLE_API_KEY"
        raise MissingCredentialError(f"{env_name} is required for provider '{provider}'.")

    fallback_raw = os.getenv("REFINERY_FALLBACK_MODELS") or ""
    timeout_seconds = _env_float("REFINERY_TIMEOUT_SECONDS", 120.0)
    return RefinerySettings(
        provider=provider,
        api_key=api_key,
        model_name=os.getenv("REFINERY_MODEL") or _DEFAULT_MODELS[provider],
        fallback_models=[m.strip() for m in fallback_raw.split(",") if m.strip()],
        temperature=_env_float("REFINERY_TEMPERATURE", 0.2),
        max_retries=max(1, _env_int("REFINERY_MAX_RETRIES", 3)),
        retry_base_delay=max(0.0, _env_float("REFINERY_RETRY_BASE_DELAY", 1.0)),
        timeout_seconds=timeout_seconds if timeout_seconds > 0 else 120.0,
        use_response_schema=_env_flag("REFINERY_USE_RESPONSE_SCHEMA", True),
        audit_sample_size=max(1, _env_int("REFINERY_AUDIT_SAMPLE_SIZE", 30)),
        clean_sample_size=max(1, _env_int("REFINERY_CLEAN_SAMPLE_SIZE", 200)),
        query_sample_size=max(1, _env_int("REFINERY_QUERY_SAMPLE_SIZE", 50)),
        chart_max_rows=max(1, _env_int("REFINERY_CHART_MAX_ROWS", 50)),
        log_dir=os.getenv("REFINERY_LOG_DIR") or None,
        log_level=(os.getenv("REFINERY_LOG_LEVEL") or "INFO").upper(),
    )
