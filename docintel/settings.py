import os
from dataclasses import dataclass
from typing import Optional

DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")
DEFAULT_DATABASE_URL = f"sqlite:///{os.path.join(DATA_DIR, 'ocr.db')}"

DEFAULT_BASE_URL = "https://ai.gateway.lovable.dev/v1"
DEFAULT_MODEL = "google/gemini-2.5-flash"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    llm_provider: str = "openai"
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    temperature: float = 0.0
    timeout_seconds: float = 120.0
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llava"
    engine_id: Optional[str] = None
    database_url: str = DEFAULT_DATABASE_URL
    persist_results: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Read configuration from the process environment.

        The extraction core never touches os.environ itself; the hosting entry
        point builds a Settings once and passes it down.
        """
        return cls(
            llm_provider=os.getenv("LLM_PROVIDER", "openai").strip().lower(),
            api_key=os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("LLM_BASE_URL", DEFAULT_BASE_URL),
            model=os.getenv("LLM_MODEL", DEFAULT_MODEL),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0")),
            timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "120")),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            ollama_model=os.getenv("OLLAMA_MODEL", "llava"),
            engine_id=os.getenv("OCR_ENGINE_ID") or None,
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            persist_results=_env_bool("OCR_PERSIST_RESULTS", True),
            log_level=os.getenv("APP_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def active_model(self) -> str:
        return self.ollama_model if self.llm_provider == "ollama" else self.model

    @property
    def engine_identifier(self) -> str:
        return self.engine_id or f"{self.llm_provider}:{self.active_model}"
