"""Proxy configuration."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Config:
    """Configuration loaded from environment variables."""

    # Server
    host: str = field(default_factory=lambda: os.getenv("PROXY_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "11434")))
    debug: bool = field(default_factory=lambda: bool(os.getenv("DEBUG")))

    # OpenAI-compatible upstream
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    openai_base_url: str = field(default_factory=lambda:
        os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"))

    # Gemini
    gemini_api_key: str = field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))
    gemini_base_url: str = field(default_factory=lambda:
        os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta").rstrip("/"))

    # Native Ollama (disabled when empty)
    ollama_url: str = field(default_factory=lambda: os.getenv("OLLAMA_URL", "").rstrip("/"))

    # Upstream calls
    request_timeout: float = field(default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "300")))

    @property
    def ollama_enabled(self) -> bool:
        return bool(self.ollama_url)


# Global config instance
config = Config()
