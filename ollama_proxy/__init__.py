"""
Ollama Proxy

Ollama- and OpenAI-compatible API layer in front of several upstream
LLM providers, with model alias routing and streaming translation.

Components:
- registry: Model alias discovery and prefix resolution
- router: Request validation and backend dispatch
- openai_client / gemini_client / ollama_client: Backend adapters
- normalizer: Buffered response reshaping
- streaming: SSE stream translation
- ollama_api / openai_api: Client-protocol endpoints
"""

from .main import app, create_app

__version__ = "0.1.0"
