"""Request routing: model alias -> backend adapter."""

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from .backend_client import BackendClient
from .errors import ClientValidationError, ModelNotFoundError, UnsupportedBackendError
from .models import AliasEntry, Backend, BackendResponse, ChatMessage, GenerationRequest, RequestKind
from .registry import ModelRegistry

logger = logging.getLogger(__name__)


@dataclass
class Route:
    """Where a request goes."""
    adapter: BackendClient
    upstream_model: str
    entry: AliasEntry


class Router:
    """
    Resolves client model names through the registry and dispatches to
    the adapter registered for the resolved backend.

    Holds no mutable state; one instance serves all requests.
    """

    def __init__(self, registry: ModelRegistry, adapters: Mapping[Backend, BackendClient]):
        self.registry = registry
        self.adapters = dict(adapters)

    @staticmethod
    def validate_messages(messages: Optional[List[ChatMessage]]):
        if not messages:
            raise ClientValidationError("Messages array is required and must not be empty")
        for msg in messages:
            if not msg.role or not msg.content:
                raise ClientValidationError("Each message must have role and content")

    def route(self, model: str, kind: RequestKind) -> Route:
        entry = self.registry.resolve(model)
        adapter = self.adapters.get(entry.backend)

        logger.info(f"Routing {kind.value} request: requested={model!r} alias={entry.alias!r} "
                    f"backend={entry.backend.value} upstream={entry.upstream_model!r}")

        if adapter is None:
            raise UnsupportedBackendError("Unsupported backend")
        return Route(adapter=adapter, upstream_model=entry.upstream_model, entry=entry)

    async def dispatch(self, request: GenerationRequest, kind: RequestKind) -> Tuple[Route, BackendResponse]:
        """Validate, route and call the adapter. ``request.model`` becomes the upstream id."""
        if kind is RequestKind.CHAT:
            self.validate_messages(request.messages)

        route = self.route(request.model, kind)
        upstream_request = request.model_copy(update={"model": route.upstream_model})

        if kind is RequestKind.CHAT:
            response = await route.adapter.chat(upstream_request)
        else:
            response = await route.adapter.generate(upstream_request)
        return route, response

    def lookup_model(self, name: str) -> AliasEntry:
        entry = self.registry.lookup(name)
        if entry is None:
            logger.info(f"Model not found: {name!r}")
            raise ModelNotFoundError("Model not found")
        return entry
