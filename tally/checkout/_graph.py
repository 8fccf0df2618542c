"""
Graph runtime — compiled nodnod pipelines for checkout views.

    quote = pipeline(SummaryNode)
    summary = await quote.run(request, context)

Each view compiles once at import and is run with a fresh scope per call.
Values are injected under their runtime type.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, cast

from nodnod import EventLoopAgent, Node, Scope, Value
from nodnod import scalar_node as node

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# TypedScope
# ═══════════════════════════════════════════════════════════════════════════════


class TypedScope:
    """nodnod.Scope with typed access."""

    __slots__ = ("_scope",)

    def __init__(self, detail: str = "checkout") -> None:
        self._scope = Scope(detail=detail)

    @property
    def inner(self) -> Scope:
        return self._scope

    def inject(self, value: object) -> TypedScope:
        self._scope.push(Value(cast(type[Any], type(value)), value))
        return self

    def get[T](self, typ: type[T]) -> T:
        found = self._scope.get(typ)
        if found is None:
            raise KeyError(f"{typ.__name__} not found in scope")
        return cast(T, found.value)

    async def __aenter__(self) -> TypedScope:
        await self._scope.__aenter__()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self._scope.__aexit__(*args)


# ═══════════════════════════════════════════════════════════════════════════════
# Pipeline
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Pipeline[T]:
    """A target node with its dependency graph resolved ahead of time."""

    target: type[T]
    agent: EventLoopAgent

    async def run(self, *inputs: object) -> T:
        start = time.perf_counter()
        async with TypedScope(detail=self.target.__name__) as scope:
            for value in inputs:
                scope.inject(value)

            run_agent = cast(
                Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
                getattr(self.agent, "run"),
            )
            await run_agent(scope.inner, {})
            result = scope.get(self.target)

        logger.debug(
            "%s resolved in %.1fms",
            self.target.__name__,
            (time.perf_counter() - start) * 1000,
        )
        return result


def pipeline[T](target: type[T]) -> Pipeline[T]:
    """Compile the graph that produces target."""
    nodes: set[type[Node[Any, Any]]] = {cast(type[Node[Any, Any]], target)}
    return Pipeline(target=target, agent=EventLoopAgent.build(nodes))


__all__ = ("node", "TypedScope", "Pipeline", "pipeline")
