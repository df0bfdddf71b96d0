"""
Best-effort side effects.

State changes are committed before a handler returns. Message sends and
push fan-out are returned as Effects and dispatched afterwards: every
effect is attempted, failures are logged and dropped, and nothing is
rolled back.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional

logger = logging.getLogger(__name__)


@dataclass
class Effect:
    """A deferred, non-transactional side effect."""

    name: str
    run: Callable[[], Awaitable[Any]]
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class Outcome:
    """
    Result of handling one inbound event.

    action: what the handler did (for logs and acknowledgements)
    order_id: order touched, if any
    effects: best-effort effects to dispatch after the response is decided
    """

    action: str
    order_id: Optional[str] = None
    effects: list[Effect] = field(default_factory=list)


async def dispatch_effects(effects: Iterable[Effect]) -> list[Any]:
    """
    Run all effects concurrently and settle every one of them.

    Returns:
        One entry per effect: its result, or the exception it raised
    """
    effects = list(effects)
    if not effects:
        return []

    results = await asyncio.gather(*(effect.run() for effect in effects), return_exceptions=True)

    for effect, result in zip(effects, results):
        if isinstance(result, BaseException):
            logger.error(
                f"Side effect '{effect.name}' failed: {result}",
                exc_info=result,
                extra={"effect": effect.name, **effect.context},
            )
        else:
            logger.debug(f"Side effect '{effect.name}' completed", extra={"effect": effect.name})

    return results
