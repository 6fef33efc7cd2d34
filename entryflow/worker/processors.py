"""
Stage handlers registry and the stage processor.

Stage handlers must be idempotent - a stage may be executed more than once
for the same entry when a lease goes stale and another worker reclaims it.
"""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable

import httpx

from entryflow.config import Settings, get_settings
from entryflow.errors import StageExecutionError
from entryflow.types.entry import utc_now
from entryflow.types.stage import StageContext, StageResult

logger = logging.getLogger(__name__)

# Type alias for stage handler functions
StageHandler = Callable[[StageContext], Awaitable[StageResult]]

# Handler registry
_handlers: dict[str, StageHandler] = {}


def register_handler(name: str) -> Callable[[StageHandler], StageHandler]:
    """
    Decorator to register a stage handler.

    Args:
        name: The name the handler is selected by (``STAGE_HANDLER``).

    Returns:
        Decorator function.

    Example:
        @register_handler("thumbnail")
        async def handle_thumbnail(context: StageContext) -> StageResult:
            ...
    """
    def decorator(handler: StageHandler) -> StageHandler:
        _handlers[name] = handler
        logger.debug(f"Registered stage handler: {name}")
        return handler
    return decorator


def get_handler(name: str) -> StageHandler | None:
    """
    Get the handler registered under ``name``.

    Returns:
        The handler function or None if not found.
    """
    return _handlers.get(name)


def list_handlers() -> list[str]:
    """List all registered handler names."""
    return list(_handlers.keys())


def success_payload() -> str:
    """Result text stored on the final stage."""
    return f"Processed successfully at {utc_now().isoformat()}"


# ============================================================================
# Built-in stage handlers
# ============================================================================


@register_handler("simulated")
async def handle_simulated(context: StageContext) -> StageResult:
    """
    Stand-in for real work: waits ``delay_seconds`` and succeeds.
    The final stage returns a success payload.
    """
    logger.info(
        "Simulated stage executing",
        extra={"entry_id": str(context.entry_id), "stage": context.stage_index + 1},
    )

    if context.delay_seconds > 0:
        await asyncio.sleep(context.delay_seconds)

    return StageResult(
        success=True,
        output=success_payload() if context.is_final else None,
    )


@register_handler("random_failure")
async def handle_random_failure(context: StageContext) -> StageResult:
    """
    Simulated stage that fails with probability ``STAGE_FAILURE_RATE``.
    Useful for exercising the FAILED path end to end.
    """
    failure_rate = (context.settings or get_settings()).stage_failure_rate

    if context.delay_seconds > 0:
        await asyncio.sleep(context.delay_seconds)

    if random.random() < failure_rate:
        logger.warning(
            "Random stage failure triggered",
            extra={"entry_id": str(context.entry_id), "stage": context.stage_index + 1},
        )
        return StageResult(
            success=False,
            error=f"Random failure in stage {context.stage_index + 1}",
        )

    return StageResult(
        success=True,
        output=success_payload() if context.is_final else None,
    )


def _webhook_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout)


@register_handler("webhook")
async def handle_webhook(context: StageContext) -> StageResult:
    """
    Delegate the stage to an HTTP endpoint.

    POSTs the stage context as JSON to ``STAGE_WEBHOOK_URL``; any 2xx
    response is a success and its (truncated) body becomes the final payload.
    """
    settings = context.settings or get_settings()
    url = settings.stage_webhook_url

    if not url:
        return StageResult(
            success=False,
            error="STAGE_WEBHOOK_URL is not configured",
        )

    body = {
        "entry_id": str(context.entry_id),
        "title": context.title,
        "stage": context.stage_index + 1,
        "stage_count": context.stage_count,
        "target_status": context.stage.target.value,
        "worker_id": context.worker_id,
    }

    logger.info(
        "Webhook stage request",
        extra={"entry_id": str(context.entry_id), "stage": context.stage_index + 1, "url": url},
    )

    try:
        async with _webhook_client(settings.stage_webhook_timeout_seconds) as client:
            response = await client.post(url, json=body)
    except httpx.HTTPError as e:
        return StageResult(
            success=False,
            error=f"Webhook request failed: {str(e)}",
        )

    if not response.is_success:
        return StageResult(
            success=False,
            error=f"Webhook returned HTTP {response.status_code}",
        )

    output = None
    if context.is_final:
        output = response.text[:1000] or success_payload()
    return StageResult(success=True, output=output)


class StageProcessor:
    """
    Runs the work of one stage through the configured handler.

    Pure with respect to the entry record: the scheduler persists whatever
    the processor returns.
    """

    def __init__(
        self,
        handler_name: str | None = None,
        stage_delay_seconds: float | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.settings = settings
        self.handler_name = handler_name or settings.stage_handler
        self.stage_delay_seconds = (
            settings.stage_delay_seconds if stage_delay_seconds is None else stage_delay_seconds
        )

    async def execute(self, context: StageContext) -> StageResult:
        """
        Execute one stage.

        Args:
            context: The stage context. ``delay_seconds`` and ``settings``
                are filled in from the processor configuration.

        Returns:
            The successful StageResult, with ``duration_ms`` set.

        Raises:
            StageExecutionError: If the handler is unknown, raises, or
                reports failure.
        """
        handler = get_handler(self.handler_name)
        if handler is None:
            raise StageExecutionError(
                context.stage_index,
                f"No stage handler registered under '{self.handler_name}'",
            )

        context.delay_seconds = self.stage_delay_seconds
        context.settings = self.settings
        start = time.monotonic()

        try:
            result = await handler(context)
        except StageExecutionError:
            raise
        except Exception as e:
            raise StageExecutionError(context.stage_index, str(e) or type(e).__name__) from e

        if not result.success:
            raise StageExecutionError(context.stage_index, result.error or "Unknown error")

        result.duration_ms = (time.monotonic() - start) * 1000
        return result
