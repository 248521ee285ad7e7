"""
Terminal-result guarantee for connector streams.

A connector stream may raise or simply stop before its result event. The
guard turns both into a failure result so every stage stream ends with
exactly one result.
"""

from typing import AsyncIterator, Callable, TypeVar
import structlog

from exceptions import AppError

logger = structlog.get_logger(__name__)

E = TypeVar("E")

CLOSED_WITHOUT_RESULT = "Stream closed before a result was received"


async def guarded_stream(
    events: AsyncIterator[E],
    is_result: Callable[[E], bool],
    make_failure: Callable[[str], E],
    context: str = "connector"
) -> AsyncIterator[E]:
    """
    Re-yield events from a connector stream, ending with exactly one result.

    Args:
        events: Connector stream
        is_result: True for terminal result events
        make_failure: Builds a failure result from an error message
        context: Name used in log events

    Yields:
        Connector events up to and including the first result, or a
        synthesized failure result if the stream failed or closed early
    """
    error = CLOSED_WITHOUT_RESULT

    try:
        async for event in events:
            yield event
            if is_result(event):
                return
    except AppError as e:
        logger.warning("connector_stream_failed", context=context, error=e.message)
        error = e.message
    except Exception as e:
        logger.error("connector_stream_crashed", context=context, error=str(e), error_type=type(e).__name__)
        error = str(e) or type(e).__name__
    else:
        logger.warning("connector_stream_closed_early", context=context)
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()

    yield make_failure(error)
