"""Raw request body capture for signature verification.

Signatures cover the exact bytes the provider sent, so the body must be read
from the stream before anything parses or re-encodes it. The size limit is
enforced while reading; the body is never truncated.
"""

from starlette.requests import ClientDisconnect, Request

from paygate.models.errors import BodyReadError, BodyTooLargeError
from paygate.utils.logging import get_logger

logger = get_logger(__name__)


def _declared_length(request: Request) -> int | None:
    value = request.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as e:
        raise BodyReadError("Invalid Content-Length header") from e


async def capture_body(request: Request, max_bytes: int) -> bytes:
    """Read the request body as the exact bytes received.

    Args:
        request: Inbound request whose body has not been consumed yet
        max_bytes: Maximum accepted body size

    Returns:
        The unmodified body bytes.

    Raises:
        BodyTooLargeError: If the declared or actual size exceeds max_bytes.
        BodyReadError: If the stream fails or the client disconnects.
    """
    declared = _declared_length(request)
    if declared is not None and declared > max_bytes:
        logger.warning("Rejecting body: declared %d bytes, limit %d", declared, max_bytes)
        raise BodyTooLargeError(details={"max_bytes": max_bytes})

    chunks: list[bytes] = []
    received = 0
    try:
        async for chunk in request.stream():
            received += len(chunk)
            if received > max_bytes:
                logger.warning("Rejecting body: exceeded %d bytes while reading", max_bytes)
                raise BodyTooLargeError(details={"max_bytes": max_bytes})
            chunks.append(chunk)
    except ClientDisconnect as e:
        raise BodyReadError("Client disconnected while sending the body") from e
    except BodyReadError:
        raise
    except Exception as e:
        logger.warning("Failed to read request body: %s", e)
        raise BodyReadError() from e

    return b"".join(chunks)
