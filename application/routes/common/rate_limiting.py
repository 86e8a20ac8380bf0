"""
Rate limiting utilities for route handlers.

Generation commands are rate limited per client address so that a runaway
shell cannot start paid generations in a tight loop.
"""

from datetime import timedelta

from quart import request

# Generation commands (send, regenerate) per client per window
COMMAND_RATE_LIMIT = 60
COMMAND_RATE_PERIOD = timedelta(minutes=1)


async def default_rate_limit_key() -> str:
    """
    Generate rate limit key based on client IP address.

    Returns:
        str: Client IP address or "unknown" if not available

    Example:
        >>> @rate_limit(COMMAND_RATE_LIMIT, COMMAND_RATE_PERIOD,
        ...             key_function=default_rate_limit_key)
        >>> async def send_message(conversation_id):
        >>>     pass
    """
    return request.remote_addr or "unknown"
