"""
Custom code generation for products and orders.

Codes are a one-letter prefix followed by a zero-padded five digit number
(``O04217``). Uniqueness is checked through an async callback so the
generator itself stays free of storage concerns and can be driven by a seeded
``random.Random`` in tests.
"""

import random
from typing import Awaitable, Callable, Optional

from marketplace.core.logging import get_logger
from marketplace.services.orders.exceptions import IdGenerationError

logger = get_logger(__name__)

ORDER_PREFIX = "O"
PRODUCT_PREFIX = "P"
CODE_UPPER_BOUND = 99999
DEFAULT_MAX_ATTEMPTS = 50

ExistsCallback = Callable[[str], Awaitable[bool]]


def format_code(prefix: str, number: int) -> str:
    """Render ``number`` as a prefixed five digit code."""
    return f"{prefix}{number:05d}"


async def generate_unique_code(
    prefix: str,
    exists: ExistsCallback,
    rng: Optional[random.Random] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    """
    Generate a code that ``exists`` reports as unused.

    Args:
        prefix: Code prefix, ``O`` for orders and ``P`` for products
        exists: Async callback returning True when a code is already taken
        rng: Random source, a fresh ``random.Random`` when omitted
        max_attempts: Maximum number of candidates to try

    Returns:
        Unused code

    Raises:
        IdGenerationError: If every candidate collided
    """
    rng = rng or random.Random()

    for attempt in range(1, max_attempts + 1):
        candidate = format_code(prefix, rng.randint(0, CODE_UPPER_BOUND - 1))
        if not await exists(candidate):
            if attempt > 1:
                logger.debug(
                    "Unique code found after collisions",
                    prefix=prefix,
                    code=candidate,
                    attempts=attempt,
                )
            return candidate

    logger.error(
        "Unique code generation exhausted",
        prefix=prefix,
        max_attempts=max_attempts,
    )
    raise IdGenerationError(
        f"Could not generate a unique {prefix} code after {max_attempts} attempts",
        prefix=prefix,
        max_attempts=max_attempts,
    )
