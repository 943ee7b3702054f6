"""
Threshold comparison operators for lshsearch.

A search candidate is accepted when ``OPERATORS[op](value, threshold)`` holds,
where ``value`` is the configured distance or similarity between the
candidate and the query.
"""

from typing import Callable

from lshsearch.errors import ConfigError

Comparison = Callable[[float, float], bool]

# Each operator is a lambda that takes (value, threshold) and returns a boolean
OPERATORS: dict[str, Comparison] = {
    '<=': lambda value, threshold: value <= threshold,
    '<': lambda value, threshold: value < threshold,
    '>=': lambda value, threshold: value >= threshold,
    '>': lambda value, threshold: value > threshold,
}


def get_operator(op: str) -> Comparison:
    """
    Look up a threshold comparison by its symbol.

    Args:
        op: One of the keys of OPERATORS.

    Returns:
        The comparison function.

    Raises:
        ConfigError: If the operator is not supported.
    """
    try:
        return OPERATORS[op]
    except KeyError:
        raise ConfigError(
            f"Unsupported threshold operator {op!r}, "
            f"expected one of {sorted(OPERATORS)}"
        ) from None
