r"""Parameter validation utilities.

This module provides the validation helpers used by the configuration
dataclasses and the components to reject misconfiguration at
construction time.
"""

from __future__ import annotations

__all__ = [
    "validate_non_negative",
    "validate_positive",
    "validate_positive_int",
    "validate_retry_status_codes",
    "validate_timeouts",
]

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


def validate_positive(name: str, value: float | None, *, optional: bool = False) -> None:
    """Validate that a numeric parameter is > 0.

    Args:
        name: The parameter name, used in the error message.
        value: The value to validate.
        optional: If True, None is accepted.

    Raises:
        ValueError: If the value is not > 0 (or None when not optional).

    Example:
        ```pycon
        >>> from aresclient.core.validation import validate_positive
        >>> validate_positive("sleep_window", 30.0)
        >>> validate_positive("max_lifetime", None, optional=True)
        >>> validate_positive("sleep_window", 0)
        Traceback (most recent call last):
            ...
        ValueError: sleep_window must be > 0, got 0

        ```
    """
    if value is None:
        if optional:
            return
        msg = f"{name} must be > 0, got None"
        raise ValueError(msg)
    if value <= 0:
        msg = f"{name} must be > 0, got {value}"
        raise ValueError(msg)


def validate_positive_int(name: str, value: int | None, *, optional: bool = False) -> None:
    """Validate that a parameter is an integer >= 1.

    Raises:
        ValueError: If the value is not an integer >= 1.
    """
    if value is None and optional:
        return
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        msg = f"{name} must be an integer >= 1, got {value!r}"
        raise ValueError(msg)


def validate_non_negative(name: str, value: float) -> None:
    """Validate that a numeric parameter is >= 0.

    Raises:
        ValueError: If the value is negative.
    """
    if value < 0:
        msg = f"{name} must be >= 0, got {value}"
        raise ValueError(msg)


def validate_timeouts(connect_timeout: float, read_timeout: float, total_timeout: float) -> None:
    """Validate the timeout hierarchy ``0 < connect <= read <= total``.

    Args:
        connect_timeout: The connect phase timeout in seconds.
        read_timeout: The rolling read phase timeout in seconds.
        total_timeout: The overall timeout of one attempt in seconds.

    Raises:
        ValueError: If a timeout is not > 0 or the ordering is violated.

    Example:
        ```pycon
        >>> from aresclient.core.validation import validate_timeouts
        >>> validate_timeouts(1.0, 5.0, 10.0)
        >>> validate_timeouts(10.0, 5.0, 30.0)
        Traceback (most recent call last):
            ...
        ValueError: connect_timeout must be <= read_timeout, got 10.0 > 5.0

        ```
    """
    validate_positive("connect_timeout", connect_timeout)
    validate_positive("read_timeout", read_timeout)
    validate_positive("total_timeout", total_timeout)
    if connect_timeout > read_timeout:
        msg = f"connect_timeout must be <= read_timeout, got {connect_timeout} > {read_timeout}"
        raise ValueError(msg)
    if read_timeout > total_timeout:
        msg = f"read_timeout must be <= total_timeout, got {read_timeout} > {total_timeout}"
        raise ValueError(msg)


def validate_retry_status_codes(codes: Iterable[int]) -> None:
    """Validate that every retry status code is an HTTP error code.

    Raises:
        ValueError: If a code is outside ``[400, 599]``.
    """
    for code in codes:
        if not 400 <= code <= 599:
            msg = f"retry status codes must be in [400, 599], got {code}"
            raise ValueError(msg)
