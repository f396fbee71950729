from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import Mock, patch

import pytest

from aresclient.route import Route
from tests.helpers import FakeClock

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture
def mock_asleep() -> Generator[Mock, None, None]:
    """Patch asyncio.sleep to make tests run faster."""
    with patch("asyncio.sleep", return_value=None) as mock:
        yield mock


@pytest.fixture
def clock() -> FakeClock:
    """Create a manually advanced monotonic clock."""
    return FakeClock()


@pytest.fixture
def route() -> Route:
    return Route("https", "api.example.com", 443)


@pytest.fixture
def mock_callback() -> Mock:
    """Create a mock callback function for testing callbacks.

    Returns:
        A Mock object that can be used as a callback function.

    Example:
        >>> def test_callback(mock_callback):
        ...     executor = RequestExecutor(on_attempt=mock_callback)
        ...     mock_callback.assert_called_once()
    """
    return Mock()
