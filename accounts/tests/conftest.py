import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def _clear_throttle_cache():
    # throttling counters live in the locmem cache
    cache.clear()
    yield
    cache.clear()
