import httpx
import pytest

from commons import limiter
from src.client.relay_client import RelayClient


RELAY_BASE_URL = "http://relay.test"


@pytest.fixture(autouse=True)
def _disable_rate_limits():
    limiter.enabled = False
    yield
    limiter.enabled = True


def make_relay(handler) -> RelayClient:
    """RelayClient whose HTTP traffic is answered by ``handler``."""
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url=RELAY_BASE_URL
    )
    return RelayClient(RELAY_BASE_URL, http_client=http_client)
