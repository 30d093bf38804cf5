import aiohttp
import pytest

from services.blockchain_info_client import BlockchainInfoClient, parse_hashrate
from services.coingecko_client import CoinGeckoClient, PriceQuote, parse_price_payload
from services.fear_greed_client import FearGreedClient, SentimentReading, parse_fear_greed_payload
from services.retry import PayloadError, RetryPolicy


class FakeResponse:
    def __init__(self, payload=None, text="", status=200):
        self._payload = payload
        self._text = text
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientError(f"HTTP {self.status}")

    async def json(self, content_type="application/json"):
        return self._payload

    async def text(self):
        return self._text


class FakeSession:
    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def get(self, url, params=None, headers=None):
        self.requests.append({'url': url, 'params': params, 'headers': headers})
        if not self._responses:
            raise AssertionError("No more fake responses configured")
        return self._responses.pop(0)


async def no_sleep(_seconds):
    return None


FAST_POLICY = RetryPolicy(max_attempts=2, initial_delay=0, max_delay=0, timeout=1)


@pytest.mark.asyncio
async def test_coingecko_get_price_parses_price_and_change():
    session = FakeSession([FakeResponse({'bitcoin': {'eur': 65000.4, 'eur_24h_change': -1.25}})])
    client = CoinGeckoClient(session, api_key='demo', policy=FAST_POLICY, sleep=no_sleep)

    quote = await client.get_price()

    assert quote == PriceQuote(price=65000.4, change_24h=-1.25)
    request = session.requests[0]
    assert request['url'].endswith('/simple/price')
    assert request['params'] == {'ids': 'bitcoin', 'vs_currencies': 'eur', 'include_24hr_change': 'true'}
    assert request['headers'] == {'x-cg-demo-api-key': 'demo'}


@pytest.mark.asyncio
async def test_coingecko_retries_malformed_payload_then_succeeds():
    session = FakeSession([
        FakeResponse({'bitcoin': {}}),
        FakeResponse({'bitcoin': {'eur': 61000}}),
    ])
    client = CoinGeckoClient(session, policy=FAST_POLICY, sleep=no_sleep)

    quote = await client.get_price()

    assert quote == PriceQuote(price=61000.0, change_24h=None)
    assert session.requests[0]['headers'] == {}


@pytest.mark.asyncio
async def test_coingecko_returns_none_when_retries_are_exhausted():
    session = FakeSession([FakeResponse(status=500), FakeResponse(status=502)])
    client = CoinGeckoClient(session, policy=FAST_POLICY, sleep=no_sleep)

    assert await client.get_price() is None


@pytest.mark.parametrize("payload", [
    None,
    [],
    {'ethereum': {'eur': 1.0}},
    {'bitcoin': {'eur': 'lots'}},
    {'bitcoin': {'eur': -5}},
    {'bitcoin': {'eur': float('nan')}},
    {'bitcoin': {'eur': True}},
])
def test_parse_price_payload_rejects_bad_shapes(payload):
    with pytest.raises(PayloadError):
        parse_price_payload(payload, 'bitcoin', 'eur')


@pytest.mark.asyncio
async def test_fear_greed_index_reads_latest_entry():
    payload = {'data': [{'value': '62', 'value_classification': 'Greed'}]}
    session = FakeSession([FakeResponse(payload)])
    client = FearGreedClient(session, policy=FAST_POLICY, sleep=no_sleep)

    reading = await client.get_index()

    assert reading == SentimentReading(value=62, classification='Greed')
    assert reading.is_greedy
    assert session.requests[0]['params'] == {'limit': '1'}


def test_fear_greed_threshold_is_fifty():
    assert SentimentReading(value=50, classification='Neutral').is_greedy
    assert not SentimentReading(value=49, classification='Fear').is_greedy


@pytest.mark.parametrize("payload", [
    {},
    {'data': []},
    {'data': 'oops'},
    {'data': [{'value': 'high'}]},
    {'data': [{}]},
])
def test_parse_fear_greed_payload_rejects_bad_shapes(payload):
    with pytest.raises(PayloadError):
        parse_fear_greed_payload(payload)


@pytest.mark.asyncio
async def test_fear_greed_returns_none_on_persistent_failure():
    session = FakeSession([FakeResponse({'data': []}), FakeResponse({'data': []})])
    client = FearGreedClient(session, policy=FAST_POLICY, sleep=no_sleep)

    assert await client.get_index() is None


@pytest.mark.asyncio
async def test_hashrate_parses_plain_text_integer():
    session = FakeSession([FakeResponse(text='650123456789\n')])
    client = BlockchainInfoClient(session, policy=FAST_POLICY, sleep=no_sleep)

    assert await client.get_hashrate() == 650123456789


@pytest.mark.asyncio
async def test_hashrate_returns_none_for_non_numeric_body():
    session = FakeSession([FakeResponse(text='<html>rate limited</html>'), FakeResponse(text='')])
    client = BlockchainInfoClient(session, policy=FAST_POLICY, sleep=no_sleep)

    assert await client.get_hashrate() is None


def test_parse_hashrate_rejects_negative_values():
    with pytest.raises(PayloadError):
        parse_hashrate('-1')
