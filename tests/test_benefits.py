from __future__ import annotations

import httpx
import pytest

from benefits.resolver import Benefit, BenefitResolutionError, HttpBenefitResolver


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_http_resolver_parses_benefits() -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("Api-Key", "")
        return httpx.Response(
            200,
            json=[
                {
                    "userId": "u1",
                    "isEntitled": True,
                    "refreshRateOverrideSeconds": 120,
                    "maxDailyDeliveries": 1000,
                },
                {"userId": "u2", "isEntitled": False},
            ],
        )

    async with _client(handler) as client:
        resolver = HttpBenefitResolver(client, base_url="http://benefits.test/", api_key="k")
        benefits = await resolver.list_benefits()

    assert seen == {"url": "http://benefits.test/benefits", "key": "k"}
    assert benefits == [
        Benefit(user_id="u1", is_entitled=True, refresh_rate_seconds=120, max_daily_deliveries=1000),
        Benefit(user_id="u2", is_entitled=False),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503),
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json=[{"isEntitled": True}]),
    ],
)
async def test_http_resolver_raises_on_bad_responses(response) -> None:
    async with _client(lambda request: response) as client:
        resolver = HttpBenefitResolver(client, base_url="http://benefits.test")
        with pytest.raises(BenefitResolutionError):
            await resolver.list_benefits()


@pytest.mark.asyncio
async def test_http_resolver_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        resolver = HttpBenefitResolver(client, base_url="http://benefits.test")
        with pytest.raises(BenefitResolutionError):
            await resolver.list_benefits()
