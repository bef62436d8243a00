from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx


class BenefitResolutionError(RuntimeError):
    pass


@dataclass(frozen=True)
class Benefit:
    user_id: str
    is_entitled: bool
    refresh_rate_seconds: int | None = None
    max_daily_deliveries: int | None = None

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> Benefit:
        rate = raw.get("refreshRateOverrideSeconds")
        max_daily = raw.get("maxDailyDeliveries")
        return cls(
            user_id=str(raw["userId"]),
            is_entitled=bool(raw.get("isEntitled", False)),
            refresh_rate_seconds=int(rate) if rate is not None else None,
            max_daily_deliveries=int(max_daily) if max_daily is not None else None,
        )


class BenefitResolver(Protocol):
    async def list_benefits(self) -> list[Benefit]: ...


class StaticBenefitResolver:
    def __init__(self, benefits: list[Benefit] | None = None) -> None:
        self.benefits = list(benefits or [])

    async def list_benefits(self) -> list[Benefit]:
        return list(self.benefits)


class HttpBenefitResolver:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: str | None = None,
    ) -> None:
        self._client = client
        self._url = f"{base_url.rstrip('/')}/benefits"
        self._api_key = api_key

    async def list_benefits(self) -> list[Benefit]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Api-Key"] = self._api_key

        timeout = httpx.Timeout(connect=5.0, read=30.0, write=5.0, pool=5.0)
        try:
            response = await self._client.get(self._url, headers=headers, timeout=timeout)
        except httpx.TimeoutException as e:
            raise BenefitResolutionError("benefit service timed out") from e
        except httpx.RequestError as e:
            raise BenefitResolutionError(
                f"benefit service request failed: {e.__class__.__name__}"
            ) from e

        if response.status_code != 200:
            raise BenefitResolutionError(
                f"benefit service returned http_{response.status_code}"
            )

        try:
            records = response.json()
            return [Benefit.from_payload(r) for r in records]
        except (ValueError, KeyError, TypeError) as e:
            raise BenefitResolutionError("benefit service returned malformed body") from e
