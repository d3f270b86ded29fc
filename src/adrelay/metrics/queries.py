# Metrics queries — structured reporting requests per ads provider.
# Created: 2026-10-18
#
# Each builder validates the caller's parameters and produces the path and
# JSON body the dispatcher forwards. Parameter names follow the browser
# client's camelCase.

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from adrelay.errors import UnknownProviderError, ValidationError

SNAPCHAT_STATS_FIELDS = [
    "impressions",
    "swipe_ups",
    "spend",
    "video_views",
    "total_installs",
]

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_ID_RE = re.compile(r"[A-Za-z0-9-]+")

GOOGLE_ADS_METRICS = [
    "metrics.impressions",
    "metrics.clicks",
    "metrics.cost_micros",
    "metrics.conversions",
]


@dataclass(frozen=True)
class MetricsQuery:
    """A provider call ready for ``ProviderDispatcher.forward``."""

    provider: str
    path: str
    body: dict[str, Any]
    method: str = "POST"


def _require(params: Mapping[str, Any], *names: str) -> None:
    missing = [n for n in names if not params.get(n)]
    if missing:
        raise ValidationError(f"Missing required query parameters: {', '.join(missing)}")


def _split_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


@dataclass(frozen=True)
class SnapchatStatsQuery:
    account_id: str
    campaign_id: str
    start_time: str
    end_time: str
    granularity: str = "DAY"
    breakdowns: list[str] = field(default_factory=list)

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> SnapchatStatsQuery:
        _require(params, "accountId", "campaignId", "startTime", "endTime")
        return cls(
            account_id=str(params["accountId"]),
            campaign_id=str(params["campaignId"]),
            start_time=str(params["startTime"]),
            end_time=str(params["endTime"]),
            granularity=str(params.get("granularity") or "DAY").upper(),
            breakdowns=_split_list(params.get("breakdowns")),
        )

    def build(self) -> MetricsQuery:
        if not _ID_RE.fullmatch(self.account_id):
            raise ValidationError("accountId is malformed")
        return MetricsQuery(
            provider="snapchat",
            path=f"/ad_accounts/{self.account_id}/stats",
            body={
                "start_time": self.start_time,
                "end_time": self.end_time,
                "granularity": self.granularity,
                "fields": list(SNAPCHAT_STATS_FIELDS),
                "filters": {"campaign_id": self.campaign_id},
                "breakdowns": list(self.breakdowns),
            },
        )


@dataclass(frozen=True)
class GoogleAdsReportQuery:
    customer_id: str
    start_date: str
    end_date: str
    campaign_id: str | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> GoogleAdsReportQuery:
        _require(params, "customerId", "startDate", "endDate")
        campaign_id = params.get("campaignId")
        return cls(
            customer_id=str(params["customerId"]).replace("-", ""),
            start_date=str(params["startDate"]),
            end_date=str(params["endDate"]),
            campaign_id=str(campaign_id) if campaign_id else None,
        )

    def gaql(self) -> str:
        fields = ", ".join(["campaign.id", "campaign.name", *GOOGLE_ADS_METRICS])
        where = [f"segments.date BETWEEN '{self.start_date}' AND '{self.end_date}'"]
        if self.campaign_id:
            where.append(f"campaign.id = {self.campaign_id}")
        return f"SELECT {fields} FROM campaign WHERE {' AND '.join(where)}"

    def build(self) -> MetricsQuery:
        if not self.customer_id.isdigit():
            raise ValidationError("customerId must be numeric")
        if self.campaign_id and not self.campaign_id.isdigit():
            raise ValidationError("campaignId must be numeric")
        for value in (self.start_date, self.end_date):
            if not _DATE_RE.fullmatch(value):
                raise ValidationError("Dates must be in YYYY-MM-DD form")
        return MetricsQuery(
            provider="google_ads",
            path=f"/customers/{self.customer_id}/googleAds:search",
            body={"query": self.gaql()},
        )


_BUILDERS = {
    "snapchat": SnapchatStatsQuery,
    "google_ads": GoogleAdsReportQuery,
}


def metrics_providers() -> list[str]:
    return sorted(_BUILDERS)


def build_metrics_query(provider: str, params: Mapping[str, Any]) -> MetricsQuery:
    """Turn reporting parameters into a provider call.

    Raises:
        UnknownProviderError: no reporting query exists for ``provider``.
        ValidationError: a required parameter is missing or malformed.
    """
    builder = _BUILDERS.get(provider)
    if builder is None:
        raise UnknownProviderError(provider)
    return builder.from_params(params).build()
