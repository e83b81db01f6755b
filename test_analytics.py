"""
Tests for RPC-derived analytics
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from analytics import (
    RpcAnalyticsProvider,
    auto_granularity,
    bucket_samples,
    herfindahl_index,
    nakamoto_coefficient,
    percentile,
    series_statistics,
    series_trend,
)
from network import RequestContext
from responses import ErrorCode, ExplorerError
from schemas import (
    AnalyticsOverviewParams,
    DefiAnalyticsParams,
    FeesChartParams,
    ProgramAnalyticsParams,
    TpsChartParams,
    ValidatorsChartParams,
)

CTX = RequestContext("mainnet", "http://mainnet.invalid")
NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def sample(transactions, slot=100, period=60, non_vote=0):
    return {
        "slot": slot,
        "numTransactions": transactions,
        "numNonVoteTransactions": non_vote,
        "numSlots": 150,
        "samplePeriodSecs": period,
    }


VOTES = {
    "current": [
        {"votePubkey": "v1", "nodePubkey": "n1", "activatedStake": 500, "commission": 5,
         "epochCredits": [[10, 1000, 600]]},
        {"votePubkey": "v2", "nodePubkey": "n2", "activatedStake": 300, "commission": 10},
        {"votePubkey": "v3", "nodePubkey": "n3", "activatedStake": 200, "commission": 0},
    ],
    "delinquent": [{"votePubkey": "v4", "activatedStake": 0}],
}


@pytest.fixture
def service():
    return Mock()


@pytest.fixture
def provider(service):
    return RpcAnalyticsProvider(service, clock=lambda: NOW)


class TestHelpers:
    def test_auto_granularity(self):
        assert auto_granularity("1h") == "minute"
        assert auto_granularity("24h") == "hour"
        assert auto_granularity("30d") == "day"

    def test_percentile(self):
        assert percentile([], 95) == 0.0
        assert percentile(list(range(1, 101)), 95) == 95

    def test_bucket_samples_oldest_first(self):
        samples = [sample(6000, slot=300), sample(3000, slot=200), sample(600, slot=100)]
        points = bucket_samples(samples, "minute", NOW)
        assert [p["slot"] for p in points] == [100, 200, 300]
        assert [p["tps"] for p in points] == [10, 50, 100]
        assert points[-1]["timestamp"] == "2024-01-01T12:00:00Z"

    def test_bucket_samples_aggregate(self):
        samples = [sample(60) for _ in range(120)]
        points = bucket_samples(samples, "hour", NOW)
        assert len(points) == 2
        assert all(p["tps"] == 1 for p in points)
        assert points[0]["transactions"] == 3600

    def test_series_statistics(self):
        points = [{"tps": v, "timestamp": str(i)} for i, v in enumerate([1, 5, 3])]
        stats = series_statistics(points, "tps")
        assert stats["current"] == 3
        assert stats["max"] == {"value": 5, "timestamp": "1"}
        assert stats["min"] == {"value": 1, "timestamp": "0"}
        assert series_statistics([], "tps")["max"] is None

    def test_series_trend(self):
        assert series_trend([100] * 10 + [200] * 10)["direction"] == "up"
        assert series_trend([100] * 20)["direction"] == "stable"
        assert series_trend([5])["changePercent"] == 0.0

    def test_decentralization(self):
        assert nakamoto_coefficient([500, 300, 200]) == 1
        assert nakamoto_coefficient([1, 1, 1, 1]) == 2
        assert nakamoto_coefficient([]) == 0
        assert herfindahl_index([1, 1]) == 0.5


class TestRpcAnalyticsProvider:
    def test_overview(self, provider, service):
        service.fan_out.return_value = {
            "epoch": {"epoch": 500, "slotIndex": 10, "slotsInEpoch": 100},
            "supply": {"context": {}, "value": {"total": 2_000_000_000, "circulating": 1_000_000_000}},
            "votes": VOTES,
            "samples": [sample(6000, non_vote=1200), sample(3000)],
        }
        data = provider.overview(CTX, AnalyticsOverviewParams(timeframe="1h"))

        perf = data["network"]["performance"]
        assert perf["currentTps"] == 100
        assert perf["maxTps"] == 100
        assert perf["minTps"] == 50
        assert data["network"]["transactions"] == {"total": 9000, "nonVote": 1200, "vote": 7800}
        assert data["network"]["validators"]["nakamotoCoefficient"] == 1
        assert data["network"]["supply"] == {"total": 2.0, "circulating": 1.0}
        assert data["programs"] is None
        assert data["coverage"] == {"requestedSeconds": 3600, "coveredSeconds": 120, "complete": False}

        calls = service.fan_out.call_args.args[1]
        assert [c.method for c in calls][-1] == "getRecentPerformanceSamples"
        assert calls[-1].params == [60]
        assert calls[-1].required is False

    def test_overview_without_history(self, provider, service):
        service.fan_out.return_value = {"epoch": {}, "supply": None, "votes": {}, "samples": []}
        data = provider.overview(CTX, AnalyticsOverviewParams(include_history=False))
        assert data["network"]["performance"]["tpsHistory"] is None
        assert data["network"]["performance"]["currentTps"] == 0
        assert data["network"]["blocks"]["avgBlockTime"] is None

    def test_tps_chart_moving_average(self, provider, service):
        service.call.return_value = [sample(600), sample(1200), sample(1800)]
        data = provider.tps_chart(CTX, TpsChartParams(timeframe="1h"))

        assert [p["tps"] for p in data["dataPoints"]] == [30, 20, 10]
        assert [p["movingAverage"] for p in data["dataPoints"]] == [30, 25, 20]
        assert data["statistics"]["current"] == 10
        service.call.assert_called_once_with(CTX, "getRecentPerformanceSamples", [60])

    def test_tps_sample_count_capped(self, provider, service):
        service.call.return_value = []
        provider.tps_chart(CTX, TpsChartParams(timeframe="30d"))
        service.call.assert_called_once_with(CTX, "getRecentPerformanceSamples", [720])

    def test_fees_chart(self, provider, service):
        service.call.return_value = [
            {"slot": 3, "prioritizationFee": 0},
            {"slot": 1, "prioritizationFee": 100},
            {"slot": 2, "prioritizationFee": 50},
        ]
        data = provider.fees_chart(CTX, FeesChartParams(metric="median"))

        assert [p["slot"] for p in data["dataPoints"]] == [1, 2, 3]
        assert data["value"] == 50
        assert data["statistics"]["max"] == 100
        assert data["statistics"]["nonZeroSlots"] == 2
        assert data["coverage"]["firstSlot"] == 1

    def test_validators_chart(self, provider, service):
        service.call.return_value = VOTES
        data = provider.validators_chart(CTX, ValidatorsChartParams(metric="performance"))

        assert [v["voteAccount"] for v in data["topValidators"]] == ["v1", "v2", "v3"]
        assert data["topValidators"][0]["stakePercent"] == 50.0
        assert data["topValidators"][0]["epochCredits"] == 400
        assert data["topValidators"][1]["epochCredits"] is None
        assert data["dataPoints"][0]["value"] == 75.0
        assert data["decentralization"]["delinquentValidators"] == 1

    def test_programs_and_defi_unavailable(self, provider, service):
        with pytest.raises(ExplorerError) as exc_info:
            provider.programs(CTX, ProgramAnalyticsParams())
        assert exc_info.value.code == ErrorCode.ANALYTICS_DATA_UNAVAILABLE
        assert exc_info.value.status == 503

        with pytest.raises(ExplorerError):
            provider.defi(CTX, DefiAnalyticsParams())
        service.call.assert_not_called()
