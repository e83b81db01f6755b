"""
Analytics derived from live RPC data
Performance samples, prioritization fees and vote accounts are the only
sources; rollups that need an indexer report ANALYTICS_DATA_UNAVAILABLE.
"""

from datetime import datetime, timedelta, timezone
from statistics import mean, median, pstdev
from typing import Any, Dict, List, Optional

from network import RequestContext
from normalizers import as_int, as_list, dig, lamports_to_sol, unwrap
from providers import AnalyticsProvider
from responses import ErrorCode, ExplorerError
from schemas import (
    AnalyticsOverviewParams,
    DefiAnalyticsParams,
    FeesChartParams,
    ProgramAnalyticsParams,
    TpsChartParams,
    ValidatorsChartParams,
)
from solana_service import RpcCall, SolanaDataService

# getRecentPerformanceSamples keeps at most 720 one-minute samples
MAX_PERFORMANCE_SAMPLES = 720
SUPERMINORITY_PERCENT = 100 / 3

TIMEFRAME_SECONDS = {
    "1h": 3600,
    "6h": 6 * 3600,
    "24h": 24 * 3600,
    "7d": 7 * 86400,
    "30d": 30 * 86400,
    "90d": 90 * 86400,
}

GRANULARITY_SECONDS = {"minute": 60, "hour": 3600, "day": 86400}


def auto_granularity(timeframe: str) -> str:
    if timeframe in ("1h", "6h"):
        return "minute"
    if timeframe in ("7d", "30d"):
        return "day"
    return "hour"


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


def percentile(values: List[float], pct: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    index = min(len(ordered) - 1, max(0, int(round(pct / 100 * len(ordered))) - 1))
    return ordered[index]


def series_statistics(points: List[Dict[str, Any]], field: str) -> Dict[str, Any]:
    """Summary statistics over the ``field`` values of chart points (oldest first)"""
    values = [p[field] for p in points]
    if not values:
        return {
            "current": 0,
            "average": 0,
            "median": 0,
            "max": None,
            "min": None,
            "percentiles": {"p95": 0, "p99": 0},
        }
    high = max(range(len(values)), key=values.__getitem__)
    low = min(range(len(values)), key=values.__getitem__)
    return {
        "current": values[-1],
        "average": mean(values),
        "median": median(values),
        "max": {"value": values[high], "timestamp": points[high]["timestamp"]},
        "min": {"value": values[low], "timestamp": points[low]["timestamp"]},
        "percentiles": {"p95": percentile(values, 95), "p99": percentile(values, 99)},
    }


def series_trend(values: List[float]) -> Dict[str, Any]:
    recent, older = values[-10:], values[-20:-10]
    if not recent or not older or mean(older) == 0:
        change = 0.0
    else:
        change = (mean(recent) - mean(older)) / mean(older) * 100
    if change > 5:
        direction = "up"
    elif change < -5:
        direction = "down"
    else:
        direction = "stable"
    return {
        "direction": direction,
        "changePercent": round(change, 2),
        "volatility": pstdev(values) if len(values) > 1 else 0.0,
    }


def bucket_samples(
    samples: List[Any], granularity: str, now: datetime
) -> List[Dict[str, Any]]:
    """
    Group performance samples (newest first) into chart points (oldest first).

    Sample end times are reconstructed backwards from ``now`` using each
    sample's period.
    """
    width = GRANULARITY_SECONDS[granularity]
    buckets: Dict[int, Dict[str, Any]] = {}
    elapsed = 0
    for sample in samples:
        period = as_int(dig(sample, "samplePeriodSecs"), 60) or 60
        end = now - timedelta(seconds=elapsed)
        elapsed += period
        index = (elapsed - 1) // width
        bucket = buckets.setdefault(index, {
            "end": end,
            "seconds": 0,
            "transactions": 0,
            "nonVoteTransactions": 0,
            "slots": 0,
            "firstSlot": as_int(dig(sample, "slot")),
        })
        bucket["seconds"] += period
        bucket["transactions"] += as_int(dig(sample, "numTransactions"))
        bucket["nonVoteTransactions"] += as_int(dig(sample, "numNonVoteTransactions"))
        bucket["slots"] += as_int(dig(sample, "numSlots"))

    points = []
    for index in sorted(buckets, reverse=True):
        bucket = buckets[index]
        seconds = bucket["seconds"] or 1
        points.append({
            "timestamp": _iso(bucket["end"]),
            "slot": bucket["firstSlot"],
            "tps": bucket["transactions"] / seconds,
            "nonVoteTps": bucket["nonVoteTransactions"] / seconds,
            "transactions": bucket["transactions"],
            "slots": bucket["slots"],
        })
    return points


def nakamoto_coefficient(stakes: List[int]) -> int:
    """Smallest number of validators holding more than a third of active stake"""
    total = sum(stakes)
    if total <= 0:
        return 0
    running = 0
    for count, stake in enumerate(sorted(stakes, reverse=True), start=1):
        running += stake
        if running / total * 100 > SUPERMINORITY_PERCENT:
            return count
    return len(stakes)


def herfindahl_index(stakes: List[int]) -> float:
    total = sum(stakes)
    if total <= 0:
        return 0.0
    return sum((s / total) ** 2 for s in stakes)


class RpcAnalyticsProvider(AnalyticsProvider):
    """Analytics computed from what a public RPC node can answer"""

    def __init__(self, service: SolanaDataService, clock=None):
        self.service = service
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _sample_count(self, timeframe: str) -> int:
        return max(1, min(MAX_PERFORMANCE_SAMPLES, TIMEFRAME_SECONDS[timeframe] // 60))

    @staticmethod
    def _coverage(requested: int, samples: List[Any]) -> Dict[str, Any]:
        covered = sum(as_int(dig(s, "samplePeriodSecs"), 60) for s in samples)
        return {
            "requestedSeconds": requested,
            "coveredSeconds": covered,
            "complete": covered >= requested,
        }

    def overview(self, ctx: RequestContext, params: AnalyticsOverviewParams) -> Dict[str, Any]:
        results = self.service.fan_out(ctx, [
            RpcCall("epoch", "getEpochInfo"),
            RpcCall("supply", "getSupply", [{"excludeNonCirculatingAccountsList": True}]),
            RpcCall("votes", "getVoteAccounts"),
            RpcCall(
                "samples",
                "getRecentPerformanceSamples",
                [self._sample_count(params.timeframe)],
                required=False,
                default=[],
            ),
        ])
        samples = as_list(results["samples"])
        current = as_list(dig(results["votes"], "current"))
        delinquent = as_list(dig(results["votes"], "delinquent"))
        stakes = [as_int(dig(v, "activatedStake")) for v in current]
        supply = unwrap(results["supply"]) or {}

        points = bucket_samples(samples, auto_granularity(params.timeframe), self.clock())
        tps_values = [p["tps"] for p in points]
        seconds = sum(as_int(dig(s, "samplePeriodSecs"), 60) for s in samples)
        slots = sum(as_int(dig(s, "numSlots")) for s in samples)
        transactions = sum(as_int(dig(s, "numTransactions")) for s in samples)
        non_vote = sum(as_int(dig(s, "numNonVoteTransactions")) for s in samples)

        return {
            "timeframe": params.timeframe,
            "network": {
                "performance": {
                    "currentTps": tps_values[-1] if tps_values else 0,
                    "avgTps": mean(tps_values) if tps_values else 0,
                    "maxTps": max(tps_values) if tps_values else 0,
                    "minTps": min(tps_values) if tps_values else 0,
                    "tpsHistory": points if params.include_history else None,
                },
                "blocks": {
                    "epoch": as_int(dig(results["epoch"], "epoch")),
                    "slotIndex": as_int(dig(results["epoch"], "slotIndex")),
                    "slotsInEpoch": as_int(dig(results["epoch"], "slotsInEpoch")),
                    "slotsProduced": slots,
                    "avgBlockTime": (seconds / slots) if slots else None,
                },
                "transactions": {
                    "total": transactions,
                    "nonVote": non_vote,
                    "vote": max(0, transactions - non_vote),
                },
                "validators": {
                    "active": len(current),
                    "delinquent": len(delinquent),
                    "totalStake": lamports_to_sol(sum(stakes)),
                    "nakamotoCoefficient": nakamoto_coefficient(stakes),
                },
                "supply": {
                    "total": lamports_to_sol(dig(supply, "total")),
                    "circulating": lamports_to_sol(dig(supply, "circulating")),
                },
            },
            "programs": None,
            "defi": None,
            "coverage": self._coverage(TIMEFRAME_SECONDS[params.timeframe], samples),
        }

    def tps_chart(self, ctx: RequestContext, params: TpsChartParams) -> Dict[str, Any]:
        granularity = params.granularity or auto_granularity(params.timeframe)
        samples = as_list(self.service.call(
            ctx, "getRecentPerformanceSamples", [self._sample_count(params.timeframe)]
        ))
        points = bucket_samples(samples, granularity, self.clock())

        if params.include_average:
            for index, point in enumerate(points):
                window = points[max(0, index - 4): index + 1]
                point["movingAverage"] = mean(p["tps"] for p in window)

        return {
            "timeframe": params.timeframe,
            "granularity": granularity,
            "dataPoints": points,
            "statistics": series_statistics(points, "tps"),
            "trends": series_trend([p["tps"] for p in points]),
            "coverage": self._coverage(TIMEFRAME_SECONDS[params.timeframe], samples),
        }

    def fees_chart(self, ctx: RequestContext, params: FeesChartParams) -> Dict[str, Any]:
        granularity = params.granularity or auto_granularity(params.timeframe)
        entries = [
            e for e in as_list(self.service.call(ctx, "getRecentPrioritizationFees", [[]]))
            if isinstance(e, dict)
        ]
        entries.sort(key=lambda e: as_int(e.get("slot")))
        fees = [as_int(e.get("prioritizationFee")) for e in entries]

        points = [
            {"slot": as_int(e.get("slot")), "timestamp": None, "prioritizationFee": fee}
            for e, fee in zip(entries, fees)
        ]
        if params.metric == "average":
            value = mean(fees) if fees else 0
        elif params.metric == "median":
            value = median(fees) if fees else 0
        else:
            value = sum(fees)

        return {
            "timeframe": params.timeframe,
            "granularity": granularity,
            "metric": params.metric,
            "unit": "micro-lamports per compute unit",
            "value": value,
            "dataPoints": points,
            "statistics": {
                "average": mean(fees) if fees else 0,
                "median": median(fees) if fees else 0,
                "max": max(fees) if fees else 0,
                "min": min(fees) if fees else 0,
                "percentiles": {"p95": percentile(fees, 95), "p99": percentile(fees, 99)},
                "nonZeroSlots": sum(1 for f in fees if f > 0),
            },
            "coverage": {
                "slots": len(points),
                "firstSlot": points[0]["slot"] if points else None,
                "lastSlot": points[-1]["slot"] if points else None,
                "complete": False,
            },
        }

    def validators_chart(self, ctx: RequestContext, params: ValidatorsChartParams) -> Dict[str, Any]:
        votes = self.service.call(ctx, "getVoteAccounts")
        current = [v for v in as_list(dig(votes, "current")) if isinstance(v, dict)]
        delinquent = [v for v in as_list(dig(votes, "delinquent")) if isinstance(v, dict)]
        stakes = [as_int(v.get("activatedStake")) for v in current]
        total_stake = sum(stakes)

        ranked = sorted(current, key=lambda v: as_int(v.get("activatedStake")), reverse=True)
        top = []
        for validator in ranked[:20]:
            stake = as_int(validator.get("activatedStake"))
            credits = as_list(validator.get("epochCredits"))
            latest = credits[-1] if credits else None
            top.append({
                "identity": validator.get("nodePubkey"),
                "voteAccount": validator.get("votePubkey"),
                "stake": lamports_to_sol(stake),
                "stakePercent": (stake / total_stake * 100) if total_stake else 0.0,
                "commission": validator.get("commission"),
                "lastVote": validator.get("lastVote"),
                "epochCredits": (
                    as_int(latest[1]) - as_int(latest[2])
                    if isinstance(latest, list) and len(latest) == 3 else None
                ),
            })

        if params.metric == "stake":
            value: Optional[float] = lamports_to_sol(total_stake)
        elif params.metric == "performance":
            total = len(current) + len(delinquent)
            value = (len(current) / total * 100) if total else None
        else:
            value = len(current)

        return {
            "timeframe": params.timeframe,
            "metric": params.metric,
            "dataPoints": [{"timestamp": _iso(self.clock()), "value": value}],
            "topValidators": top,
            "decentralization": {
                "nakamotoCoefficient": nakamoto_coefficient(stakes),
                "herfindahlIndex": herfindahl_index(stakes),
                "superminorityThreshold": round(SUPERMINORITY_PERCENT, 1),
                "activeValidators": len(current),
                "delinquentValidators": len(delinquent),
            },
            "coverage": {"snapshot": True, "complete": False},
        }

    def programs(self, ctx: RequestContext, params: ProgramAnalyticsParams) -> Dict[str, Any]:
        raise ExplorerError(
            ErrorCode.ANALYTICS_DATA_UNAVAILABLE,
            "Program analytics require an indexer, none is configured",
            {"timeframe": params.timeframe, "category": params.category},
        )

    def defi(self, ctx: RequestContext, params: DefiAnalyticsParams) -> Dict[str, Any]:
        raise ExplorerError(
            ErrorCode.ANALYTICS_DATA_UNAVAILABLE,
            "DeFi analytics require a protocol data source, none is configured",
            {"timeframe": params.timeframe, "protocol": params.protocol},
        )
