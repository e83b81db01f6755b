"""
Solana data service
Per-resource fetch plans: concurrent RPC fan-out, best-effort secondary
calls and mapping of upstream failures to explorer error codes.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from config import config
from network import RequestContext
from normalizers import (
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    as_int,
    as_list,
    block_update,
    dig,
    filter_history,
    iso_time,
    normalize_address,
    normalize_address_transaction,
    normalize_block,
    normalize_block_transactions,
    normalize_network_stats,
    normalize_nft_holdings,
    normalize_signature_entry,
    normalize_token,
    normalize_token_holdings,
    normalize_transaction,
    parse_token_accounts,
    summarize_address_history,
    unwrap,
)
from providers import Providers
from responses import ErrorCode, ExplorerError
from rpc_client import RpcError, RpcMethodError, SolanaRpcClient
from schemas import (
    AddressNftsParams,
    AddressParams,
    AddressTokensParams,
    AddressTransactionsParams,
    AddressUpdatesParams,
    BlockParams,
    BlockTransactionsParams,
    LatestUpdatesParams,
    NetworkStatsParams,
    TokenParams,
    TransactionParams,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MARKERS = ("not found", "could not find", "not a token mint")
TOO_ACTIVE_MARKERS = ("too many", "exceeds", "too large")
LATEST_POLL_INTERVAL = 10


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class RpcCall:
    """One upstream call in a fan-out"""

    name: str
    method: str
    params: List[Any] = field(default_factory=list)
    required: bool = True
    default: Any = None


def _history_commitment(commitment: str) -> str:
    # Signature history and block listings do not accept "processed"
    return "confirmed" if commitment == "processed" else commitment


def _message(exc: Exception) -> str:
    return getattr(exc, "message", str(exc)).lower()


def map_lookup_error(
    exc: Exception,
    not_found: ErrorCode,
    invalid: ErrorCode,
    resource: str,
) -> Exception:
    """Translate an upstream failure for a single-resource lookup"""
    if not isinstance(exc, RpcMethodError):
        return exc
    text = _message(exc)
    details = {"upstream": exc.message, "rpcCode": exc.code}
    if exc.is_slot_unavailable:
        return ExplorerError(
            ErrorCode.SLOT_NOT_AVAILABLE, f"{resource} is not available for this slot", details
        )
    if any(marker in text for marker in NOT_FOUND_MARKERS):
        return ExplorerError(not_found, f"{resource} not found", details)
    if exc.is_invalid_params:
        return ExplorerError(invalid, f"Invalid {resource.lower()} identifier", details)
    return exc


class SolanaDataService:
    """
    Fetches and normalizes explorer resources.

    Every public method takes the request's RequestContext explicitly;
    nothing here reads the process-wide network selection.
    """

    def __init__(
        self,
        rpc: SolanaRpcClient,
        providers: Optional[Providers] = None,
        max_workers: int = 8,
    ):
        self.rpc = rpc
        self.providers = providers or Providers()
        self.max_workers = max_workers

    # ------- Upstream helpers -------

    def call(self, ctx: RequestContext, method: str, params: Optional[List[Any]] = None) -> Any:
        return self.rpc.call(ctx.rpc_url, method, params or [])

    def fan_out(self, ctx: RequestContext, calls: Sequence[RpcCall]) -> Dict[str, Any]:
        """
        Issue ``calls`` concurrently and join.

        A failed optional call is logged and replaced by its default; the
        first failed required call (in declaration order) is raised.
        """
        if not calls:
            return {}

        workers = max(1, min(len(calls), self.max_workers))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rpc-fanout") as pool:
            futures = [
                (c, pool.submit(self.rpc.call, ctx.rpc_url, c.method, c.params))
                for c in calls
            ]

        results: Dict[str, Any] = {}
        failure: Optional[Exception] = None
        for call, future in futures:
            error = future.exception()
            if error is None:
                results[call.name] = future.result()
                continue
            if call.required:
                if failure is None:
                    failure = error
                continue
            if not isinstance(error, RpcError):
                raise error
            logger.warning(f"Optional RPC {call.method} failed on {ctx.network}: {error}")
            results[call.name] = call.default

        if failure is not None:
            raise failure
        return results

    # ==================== NETWORK ====================

    def network_stats(self, ctx: RequestContext, params: NetworkStatsParams = None) -> Dict[str, Any]:
        results = self.fan_out(ctx, [
            RpcCall("slot", "getSlot"),
            RpcCall("epoch", "getEpochInfo"),
            RpcCall("supply", "getSupply", [{"excludeNonCirculatingAccountsList": True}]),
            RpcCall("samples", "getRecentPerformanceSamples", [5]),
            RpcCall("votes", "getVoteAccounts"),
        ])
        return normalize_network_stats(
            results["slot"],
            results["epoch"],
            results["supply"],
            results["samples"],
            results["votes"],
            updated_at=now_iso(),
        )

    # ==================== TRANSACTIONS ====================

    def transaction(self, ctx: RequestContext, params: TransactionParams) -> Dict[str, Any]:
        try:
            results = self.fan_out(ctx, [
                RpcCall("tx", "getTransaction", [
                    params.signature,
                    {
                        "encoding": "json",
                        "commitment": _history_commitment(params.commitment),
                        "maxSupportedTransactionVersion": params.max_supported_transaction_version,
                    },
                ]),
                RpcCall(
                    "statuses",
                    "getSignatureStatuses",
                    [[params.signature], {"searchTransactionHistory": True}],
                    required=False,
                ),
            ])
        except RpcError as e:
            raise map_lookup_error(
                e, ErrorCode.TRANSACTION_NOT_FOUND, ErrorCode.INVALID_SIGNATURE, "Transaction"
            ) from e

        raw = results["tx"]
        if not raw:
            raise ExplorerError(ErrorCode.TRANSACTION_NOT_FOUND, "Transaction not found")

        status_entry = dig(unwrap(results.get("statuses")), 0)
        confirmation = dig(status_entry, "confirmationStatus", default=params.commitment)

        # Block height needs the slot from the primary lookup
        block_height = None
        slot = dig(raw, "slot")
        if slot is not None:
            enrichment = self.fan_out(ctx, [
                RpcCall(
                    "block",
                    "getBlock",
                    [slot, {
                        "transactionDetails": "none",
                        "rewards": False,
                        "maxSupportedTransactionVersion": 0,
                    }],
                    required=False,
                ),
            ])
            block_height = dig(enrichment.get("block"), "blockHeight")

        return normalize_transaction(
            params.signature,
            raw,
            confirmation_status=confirmation,
            block_height=block_height,
            log_limit=config.TX_LOG_LINE_LIMIT,
        )

    # ==================== BLOCKS ====================

    def _get_block(self, ctx: RequestContext, slot: int, commitment: str, rewards: bool) -> List[RpcCall]:
        return [RpcCall("block", "getBlock", [slot, {
            "encoding": "json",
            "commitment": _history_commitment(commitment),
            "transactionDetails": "full",
            "rewards": rewards,
            "maxSupportedTransactionVersion": 0,
        }])]

    def block(self, ctx: RequestContext, params: BlockParams) -> Dict[str, Any]:
        calls = self._get_block(ctx, params.slot, params.commitment, params.rewards)
        if params.slot > 0:
            calls.append(RpcCall(
                "prev", "getBlocks", [max(0, params.slot - 10), params.slot - 1], required=False
            ))
        calls.append(RpcCall(
            "next", "getBlocks", [params.slot + 1, params.slot + 10], required=False
        ))

        try:
            results = self.fan_out(ctx, calls)
        except RpcError as e:
            raise map_lookup_error(
                e, ErrorCode.BLOCK_NOT_FOUND, ErrorCode.INVALID_PARAMETERS, "Block"
            ) from e

        raw = results["block"]
        if not raw:
            raise ExplorerError(ErrorCode.BLOCK_NOT_FOUND, "Block not found")

        prev_slots = as_list(results.get("prev"))
        next_slots = as_list(results.get("next"))
        return normalize_block(
            params.slot,
            raw,
            transaction_details=params.transaction_details,
            include_rewards=params.rewards,
            prev_slot=prev_slots[-1] if prev_slots else None,
            next_slot=next_slots[0] if next_slots else None,
        )

    def block_transactions(self, ctx: RequestContext, params: BlockTransactionsParams) -> Dict[str, Any]:
        try:
            results = self.fan_out(ctx, self._get_block(ctx, params.slot, "confirmed", False))
        except RpcError as e:
            raise map_lookup_error(
                e, ErrorCode.BLOCK_NOT_FOUND, ErrorCode.INVALID_PARAMETERS, "Block"
            ) from e

        raw = results["block"]
        if not raw:
            raise ExplorerError(ErrorCode.BLOCK_NOT_FOUND, "Block not found")

        return normalize_block_transactions(
            params.slot,
            raw,
            limit=params.limit,
            offset=params.offset,
            status=params.status,
            sort_by=params.sort_by,
            sort_order=params.sort_order,
            include_details=params.include_details,
        )

    # ==================== ADDRESSES ====================

    def _token_account_calls(self, address: str, required: bool = False) -> List[RpcCall]:
        return [
            RpcCall(
                "tokens",
                "getTokenAccountsByOwner",
                [address, {"programId": TOKEN_PROGRAM_ID}, {"encoding": "jsonParsed"}],
                required=required,
            ),
            RpcCall(
                "tokens2022",
                "getTokenAccountsByOwner",
                [address, {"programId": TOKEN_2022_PROGRAM_ID}, {"encoding": "jsonParsed"}],
                required=False,
            ),
        ]

    @staticmethod
    def _merge_token_accounts(results: Dict[str, Any]) -> List[Any]:
        return as_list(unwrap(results.get("tokens"))) + as_list(unwrap(results.get("tokens2022")))

    def address(self, ctx: RequestContext, params: AddressParams) -> Dict[str, Any]:
        # base58 account data is capped at 128 bytes upstream
        encoding = "base64" if params.encoding == "base58" else params.encoding
        calls = [
            RpcCall("balance", "getBalance", [params.address, {"commitment": params.commitment}]),
            RpcCall("account", "getAccountInfo", [
                params.address, {"encoding": encoding, "commitment": params.commitment}
            ]),
            RpcCall(
                "signatures",
                "getSignaturesForAddress",
                [params.address, {"limit": config.ADDRESS_SIGNATURE_SCAN}],
                required=False,
                default=[],
            ),
        ]
        if params.include_tokens:
            calls.extend(self._token_account_calls(params.address))

        try:
            results = self.fan_out(ctx, calls)
        except RpcError as e:
            raise map_lookup_error(
                e, ErrorCode.NOT_FOUND, ErrorCode.INVALID_ADDRESS, "Address"
            ) from e

        token_accounts = self._merge_token_accounts(results)
        metadata = {}
        if token_accounts:
            mints = [t["mint"] for t in parse_token_accounts(token_accounts)]
            metadata = self.providers.tokens.get_many(ctx.network, mints)

        return normalize_address(
            params.address,
            results["balance"],
            results["account"],
            token_accounts=token_accounts,
            signatures=results.get("signatures"),
            include_tokens=params.include_tokens,
            encoding=encoding,
            token_metadata=metadata,
        )

    def _signatures(
        self, ctx: RequestContext, address: str, options: Dict[str, Any]
    ) -> List[Any]:
        try:
            return as_list(self.call(ctx, "getSignaturesForAddress", [address, options]))
        except RpcMethodError as e:
            text = _message(e)
            if any(marker in text for marker in TOO_ACTIVE_MARKERS):
                raise ExplorerError(
                    ErrorCode.ADDRESS_TOO_ACTIVE,
                    "Address history is too large, narrow the request with a smaller limit or a before/until cursor",
                    {"upstream": e.message},
                ) from e
            if e.is_invalid_params:
                raise ExplorerError(
                    ErrorCode.INVALID_PARAMETERS,
                    "Invalid address history parameters",
                    {"upstream": e.message},
                ) from e
            raise

    def _transaction_details(
        self, ctx: RequestContext, signatures: List[Any], commitment: str
    ) -> Dict[str, Any]:
        calls = [
            RpcCall(
                entry.get("signature"),
                "getTransaction",
                [entry.get("signature"), {
                    "encoding": "json",
                    "commitment": commitment,
                    "maxSupportedTransactionVersion": 0,
                }],
                required=False,
            )
            for entry in signatures
            if isinstance(entry, dict) and entry.get("signature")
        ]
        return self.fan_out(ctx, calls)

    def address_transactions(
        self, ctx: RequestContext, params: AddressTransactionsParams
    ) -> Dict[str, Any]:
        commitment = _history_commitment(params.commitment)
        options: Dict[str, Any] = {"limit": params.limit, "commitment": commitment}
        if params.before:
            options["before"] = params.before
        if params.until:
            options["until"] = params.until

        signatures = self._signatures(ctx, params.address, options)
        detailed = signatures[: config.ADDRESS_TX_DETAIL_LIMIT]
        details = self._transaction_details(ctx, detailed, commitment)

        records = []
        for index, entry in enumerate(signatures):
            if index < len(detailed):
                raw_tx = details.get(dig(entry, "signature", default=""))
                records.append(
                    normalize_address_transaction(params.address, entry, raw_tx, commitment)
                )
            else:
                records.append(normalize_signature_entry(entry, commitment))

        filtered = filter_history(records, params.filter, params.program)
        last_signature = dig(signatures, -1, "signature")
        has_next = len(signatures) >= params.limit

        return {
            "address": params.address,
            "transactions": filtered,
            "pagination": {
                "limit": params.limit,
                "cursor": params.before,
                "nextCursor": last_signature if has_next else None,
                "hasNext": has_next,
                "hasPrevious": bool(params.before),
                "total": len(signatures),
            },
            "summary": summarize_address_history(signatures, records),
        }

    def address_tokens(self, ctx: RequestContext, params: AddressTokensParams) -> Dict[str, Any]:
        results = self.fan_out(ctx, self._token_account_calls(params.address, required=True))
        accounts = self._merge_token_accounts(results)
        mints = [t["mint"] for t in parse_token_accounts(accounts)]

        metadata = self.providers.tokens.get_many(ctx.network, mints)
        prices = self.providers.prices.get_many(ctx.network, mints) if params.include_prices else {}

        return normalize_token_holdings(
            params.address,
            accounts,
            include_nfts=params.include_nfts,
            include_zero_balance=params.include_zero_balance,
            sort_by=params.sort_by,
            sort_order=params.sort_order,
            limit=params.limit,
            offset=params.offset,
            metadata=metadata,
            prices=prices,
        )

    def address_nfts(self, ctx: RequestContext, params: AddressNftsParams) -> Dict[str, Any]:
        results = self.fan_out(ctx, self._token_account_calls(params.address, required=True))
        accounts = self._merge_token_accounts(results)
        nft_mints = [t["mint"] for t in parse_token_accounts(accounts) if t["isNft"]]

        metadata: Dict[str, Dict[str, Any]] = {}
        floors: Dict[str, Dict[str, Any]] = {}
        for mint in nft_mints:
            if params.include_metadata:
                meta = self.providers.nfts.get_metadata(ctx.network, mint)
                if meta:
                    metadata[mint] = meta
            if params.include_floor_price:
                floor = self.providers.nfts.get_floor_price(ctx.network, mint)
                if floor:
                    floors[mint] = floor

        return normalize_nft_holdings(
            params.address,
            accounts,
            limit=params.limit,
            offset=params.offset,
            sort_by=params.sort_by,
            filter_by=params.filter_by,
            include_metadata=params.include_metadata,
            include_floor_price=params.include_floor_price,
            metadata=metadata,
            floor_prices=floors,
        )

    def address_updates(self, ctx: RequestContext, params: AddressUpdatesParams) -> Dict[str, Any]:
        calls = [
            RpcCall("balance", "getBalance", [params.address]),
            RpcCall(
                "signatures",
                "getSignaturesForAddress",
                [params.address, {"limit": 20}],
                required=False,
                default=[],
            ),
        ]
        if params.include_tokens:
            calls.extend(self._token_account_calls(params.address))
        results = self.fan_out(ctx, calls)

        since = params.since.timestamp() if params.since else None
        signatures = [
            s for s in as_list(results.get("signatures"))
            if isinstance(s, dict)
            and (since is None or (s.get("blockTime") or 0) > since)
        ]
        recent = signatures[: config.ADDRESS_TX_DETAIL_LIMIT]
        details = self._transaction_details(ctx, recent, "confirmed")

        updates = []
        for entry in recent:
            record = normalize_address_transaction(
                params.address, entry, details.get(entry.get("signature"))
            )
            change = record["balanceChange"]
            if change and change["change"] != 0:
                updates.append({
                    "type": "balance_change",
                    "timestamp": record["timestamp"],
                    "signature": record["signature"],
                    "balanceChange": change,
                })
            updates.append({
                "type": "transaction",
                "timestamp": record["timestamp"],
                "signature": record["signature"],
                "status": record["status"],
                "balanceChange": change,
            })

        all_signatures = as_list(results.get("signatures"))
        return {
            "address": params.address,
            "currentBalance": as_int(unwrap(results["balance"])),
            "lastActivity": iso_time(dig(all_signatures, 0, "blockTime")),
            "updates": updates,
            "tokenAccounts": len(self._merge_token_accounts(results)) if params.include_tokens else None,
            "lastUpdated": now_iso(),
            "nextPollIn": LATEST_POLL_INTERVAL,
        }

    # ==================== TOKENS ====================

    def token(self, ctx: RequestContext, params: TokenParams) -> Dict[str, Any]:
        calls = [
            RpcCall("supply", "getTokenSupply", [params.mint]),
            RpcCall("account", "getAccountInfo", [params.mint, {"encoding": "jsonParsed"}]),
        ]
        if params.include_holders:
            calls.append(RpcCall(
                "holders", "getTokenLargestAccounts", [params.mint], required=False
            ))

        try:
            results = self.fan_out(ctx, calls)
        except RpcError as e:
            raise map_lookup_error(
                e, ErrorCode.TOKEN_NOT_FOUND, ErrorCode.INVALID_PARAMETERS, "Token"
            ) from e

        account = unwrap(results["account"])
        if not account or dig(account, "data", "parsed", "type") not in (None, "mint"):
            raise ExplorerError(ErrorCode.TOKEN_NOT_FOUND, "Token mint not found")

        metadata = self.providers.tokens.get_metadata(ctx.network, params.mint)
        market = self.providers.prices.get_price(ctx.network, params.mint)
        history = None
        if params.include_history:
            history = self.providers.prices.get_history(ctx.network, params.mint, params.timeframe)

        holders = results.get("holders") if params.include_holders else None
        if params.include_holders and holders is None:
            holders = []

        return normalize_token(
            params.mint,
            results["supply"],
            results["account"],
            metadata=metadata,
            market=market,
            holders=holders,
            price_history=history,
        )

    # ==================== UPDATES ====================

    def latest_updates(self, ctx: RequestContext, params: LatestUpdatesParams) -> Dict[str, Any]:
        current_slot = as_int(self.call(ctx, "getSlot"))
        updates: List[Dict[str, Any]] = []
        health = "healthy"

        if "blocks" in params.types or "transactions" in params.types:
            listing = self.fan_out(ctx, [RpcCall(
                "slots",
                "getBlocks",
                [max(0, current_slot - params.limit), current_slot],
                required=False,
                default=[],
            )])
            recent_slots = as_list(listing.get("slots"))[-min(10, params.limit):]
            blocks = self.fan_out(ctx, [
                RpcCall(
                    str(slot),
                    "getBlock",
                    [slot, {
                        "transactionDetails": "signatures",
                        "rewards": False,
                        "maxSupportedTransactionVersion": 0,
                    }],
                    required=False,
                )
                for slot in recent_slots
            ])
            for slot in recent_slots:
                raw = blocks.get(str(slot))
                if not raw:
                    continue
                if "blocks" in params.types:
                    updates.append(block_update(slot, raw))
                if "transactions" in params.types:
                    for signature in as_list(dig(raw, "signatures"))[:5]:
                        updates.append({
                            "type": "transaction",
                            "timestamp": iso_time(dig(raw, "blockTime")),
                            "data": {"signature": signature, "slot": slot},
                        })

        if "network" in params.types:
            try:
                stats = self.network_stats(ctx)
            except RpcError as e:
                logger.warning(f"Network snapshot for updates failed on {ctx.network}: {e}")
                health = "critical"
            else:
                health = stats["health"]
                updates.append({"type": "network_stats", "timestamp": stats["lastUpdated"], "data": stats})

        if params.since is not None:
            cutoff = params.since.timestamp()
            updates = [
                u for u in updates
                if u["timestamp"]
                and datetime.fromisoformat(u["timestamp"].replace("Z", "+00:00")).timestamp() > cutoff
            ]

        updates.sort(key=lambda u: u["timestamp"] or "", reverse=True)
        return {
            "updates": updates[: params.limit],
            "latestSlot": current_slot,
            "networkHealth": health,
            "lastUpdated": now_iso(),
            "nextPollIn": LATEST_POLL_INTERVAL,
        }
