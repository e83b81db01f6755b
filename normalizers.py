"""
Response normalizers
Pure functions turning raw Solana RPC results into the explorer's record shapes.

Every function is total over partial input: missing upstream fields become
0, [], False or None, and every documented key is always present.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

LAMPORTS_PER_SOL = 1_000_000_000

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
MEMO_PROGRAM_ID = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"
VOTE_PROGRAM_ID = "Vote111111111111111111111111111111111111111"
STAKE_PROGRAM_ID = "Stake11111111111111111111111111111111111111"
COMPUTE_BUDGET_PROGRAM_ID = "ComputeBudget111111111111111111111111111111"
BPF_LOADER_UPGRADEABLE_ID = "BPFLoaderUpgradeab1e11111111111111111111111"

TOKEN_PROGRAM_IDS = (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)

KNOWN_PROGRAMS: Dict[str, Dict[str, Any]] = {
    SYSTEM_PROGRAM_ID: {
        "name": "System Program",
        "description": "Creates accounts, transfers lamports and assigns ownership",
        "category": "native",
    },
    TOKEN_PROGRAM_ID: {
        "name": "SPL Token",
        "description": "Solana Program Library Token Program",
        "category": "token",
    },
    TOKEN_2022_PROGRAM_ID: {
        "name": "SPL Token-2022",
        "description": "Token program with extensions",
        "category": "token",
    },
    ASSOCIATED_TOKEN_PROGRAM_ID: {
        "name": "Associated Token Account",
        "description": "Derives and creates associated token accounts",
        "category": "token",
    },
    MEMO_PROGRAM_ID: {
        "name": "Memo",
        "description": "Attaches UTF-8 memos to transactions",
        "category": "utility",
    },
    VOTE_PROGRAM_ID: {
        "name": "Vote Program",
        "description": "Validator voting and vote account management",
        "category": "native",
    },
    STAKE_PROGRAM_ID: {
        "name": "Stake Program",
        "description": "Stake account delegation and rewards",
        "category": "native",
    },
    COMPUTE_BUDGET_PROGRAM_ID: {
        "name": "Compute Budget",
        "description": "Sets compute unit limits and priority fees",
        "category": "native",
    },
    BPF_LOADER_UPGRADEABLE_ID: {
        "name": "BPF Upgradeable Loader",
        "description": "Deploys and upgrades on-chain programs",
        "category": "native",
    },
}

SYSVAR_PREFIX = "Sysvar"


# ==================== HELPERS ====================


def unwrap(result: Any) -> Any:
    """Strip the ``{"context": ..., "value": ...}`` wrapper some RPC methods use"""
    if isinstance(result, dict) and "value" in result and "context" in result:
        return result["value"]
    return result


def dig(data: Any, *path: Any, default: Any = None) -> Any:
    """Walk nested dicts/lists, returning ``default`` on any missing step"""
    current = data
    for step in path:
        if isinstance(current, dict):
            current = current.get(step)
        elif isinstance(current, list) and isinstance(step, int):
            current = current[step] if -len(current) <= step < len(current) else None
        else:
            return default
        if current is None:
            return default
    return current


def as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


def as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def iso_time(block_time: Any) -> Optional[str]:
    """Unix seconds to ISO-8601, None when unknown"""
    if not isinstance(block_time, (int, float)) or isinstance(block_time, bool):
        return None
    moment = datetime.fromtimestamp(block_time, tz=timezone.utc)
    return moment.isoformat().replace("+00:00", "Z")


def lamports_to_sol(lamports: Any) -> float:
    return as_int(lamports) / LAMPORTS_PER_SOL


def program_name(program_id: Optional[str]) -> Optional[str]:
    entry = KNOWN_PROGRAMS.get(program_id or "")
    return entry["name"] if entry else None


def paginate(items: List[Any], limit: int, offset: int) -> Tuple[List[Any], Dict[str, Any]]:
    total = len(items)
    page = items[offset: offset + limit]
    return page, {
        "limit": limit,
        "offset": offset,
        "total": total,
        "hasNext": offset + limit < total,
        "hasPrevious": offset > 0,
    }


# ==================== TRANSACTIONS ====================


def _key_pubkey(key: Any) -> str:
    if isinstance(key, dict):
        return key.get("pubkey") or ""
    return key if isinstance(key, str) else ""


def resolve_account_keys(raw_tx: Any) -> List[Dict[str, Any]]:
    """
    Account keys with signer/writable flags.

    Static keys are classified from the message header; keys loaded from
    address lookup tables are appended writable first, then readonly.
    """
    message = dig(raw_tx, "transaction", "message", default={})
    static_keys = as_list(message.get("accountKeys") if isinstance(message, dict) else None)
    header = dig(message, "header", default={})

    num_signers = as_int(dig(header, "numRequiredSignatures"))
    readonly_signed = as_int(dig(header, "numReadonlySignedAccounts"))
    readonly_unsigned = as_int(dig(header, "numReadonlyUnsignedAccounts"))
    static_count = len(static_keys)

    keys: List[Dict[str, Any]] = []
    for index, key in enumerate(static_keys):
        if isinstance(key, dict):
            keys.append({
                "pubkey": key.get("pubkey") or "",
                "signer": bool(key.get("signer")),
                "writable": bool(key.get("writable")),
                "source": key.get("source") or "transaction",
            })
            continue

        if index < num_signers:
            writable = index < num_signers - readonly_signed
        else:
            writable = index < static_count - readonly_unsigned
        keys.append({
            "pubkey": _key_pubkey(key),
            "signer": index < num_signers,
            "writable": writable,
            "source": "transaction",
        })

    # jsonParsed responses already include loaded keys in accountKeys
    if static_keys and isinstance(static_keys[0], dict):
        return keys

    loaded = dig(raw_tx, "meta", "loadedAddresses", default={})
    for pubkey in as_list(dig(loaded, "writable")):
        keys.append({"pubkey": pubkey, "signer": False, "writable": True, "source": "lookupTable"})
    for pubkey in as_list(dig(loaded, "readonly")):
        keys.append({"pubkey": pubkey, "signer": False, "writable": False, "source": "lookupTable"})
    return keys


def sol_balance_changes(raw_tx: Any, pubkeys: List[str]) -> List[Dict[str, Any]]:
    """Per-account lamport deltas, non-zero only"""
    pre = as_list(dig(raw_tx, "meta", "preBalances"))
    post = as_list(dig(raw_tx, "meta", "postBalances"))
    changes = []
    for index in range(min(len(pre), len(post))):
        before, after = as_int(pre[index]), as_int(post[index])
        change = after - before
        if change != 0 and index < len(pubkeys) and pubkeys[index]:
            changes.append({
                "account": pubkeys[index],
                "before": before,
                "after": after,
                "change": change,
            })
    return changes


def _token_balance_map(entries: Any) -> Dict[Tuple[int, str], Dict[str, Any]]:
    balances = {}
    for entry in as_list(entries):
        if not isinstance(entry, dict):
            continue
        key = (as_int(entry.get("accountIndex"), -1), entry.get("mint") or "")
        balances[key] = entry
    return balances


def token_balance_changes(raw_tx: Any, pubkeys: List[str]) -> List[Dict[str, Any]]:
    """SPL token deltas from pre/post token balances, non-zero only"""
    pre = _token_balance_map(dig(raw_tx, "meta", "preTokenBalances"))
    post = _token_balance_map(dig(raw_tx, "meta", "postTokenBalances"))

    changes = []
    for key in sorted(set(pre) | set(post)):
        index, mint = key
        before_entry, after_entry = pre.get(key, {}), post.get(key, {})
        before = as_int(dig(before_entry, "uiTokenAmount", "amount"))
        after = as_int(dig(after_entry, "uiTokenAmount", "amount"))
        if before == after:
            continue
        decimals = as_int(
            dig(after_entry, "uiTokenAmount", "decimals",
                default=dig(before_entry, "uiTokenAmount", "decimals"))
        )
        changes.append({
            "account": pubkeys[index] if 0 <= index < len(pubkeys) else "",
            "mint": mint,
            "owner": after_entry.get("owner") or before_entry.get("owner"),
            "decimals": decimals,
            "before": before,
            "after": after,
            "change": after - before,
            "uiChange": (after - before) / (10 ** decimals) if decimals else float(after - before),
        })
    return changes


def _instruction(ix: Any, pubkeys: List[str], index: Optional[int] = None) -> Dict[str, Any]:
    ix = ix if isinstance(ix, dict) else {}
    if "programIdIndex" in ix:
        program_index = as_int(ix.get("programIdIndex"), -1)
        program_id = pubkeys[program_index] if 0 <= program_index < len(pubkeys) else ""
    else:
        program_id = ix.get("programId") or ""

    accounts = []
    for account in as_list(ix.get("accounts")):
        if isinstance(account, int):
            accounts.append(pubkeys[account] if 0 <= account < len(pubkeys) else "")
        else:
            accounts.append(_key_pubkey(account))

    record = {
        "programId": program_id,
        "programName": program_name(program_id),
        "accounts": accounts,
        "data": ix.get("data") or "",
        "parsed": ix.get("parsed"),
    }
    if index is not None:
        record["index"] = index
    return record


def resolve_instructions(raw_tx: Any, pubkeys: List[str]) -> List[Dict[str, Any]]:
    """Top-level instructions with resolved program ids and inner instructions"""
    inner_by_index: Dict[int, List[Dict[str, Any]]] = {}
    for group in as_list(dig(raw_tx, "meta", "innerInstructions")):
        idx = as_int(dig(group, "index"), -1)
        inner_by_index[idx] = [
            _instruction(ix, pubkeys) for ix in as_list(dig(group, "instructions"))
        ]

    instructions = []
    for index, ix in enumerate(as_list(dig(raw_tx, "transaction", "message", "instructions"))):
        record = _instruction(ix, pubkeys, index)
        record["innerInstructions"] = inner_by_index.get(index, [])
        instructions.append(record)
    return instructions


def transaction_status(raw_tx: Any) -> str:
    return "failure" if dig(raw_tx, "meta", "err") is not None else "success"


def normalize_transaction(
    signature: str,
    raw: Any,
    confirmation_status: Optional[str] = None,
    block_height: Optional[int] = None,
    log_limit: Optional[int] = None,
) -> Dict[str, Any]:
    """Flatten a ``getTransaction`` result"""
    keys = resolve_account_keys(raw)
    pubkeys = [k["pubkey"] for k in keys]
    message = dig(raw, "transaction", "message", default={})

    logs = [str(line) for line in as_list(dig(raw, "meta", "logMessages"))]
    truncated = log_limit is not None and len(logs) > log_limit
    if truncated:
        logs = logs[:log_limit]

    err = dig(raw, "meta", "err")
    return {
        "signature": signature,
        "status": transaction_status(raw),
        "confirmationStatus": confirmation_status,
        "slot": as_int(dig(raw, "slot")),
        "blockTime": dig(raw, "blockTime"),
        "timestamp": iso_time(dig(raw, "blockTime")),
        "block": as_int(block_height),
        "version": dig(raw, "version", default="legacy"),
        "fee": as_int(dig(raw, "meta", "fee")),
        "computeUnitsConsumed": as_int(dig(raw, "meta", "computeUnitsConsumed")),
        "recentBlockhash": dig(message, "recentBlockhash", default=""),
        "transaction": {
            "message": {
                "accountKeys": keys,
                "instructions": resolve_instructions(raw, pubkeys),
                "addressTableLookups": as_list(dig(message, "addressTableLookups")),
            },
            "signatures": as_list(dig(raw, "transaction", "signatures")),
        },
        "balanceChanges": sol_balance_changes(raw, pubkeys),
        "tokenBalanceChanges": token_balance_changes(raw, pubkeys),
        "logs": logs,
        "logsTruncated": truncated,
        "error": {"err": err, "logs": logs} if err is not None else None,
    }


# ==================== BLOCKS ====================


def _block_transaction_summary(tx: Any) -> Dict[str, Any]:
    return {
        "signature": dig(tx, "transaction", "signatures", 0, default=""),
        "status": transaction_status(tx),
        "fee": as_int(dig(tx, "meta", "fee")),
        "computeUnitsConsumed": as_int(dig(tx, "meta", "computeUnitsConsumed")),
    }


def block_metrics(transactions: List[Any]) -> Dict[str, int]:
    failed = sum(1 for tx in transactions if dig(tx, "meta", "err") is not None)
    return {
        "transactionCount": len(transactions),
        "totalFees": sum(as_int(dig(tx, "meta", "fee")) for tx in transactions),
        "computeUnitsTotal": sum(
            as_int(dig(tx, "meta", "computeUnitsConsumed")) for tx in transactions
        ),
        "successfulTransactions": len(transactions) - failed,
        "failedTransactions": failed,
    }


def normalize_reward(reward: Any) -> Dict[str, Any]:
    return {
        "pubkey": dig(reward, "pubkey", default=""),
        "lamports": as_int(dig(reward, "lamports")),
        "postBalance": as_int(dig(reward, "postBalance")),
        "rewardType": dig(reward, "rewardType", default="unknown"),
        "commission": dig(reward, "commission"),
    }


def normalize_block(
    slot: int,
    raw: Any,
    transaction_details: str = "signatures",
    include_rewards: bool = True,
    prev_slot: Optional[int] = None,
    next_slot: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Flatten a full ``getBlock`` result.

    Metrics always cover every transaction in the block; the
    ``transactions`` list is shaped by ``transaction_details``.
    """
    all_txs = as_list(dig(raw, "transactions"))

    if transaction_details == "full":
        transactions = []
        for tx in all_txs:
            record = _block_transaction_summary(tx)
            keys = resolve_account_keys(tx)
            record["accountKeys"] = [k["pubkey"] for k in keys]
            record["logMessages"] = as_list(dig(tx, "meta", "logMessages"))
            record["instructions"] = resolve_instructions(tx, record["accountKeys"])
            transactions.append(record)
    elif transaction_details == "signatures":
        transactions = [_block_transaction_summary(tx) for tx in all_txs]
        if not all_txs:
            transactions = [
                {"signature": sig, "status": None, "fee": 0, "computeUnitsConsumed": 0}
                for sig in as_list(dig(raw, "signatures"))
            ]
    else:
        transactions = []

    metrics = block_metrics(all_txs)
    if not all_txs and dig(raw, "signatures"):
        metrics["transactionCount"] = len(as_list(dig(raw, "signatures")))

    return {
        "slot": slot,
        "blockhash": dig(raw, "blockhash", default=""),
        "previousBlockhash": dig(raw, "previousBlockhash", default=""),
        "parentSlot": as_int(dig(raw, "parentSlot")),
        "blockTime": dig(raw, "blockTime"),
        "timestamp": iso_time(dig(raw, "blockTime")),
        "blockHeight": dig(raw, "blockHeight"),
        "transactions": transactions,
        "rewards": [normalize_reward(r) for r in as_list(dig(raw, "rewards"))]
        if include_rewards else [],
        "navigation": {"prevSlot": prev_slot, "nextSlot": next_slot},
        "metrics": metrics,
    }


def normalize_block_transactions(
    slot: int,
    raw: Any,
    limit: int,
    offset: int,
    status: str = "all",
    sort_by: str = "index",
    sort_order: str = "asc",
    include_details: bool = False,
) -> Dict[str, Any]:
    """Filtered, sorted and paginated view over a block's transactions"""
    indexed = list(enumerate(as_list(dig(raw, "transactions"))))

    if status == "success":
        indexed = [(i, tx) for i, tx in indexed if dig(tx, "meta", "err") is None]
    elif status == "failed":
        indexed = [(i, tx) for i, tx in indexed if dig(tx, "meta", "err") is not None]

    sort_keys = {
        "index": lambda pair: pair[0],
        "fee": lambda pair: (as_int(dig(pair[1], "meta", "fee")), pair[0]),
        "compute": lambda pair: (as_int(dig(pair[1], "meta", "computeUnitsConsumed")), pair[0]),
    }
    indexed.sort(key=sort_keys.get(sort_by, sort_keys["index"]), reverse=sort_order == "desc")

    page, pagination = paginate(indexed, limit, offset)
    program_counts: Counter = Counter()
    records = []

    for index, tx in page:
        keys = resolve_account_keys(tx)
        pubkeys = [k["pubkey"] for k in keys]
        instructions = resolve_instructions(tx, pubkeys)
        interactions = []
        for ix in instructions:
            if not ix["programId"]:
                continue
            program_counts[ix["programId"]] += 1
            interactions.append({
                "programId": ix["programId"],
                "programName": ix["programName"],
            })

        record = _block_transaction_summary(tx)
        record.update({
            "index": index,
            "accountKeys": pubkeys,
            "balanceChanges": sol_balance_changes(tx, pubkeys),
            "tokenBalanceChanges": token_balance_changes(tx, pubkeys),
            "programInteractions": interactions,
            "error": None,
            "logMessages": [],
            "details": None,
        })
        if dig(tx, "meta", "err") is not None:
            record["error"] = {
                "err": dig(tx, "meta", "err"),
                "logs": as_list(dig(tx, "meta", "logMessages")),
            }
        if include_details:
            record["logMessages"] = as_list(dig(tx, "meta", "logMessages"))
            record["details"] = {
                "accountKeys": keys,
                "instructions": instructions,
                "signatures": as_list(dig(tx, "transaction", "signatures")),
            }
        records.append(record)

    page_txs = [tx for _, tx in page]
    metrics = block_metrics(page_txs)
    total_interactions = sum(program_counts.values())
    metrics.update({
        "uniquePrograms": sorted(program_counts),
        "topPrograms": [
            {
                "programId": program_id,
                "name": program_name(program_id),
                "count": count,
                "percentage": (count / total_interactions * 100) if total_interactions else 0.0,
            }
            for program_id, count in program_counts.most_common(10)
        ],
    })

    return {
        "slot": slot,
        "blockhash": dig(raw, "blockhash", default=""),
        "blockTime": dig(raw, "blockTime"),
        "blockHeight": dig(raw, "blockHeight"),
        "transactions": records,
        "pagination": pagination,
        "metrics": metrics,
    }


# ==================== ADDRESSES ====================


def infer_account_type(address: str, account: Optional[Dict[str, Any]]) -> str:
    if address == SYSTEM_PROGRAM_ID or address.startswith(SYSVAR_PREFIX):
        return "system"
    if address in KNOWN_PROGRAMS and KNOWN_PROGRAMS[address]["category"] == "native":
        return "system"
    if not account:
        return "wallet"
    if account.get("executable"):
        return "program"
    if account.get("owner") in TOKEN_PROGRAM_IDS:
        return "token"
    return "wallet"


def address_stats(signatures: Any) -> Dict[str, Any]:
    """Activity summary from a ``getSignaturesForAddress`` page"""
    entries = [s for s in as_list(signatures) if isinstance(s, dict)]
    failed = sum(1 for s in entries if s.get("err") is not None)
    return {
        "transactionCount": len(entries),
        "successfulTransactions": len(entries) - failed,
        "failedTransactions": failed,
        "firstTransaction": iso_time(entries[-1].get("blockTime")) if entries else None,
        "lastTransaction": iso_time(entries[0].get("blockTime")) if entries else None,
        "recentActivity": [
            {
                "signature": s.get("signature") or "",
                "slot": as_int(s.get("slot")),
                "blockTime": s.get("blockTime"),
                "status": "failure" if s.get("err") is not None else "success",
            }
            for s in entries[:5]
        ],
        "totalSent": 0,
        "totalReceived": 0,
    }


def normalize_token_account(entry: Any) -> Optional[Dict[str, Any]]:
    """One parsed SPL token account, None when it is not parseable"""
    info = dig(entry, "account", "data", "parsed", "info")
    if not isinstance(info, dict) or not info.get("mint"):
        return None

    token_amount = info.get("tokenAmount") or {}
    amount = as_int(token_amount.get("amount"))
    decimals = as_int(token_amount.get("decimals"))
    ui_amount = token_amount.get("uiAmount")
    if not isinstance(ui_amount, (int, float)):
        ui_amount = amount / (10 ** decimals) if decimals else float(amount)

    return {
        "mint": info["mint"],
        "tokenAccount": dig(entry, "pubkey", default=""),
        "owner": info.get("owner"),
        "amount": amount,
        "decimals": decimals,
        "uiAmount": ui_amount,
        "uiAmountString": token_amount.get("uiAmountString") or str(ui_amount),
        "frozen": info.get("state") == "frozen",
        "isNft": amount == 1 and decimals == 0,
        "programId": dig(entry, "account", "owner", default=TOKEN_PROGRAM_ID),
    }


def parse_token_accounts(raw: Any) -> List[Dict[str, Any]]:
    parsed = (normalize_token_account(e) for e in as_list(unwrap(raw)))
    return [p for p in parsed if p is not None]


def normalize_address(
    address: str,
    balance: Any,
    account_info: Any,
    token_accounts: Any = None,
    signatures: Any = None,
    include_tokens: bool = False,
    encoding: str = "base58",
    token_metadata: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Merge balance, account info, token accounts and signatures"""
    account = unwrap(account_info)
    account = account if isinstance(account, dict) else None
    lamports = as_int(unwrap(balance), as_int(dig(account, "lamports")))
    exists = account is not None or lamports > 0
    owner = dig(account, "owner")
    data = dig(account, "data")

    tokens: List[Dict[str, Any]] = []
    nfts: List[Dict[str, Any]] = []
    if include_tokens:
        metadata = token_metadata or {}
        for token in parse_token_accounts(token_accounts):
            if token["isNft"]:
                nfts.append({
                    "mint": token["mint"],
                    "tokenAccount": token["tokenAccount"],
                    "frozen": token["frozen"],
                })
            elif token["amount"] > 0:
                info = metadata.get(token["mint"]) or {}
                tokens.append({
                    "mint": token["mint"],
                    "account": token["tokenAccount"],
                    "amount": token["amount"],
                    "decimals": token["decimals"],
                    "uiAmount": token["uiAmount"],
                    "symbol": info.get("symbol"),
                    "name": info.get("name"),
                })

    account_type = infer_account_type(address, account)
    program_info = None
    if account_type in ("program", "system") or address in KNOWN_PROGRAMS:
        known = KNOWN_PROGRAMS.get(address)
        program_info = {
            "name": known["name"] if known else None,
            "description": known["description"] if known else None,
            "verified": known is not None,
            "upgradeable": owner == BPF_LOADER_UPGRADEABLE_ID,
        }

    return {
        "address": address,
        "exists": exists,
        "type": account_type,
        "balance": lamports,
        "balanceSol": lamports_to_sol(lamports),
        "account": {
            "lamports": lamports,
            "owner": owner,
            "executable": bool(dig(account, "executable", default=False)),
            "rentEpoch": dig(account, "rentEpoch"),
            "space": as_int(dig(account, "space")),
            "data": {
                "program": owner,
                "parsed": dig(data, "parsed") if isinstance(data, dict) else None,
                "raw": data if encoding != "jsonParsed" and isinstance(data, list) else None,
            },
        },
        "tokens": tokens,
        "nfts": nfts,
        "stats": address_stats(signatures),
        "programInfo": program_info,
    }


def _address_type(address: str, pubkeys: List[str]) -> str:
    if pubkeys and pubkeys[0] == address:
        return "sent"
    if address in pubkeys:
        return "received"
    return "unknown"


def normalize_signature_entry(entry: Any, commitment: str = "confirmed") -> Dict[str, Any]:
    """Minimal history record built from a signature listing alone"""
    return {
        "signature": dig(entry, "signature", default=""),
        "slot": as_int(dig(entry, "slot")),
        "blockTime": dig(entry, "blockTime"),
        "timestamp": iso_time(dig(entry, "blockTime")),
        "status": "failure" if dig(entry, "err") is not None else "success",
        "confirmationStatus": dig(entry, "confirmationStatus", default=commitment),
        "memo": dig(entry, "memo"),
        "type": "unknown",
        "fee": 0,
        "computeUnitsConsumed": 0,
        "balanceChange": None,
        "programInteractions": [],
        "detailsAvailable": False,
    }


def normalize_address_transaction(
    address: str, entry: Any, raw_tx: Any, commitment: str = "confirmed"
) -> Dict[str, Any]:
    """History record enriched with the full transaction"""
    record = normalize_signature_entry(entry, commitment)
    if not raw_tx:
        return record

    keys = resolve_account_keys(raw_tx)
    pubkeys = [k["pubkey"] for k in keys]
    balance_change = None
    if address in pubkeys:
        index = pubkeys.index(address)
        pre = as_list(dig(raw_tx, "meta", "preBalances"))
        post = as_list(dig(raw_tx, "meta", "postBalances"))
        if index < len(pre) and index < len(post):
            before, after = as_int(pre[index]), as_int(post[index])
            balance_change = {"before": before, "after": after, "change": after - before}

    interactions = []
    for ix in resolve_instructions(raw_tx, pubkeys):
        if ix["programId"]:
            interactions.append({
                "programId": ix["programId"],
                "programName": ix["programName"] or "Unknown Program",
                "accounts": ix["accounts"],
            })

    record.update({
        "slot": as_int(dig(raw_tx, "slot"), record["slot"]),
        "blockTime": dig(raw_tx, "blockTime", default=record["blockTime"]),
        "status": transaction_status(raw_tx),
        "type": _address_type(address, pubkeys),
        "fee": as_int(dig(raw_tx, "meta", "fee")),
        "computeUnitsConsumed": as_int(dig(raw_tx, "meta", "computeUnitsConsumed")),
        "balanceChange": balance_change,
        "programInteractions": interactions,
        "detailsAvailable": True,
    })
    record["timestamp"] = iso_time(record["blockTime"])
    return record


def summarize_address_history(
    signatures: List[Any], records: List[Dict[str, Any]]
) -> Dict[str, Any]:
    entries = [s for s in signatures if isinstance(s, dict)]
    failed = sum(1 for s in entries if s.get("err") is not None)
    sent = sum(
        -r["balanceChange"]["change"]
        for r in records
        if r["balanceChange"] and r["balanceChange"]["change"] < 0
    )
    received = sum(
        r["balanceChange"]["change"]
        for r in records
        if r["balanceChange"] and r["balanceChange"]["change"] > 0
    )
    return {
        "totalTransactions": len(entries),
        "successfulTransactions": len(entries) - failed,
        "failedTransactions": failed,
        "totalFeePaid": sum(r["fee"] for r in records if r["type"] == "sent"),
        "totalSent": sent,
        "totalReceived": received,
    }


def filter_history(
    records: List[Dict[str, Any]], mode: str, program: Optional[str] = None
) -> List[Dict[str, Any]]:
    if mode == "sent":
        return [r for r in records if r["type"] == "sent"]
    if mode == "received":
        return [r for r in records if r["type"] == "received"]
    if mode == "program":
        return [
            r for r in records
            if any(p["programId"] == program for p in r["programInteractions"])
        ]
    return records


# ==================== TOKENS ====================


def _token_info(mint: str, metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if metadata:
        return {
            "name": metadata.get("name"),
            "symbol": metadata.get("symbol"),
            "logoURI": metadata.get("logoURI"),
            "website": metadata.get("website"),
            "tags": metadata.get("tags", []),
            "verified": bool(metadata.get("verified")),
            "source": metadata.get("source"),
        }
    return {
        "name": None,
        "symbol": None,
        "logoURI": None,
        "website": None,
        "tags": [],
        "verified": False,
        "source": None,
    }


def normalize_token_holdings(
    address: str,
    raw_accounts: Any,
    include_nfts: bool = False,
    include_zero_balance: bool = False,
    sort_by: str = "value",
    sort_order: str = "desc",
    limit: int = 100,
    offset: int = 0,
    metadata: Optional[Dict[str, Dict[str, Any]]] = None,
    prices: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Fungible holdings and NFTs for ``/addresses/{address}/tokens``"""
    metadata = metadata or {}
    prices = prices or {}

    fungible: List[Dict[str, Any]] = []
    nfts: List[Dict[str, Any]] = []
    for token in parse_token_accounts(raw_accounts):
        if not include_zero_balance and token["amount"] == 0:
            continue
        if token["isNft"]:
            if include_nfts:
                nfts.append({
                    "mint": token["mint"],
                    "tokenAccount": token["tokenAccount"],
                    "frozen": token["frozen"],
                })
            continue

        price = prices.get(token["mint"])
        value = None
        if price and price.get("usd") is not None:
            value = {"usd": token["uiAmount"] * price["usd"], "percentage": 0.0}
        fungible.append({
            "mint": token["mint"],
            "tokenAccount": token["tokenAccount"],
            "programId": token["programId"],
            "balance": {
                "amount": str(token["amount"]),
                "decimals": token["decimals"],
                "uiAmount": token["uiAmount"],
                "uiAmountString": token["uiAmountString"],
            },
            "tokenInfo": _token_info(token["mint"], metadata.get(token["mint"])),
            "price": price,
            "value": value,
            "frozen": token["frozen"],
        })

    total_usd = sum(t["value"]["usd"] for t in fungible if t["value"])
    if total_usd > 0:
        for token in fungible:
            if token["value"]:
                token["value"]["percentage"] = token["value"]["usd"] / total_usd * 100

    sort_keys = {
        "balance": lambda t: t["balance"]["uiAmount"],
        "value": lambda t: (t["value"]["usd"] if t["value"] else 0.0, t["balance"]["uiAmount"]),
        "name": lambda t: (t["tokenInfo"]["name"] or t["mint"]).lower(),
    }
    fungible.sort(key=sort_keys.get(sort_by, sort_keys["value"]), reverse=sort_order == "desc")

    page, pagination = paginate(fungible, limit, offset)
    valued = [t for t in fungible if t["value"] and t["value"]["usd"] > 0]
    valued.sort(key=lambda t: t["value"]["usd"], reverse=True)

    return {
        "address": address,
        "tokens": page,
        "nfts": nfts,
        "pagination": pagination,
        "summary": {
            "totalTokens": len(fungible),
            "totalNFTs": len(nfts),
            "totalValue": {"usd": total_usd},
            "topHoldings": [
                {
                    "mint": t["mint"],
                    "symbol": t["tokenInfo"]["symbol"],
                    "value": t["value"]["usd"],
                    "percentage": t["value"]["percentage"],
                }
                for t in valued[:5]
            ],
        },
    }


def normalize_nft_holdings(
    address: str,
    raw_accounts: Any,
    limit: int = 100,
    offset: int = 0,
    sort_by: str = "name",
    filter_by: Optional[str] = None,
    include_metadata: bool = True,
    include_floor_price: bool = True,
    metadata: Optional[Dict[str, Dict[str, Any]]] = None,
    floor_prices: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """NFT holdings for ``/addresses/{address}/nfts``"""
    metadata = metadata or {}
    floor_prices = floor_prices or {}

    nfts = []
    for token in parse_token_accounts(raw_accounts):
        if not token["isNft"]:
            continue
        meta = metadata.get(token["mint"]) if include_metadata else None
        floor = floor_prices.get(token["mint"]) if include_floor_price else None
        nfts.append({
            "mint": token["mint"],
            "tokenAccount": token["tokenAccount"],
            "name": dig(meta, "name"),
            "symbol": dig(meta, "symbol"),
            "image": dig(meta, "image"),
            "collection": dig(meta, "collection"),
            "attributes": dig(meta, "attributes", default=[]),
            "rarityRank": dig(meta, "rarityRank"),
            "metadataAvailable": bool(meta),
            "floorPrice": floor,
            "frozen": token["frozen"],
        })

    if filter_by:
        needle = filter_by.lower()
        nfts = [
            n for n in nfts
            if needle in (n["name"] or "").lower()
            or needle in (n["collection"] or "").lower()
            or needle in n["mint"].lower()
        ]

    sort_keys = {
        "name": lambda n: ((n["name"] or "~").lower(), n["mint"]),
        "collection": lambda n: ((n["collection"] or "~").lower(), n["mint"]),
        "rarity": lambda n: (n["rarityRank"] if n["rarityRank"] is not None else float("inf"), n["mint"]),
        "floorPrice": lambda n: (-(dig(n, "floorPrice", "sol") or 0.0), n["mint"]),
    }
    nfts.sort(key=sort_keys.get(sort_by, sort_keys["name"]))

    page, pagination = paginate(nfts, limit, offset)
    collections = {n["collection"] for n in nfts if n["collection"]}
    return {
        "address": address,
        "nfts": page,
        "pagination": pagination,
        "summary": {
            "totalNFTs": len(nfts),
            "collections": len(collections),
            "metadataAvailable": sum(1 for n in nfts if n["metadataAvailable"]),
        },
    }


def normalize_token(
    mint: str,
    supply: Any,
    mint_account: Any,
    metadata: Optional[Dict[str, Any]] = None,
    market: Optional[Dict[str, Any]] = None,
    holders: Any = None,
    price_history: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Token record from supply, mint account and provider data"""
    supply_value = unwrap(supply) or {}
    account = unwrap(mint_account) or {}
    info = dig(account, "data", "parsed", "info", default={})

    decimals = as_int(dig(supply_value, "decimals", default=dig(info, "decimals")))
    raw_supply = str(dig(supply_value, "amount", default=dig(info, "supply", default="0")))
    ui_supply = dig(supply_value, "uiAmount")
    if not isinstance(ui_supply, (int, float)):
        ui_supply = as_int(raw_supply) / (10 ** decimals) if decimals else float(as_int(raw_supply))

    mint_authority = dig(info, "mintAuthority")
    freeze_authority = dig(info, "freezeAuthority")

    holder_entries = []
    for entry in as_list(unwrap(holders)):
        ui_amount = dig(entry, "uiAmount")
        ui_amount = ui_amount if isinstance(ui_amount, (int, float)) else 0.0
        holder_entries.append({
            "address": dig(entry, "address", default=""),
            "balance": str(dig(entry, "amount", default="0")),
            "balanceUi": ui_amount,
            "percentage": (ui_amount / ui_supply * 100) if ui_supply else 0.0,
        })

    return {
        "mint": mint,
        "programId": dig(account, "owner", default=TOKEN_PROGRAM_ID),
        "decimals": decimals,
        "isInitialized": bool(dig(info, "isInitialized", default=bool(account))),
        "tokenInfo": _token_info(mint, metadata),
        "supply": {
            "total": raw_supply,
            "totalUi": ui_supply,
            "uiAmountString": dig(supply_value, "uiAmountString", default=str(ui_supply)),
        },
        "mintAuthority": {"address": mint_authority, "canMint": bool(mint_authority)},
        "freezeAuthority": {"address": freeze_authority, "canFreeze": bool(freeze_authority)},
        "market": market,
        "priceHistory": price_history if price_history is not None else [],
        "holders": {"top": holder_entries, "count": len(holder_entries)} if holders is not None else None,
    }


# ==================== NETWORK ====================


def network_health(active: int, delinquent: int) -> str:
    total = active + delinquent
    if total == 0:
        return "healthy"
    pct = delinquent / total * 100
    if pct > 20:
        return "critical"
    if pct > 10:
        return "warning"
    return "healthy"


def _sample_tps(sample: Any) -> float:
    period = as_int(dig(sample, "samplePeriodSecs"))
    if period <= 0:
        return 0.0
    return as_int(dig(sample, "numTransactions")) / period


def normalize_network_stats(
    slot: Any,
    epoch_info: Any,
    supply: Any,
    samples: Any,
    vote_accounts: Any,
    updated_at: Optional[str] = None,
) -> Dict[str, Any]:
    """Network dashboard snapshot"""
    current = as_list(dig(vote_accounts, "current"))
    delinquent = as_list(dig(vote_accounts, "delinquent"))
    sample_list = as_list(samples)
    tps_values = [_sample_tps(s) for s in sample_list]
    supply_value = unwrap(supply) or {}

    active_stake = sum(as_int(dig(v, "activatedStake")) for v in current)
    delinquent_stake = sum(as_int(dig(v, "activatedStake")) for v in delinquent)

    return {
        "currentSlot": as_int(slot),
        "epochInfo": {
            "epoch": as_int(dig(epoch_info, "epoch")),
            "slotIndex": as_int(dig(epoch_info, "slotIndex")),
            "slotsInEpoch": as_int(dig(epoch_info, "slotsInEpoch")),
            "absoluteSlot": as_int(dig(epoch_info, "absoluteSlot")),
            "blockHeight": as_int(dig(epoch_info, "blockHeight")),
            "transactionCount": dig(epoch_info, "transactionCount"),
            "progress": (
                as_int(dig(epoch_info, "slotIndex")) / as_int(dig(epoch_info, "slotsInEpoch")) * 100
                if as_int(dig(epoch_info, "slotsInEpoch")) else 0.0
            ),
        },
        "performance": {
            "tps": round(tps_values[0]) if tps_values else 0,
            "avgTps1m": round(tps_values[0]) if tps_values else 0,
            "avgTps5m": round(sum(tps_values[:5]) / len(tps_values[:5])) if tps_values else 0,
        },
        "validators": {
            "total": len(current) + len(delinquent),
            "active": len(current),
            "delinquent": len(delinquent),
            "activeStake": lamports_to_sol(active_stake),
            "delinquentStake": lamports_to_sol(delinquent_stake),
        },
        "supply": {
            "total": lamports_to_sol(dig(supply_value, "total")),
            "circulating": lamports_to_sol(dig(supply_value, "circulating")),
            "nonCirculating": lamports_to_sol(dig(supply_value, "nonCirculating")),
        },
        "health": network_health(len(current), len(delinquent)),
        "lastUpdated": updated_at,
    }


# ==================== SEARCH ====================


def summarize_transaction(signature: str, raw: Any) -> Dict[str, Any]:
    return {
        "signature": signature,
        "status": transaction_status(raw),
        "blockTime": dig(raw, "blockTime"),
        "slot": as_int(dig(raw, "slot")),
        "fee": as_int(dig(raw, "meta", "fee")),
    }


def summarize_block(slot: int, raw: Any) -> Dict[str, Any]:
    return {
        "slot": slot,
        "blockhash": dig(raw, "blockhash", default=""),
        "parentSlot": as_int(dig(raw, "parentSlot")),
        "blockTime": dig(raw, "blockTime"),
        "blockHeight": dig(raw, "blockHeight"),
        "transactionCount": len(as_list(dig(raw, "signatures")) or as_list(dig(raw, "transactions"))),
    }


def summarize_address(address: str, account_info: Any) -> Dict[str, Any]:
    account = unwrap(account_info)
    account = account if isinstance(account, dict) else None
    return {
        "address": address,
        "exists": account is not None,
        "balance": as_int(dig(account, "lamports")),
        "isProgram": bool(dig(account, "executable", default=False)),
        "owner": dig(account, "owner"),
        "type": infer_account_type(address, account),
    }


def block_update(slot: int, raw: Any) -> Dict[str, Any]:
    return {
        "type": "block",
        "timestamp": iso_time(dig(raw, "blockTime")),
        "data": summarize_block(slot, raw),
    }