"""
Search API for the Solana explorer
Detects whether a query is a slot, signature or address and looks it up
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from network import RequestContext
from normalizers import KNOWN_PROGRAMS, summarize_address, summarize_block, summarize_transaction
from responses import ErrorCode, ExplorerError
from rpc_client import RpcMethodError
from schemas import SearchParams

logger = logging.getLogger(__name__)


class SearchCategory(Enum):
    """Search result categories"""

    BLOCK = "block"
    TRANSACTION = "transaction"
    ADDRESS = "address"
    UNKNOWN = "unknown"


@dataclass
class SearchResult:
    """Unified search result"""

    category: SearchCategory
    id: str
    summary: Dict
    confidence: float = 1.0


SUGGESTIONS = [
    "Try entering a complete transaction signature (88 characters)",
    "Try entering a block slot number",
    "Try entering a complete Solana address (32-44 characters)",
]


class ExplorerSearch:
    """Search over live RPC data"""

    PATTERNS = {
        "block_slot": r"^[0-9]+$",
        "signature": r"^[1-9A-HJ-NP-Za-km-z]{80,90}$",
        "address": r"^[1-9A-HJ-NP-Za-km-z]{32,44}$",
    }

    def __init__(self, service):
        self.service = service

    def search(self, ctx: RequestContext, params: SearchParams) -> Dict:
        """
        Look up ``params.q`` on the request's network.

        Auto-detected queries that find nothing come back empty with
        suggestions; an explicit ``type`` whose lookup fails is a 404.
        """
        query = params.q.strip()
        explicit = params.type != "auto"
        category = SearchCategory(params.type) if explicit else self._detect_category(query)

        results: List[SearchResult] = []
        try:
            if category == SearchCategory.BLOCK:
                results.extend(self._search_blocks(ctx, query, explicit))
            elif category == SearchCategory.TRANSACTION:
                results.extend(self._search_transactions(ctx, query, explicit))
            elif category == SearchCategory.ADDRESS:
                results.extend(self._search_addresses(ctx, query, explicit))
            else:
                results.extend(self._search_programs(query))
        except RpcMethodError as e:
            if explicit:
                raise self._not_found(category, e) from e
            logger.debug(f"Search lookup for {query!r} as {category.value} failed: {e}")

        if not results and not explicit:
            category = SearchCategory.UNKNOWN
        elif results and category == SearchCategory.UNKNOWN:
            category = results[0].category

        results.sort(key=lambda r: r.confidence, reverse=True)
        return {
            "query": query,
            "type": category.value,
            "results": [self._format_result(r) for r in results],
            "suggestions": list(SUGGESTIONS) if not results else None,
        }

    def _detect_category(self, query: str) -> SearchCategory:
        """Detect search category from query"""
        if re.match(self.PATTERNS["block_slot"], query):
            return SearchCategory.BLOCK

        if re.match(self.PATTERNS["signature"], query):
            return SearchCategory.TRANSACTION

        if re.match(self.PATTERNS["address"], query):
            return SearchCategory.ADDRESS

        return SearchCategory.UNKNOWN

    def _not_found(self, category: SearchCategory, error: Optional[Exception] = None) -> ExplorerError:
        details = {"upstream": error.message} if isinstance(error, RpcMethodError) else None
        if category == SearchCategory.TRANSACTION:
            return ExplorerError(ErrorCode.TRANSACTION_NOT_FOUND, "Transaction not found", details)
        if category == SearchCategory.BLOCK:
            return ExplorerError(ErrorCode.BLOCK_NOT_FOUND, "Block not found", details)
        return ExplorerError(ErrorCode.INVALID_ADDRESS, "Address not found", details)

    def _search_blocks(self, ctx: RequestContext, query: str, explicit: bool) -> List[SearchResult]:
        if not re.match(self.PATTERNS["block_slot"], query):
            raise ExplorerError(ErrorCode.INVALID_PARAMETERS, "Invalid slot number")

        slot = int(query)
        block = self.service.call(
            ctx, "getBlock", [slot, {"transactionDetails": "signatures", "rewards": False,
                                     "maxSupportedTransactionVersion": 0}]
        )
        if not block:
            if explicit:
                raise self._not_found(SearchCategory.BLOCK)
            return []

        return [SearchResult(SearchCategory.BLOCK, query, summarize_block(slot, block))]

    def _search_transactions(self, ctx: RequestContext, query: str, explicit: bool) -> List[SearchResult]:
        tx = self.service.call(
            ctx, "getTransaction", [query, {"encoding": "json", "maxSupportedTransactionVersion": 0}]
        )
        if not tx:
            if explicit:
                raise self._not_found(SearchCategory.TRANSACTION)
            return []

        return [SearchResult(SearchCategory.TRANSACTION, query, summarize_transaction(query, tx))]

    def _search_addresses(self, ctx: RequestContext, query: str, explicit: bool) -> List[SearchResult]:
        if not re.match(self.PATTERNS["address"], query):
            if explicit:
                raise ExplorerError(ErrorCode.INVALID_ADDRESS, "Address must be 32-44 base58 characters")
            return []

        account = self.service.call(ctx, "getAccountInfo", [query, {"encoding": "base64"}])
        return [SearchResult(SearchCategory.ADDRESS, query, summarize_address(query, account))]

    def _search_programs(self, query: str) -> List[SearchResult]:
        """Match well-known program names"""
        needle = query.lower()
        results = []
        for program_id, entry in KNOWN_PROGRAMS.items():
            if needle in entry["name"].lower():
                results.append(
                    SearchResult(
                        category=SearchCategory.ADDRESS,
                        id=program_id,
                        summary={
                            "address": program_id,
                            "name": entry["name"],
                            "description": entry["description"],
                            "isProgram": True,
                        },
                        confidence=0.8,
                    )
                )
        return results

    def _format_result(self, result: SearchResult) -> Dict:
        """Format search result for API response"""
        return {
            "type": result.category.value,
            "id": result.id,
            "summary": result.summary,
            "confidence": result.confidence,
        }
