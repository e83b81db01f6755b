"""
Tests for the data service fan-out and upstream error mapping
"""

from unittest.mock import Mock

import pytest

from network import RequestContext
from responses import ErrorCode, ExplorerError
from rpc_client import RpcMethodError, RpcTimeoutError, RpcTransportError
from schemas import AddressParams, AddressUpdatesParams, BlockParams, LatestUpdatesParams, TokenParams
from solana_service import RpcCall, SolanaDataService, map_lookup_error

CTX = RequestContext("devnet", "http://devnet.invalid")
ADDRESS = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


def rpc_with(handlers):
    """Mock client answering by method name; values may be exceptions"""
    rpc = Mock()

    def call(url, method, params=None):
        result = handlers[method]
        if callable(result) and not isinstance(result, Exception):
            result = result(params)
        if isinstance(result, Exception):
            raise result
        return result

    rpc.call.side_effect = call
    return rpc


class TestFanOut:
    def test_collects_named_results(self):
        service = SolanaDataService(rpc_with({"getSlot": 5, "getBlockHeight": 4}))
        results = service.fan_out(CTX, [RpcCall("slot", "getSlot"), RpcCall("height", "getBlockHeight")])
        assert results == {"slot": 5, "height": 4}

    def test_uses_context_url(self):
        rpc = rpc_with({"getSlot": 5})
        SolanaDataService(rpc).fan_out(CTX, [RpcCall("slot", "getSlot")])
        rpc.call.assert_called_once_with("http://devnet.invalid", "getSlot", [])

    def test_optional_failure_uses_default(self):
        service = SolanaDataService(rpc_with({
            "getSlot": 5,
            "getBlocks": RpcTransportError("down", status=502),
        }))
        results = service.fan_out(CTX, [
            RpcCall("slot", "getSlot"),
            RpcCall("blocks", "getBlocks", required=False, default=[]),
        ])
        assert results == {"slot": 5, "blocks": []}

    def test_required_failure_raises(self):
        service = SolanaDataService(rpc_with({
            "getSlot": RpcTimeoutError("slow", 15),
            "getBlocks": [1],
        }))
        with pytest.raises(RpcTimeoutError):
            service.fan_out(CTX, [RpcCall("slot", "getSlot"), RpcCall("blocks", "getBlocks")])

    def test_first_required_failure_wins(self):
        service = SolanaDataService(rpc_with({
            "getSlot": RpcMethodError("first"),
            "getBlocks": RpcMethodError("second"),
        }))
        with pytest.raises(RpcMethodError, match="first"):
            service.fan_out(CTX, [RpcCall("slot", "getSlot"), RpcCall("blocks", "getBlocks")])

    def test_programming_errors_in_optional_calls_propagate(self):
        service = SolanaDataService(rpc_with({"getSlot": KeyError("bug")}))
        with pytest.raises(KeyError):
            service.fan_out(CTX, [RpcCall("slot", "getSlot", required=False)])

    def test_empty(self):
        assert SolanaDataService(Mock()).fan_out(CTX, []) == {}


class TestMapLookupError:
    def test_slot_unavailable(self):
        mapped = map_lookup_error(
            RpcMethodError("Slot 5 was skipped", code=-32007),
            ErrorCode.BLOCK_NOT_FOUND, ErrorCode.INVALID_PARAMETERS, "Block",
        )
        assert mapped.code == ErrorCode.SLOT_NOT_AVAILABLE

    def test_not_found_text(self):
        mapped = map_lookup_error(
            RpcMethodError("Invalid param: could not find account", code=-32602),
            ErrorCode.TOKEN_NOT_FOUND, ErrorCode.INVALID_PARAMETERS, "Token",
        )
        assert mapped.code == ErrorCode.TOKEN_NOT_FOUND

    def test_invalid_params(self):
        mapped = map_lookup_error(
            RpcMethodError("Invalid param: WrongSize", code=-32602),
            ErrorCode.TRANSACTION_NOT_FOUND, ErrorCode.INVALID_SIGNATURE, "Transaction",
        )
        assert mapped.code == ErrorCode.INVALID_SIGNATURE
        assert mapped.details == {"upstream": "Invalid param: WrongSize", "rpcCode": -32602}

    def test_other_errors_unchanged(self):
        error = RpcTransportError("down", status=502)
        assert map_lookup_error(
            error, ErrorCode.BLOCK_NOT_FOUND, ErrorCode.INVALID_PARAMETERS, "Block"
        ) is error


class TestResources:
    def test_block_zero_skips_previous_listing(self):
        rpc = rpc_with({"getBlock": {"blockhash": "h"}, "getBlocks": [1]})
        data = SolanaDataService(rpc).block(CTX, BlockParams(slot=0))

        methods = [c.args[1] for c in rpc.call.call_args_list]
        assert methods.count("getBlocks") == 1
        assert data["navigation"] == {"prevSlot": None, "nextSlot": 1}

    def test_processed_commitment_downgraded_for_blocks(self):
        rpc = rpc_with({"getBlock": {"blockhash": "h"}, "getBlocks": []})
        SolanaDataService(rpc).block(CTX, BlockParams(slot=9, commitment="processed"))
        block_call = next(c for c in rpc.call.call_args_list if c.args[1] == "getBlock")
        assert block_call.args[2][1]["commitment"] == "confirmed"

    def test_address_base58_requested_as_base64(self):
        rpc = rpc_with({
            "getBalance": {"context": {}, "value": 5},
            "getAccountInfo": {"context": {}, "value": {"lamports": 5, "data": ["AA==", "base64"]}},
            "getSignaturesForAddress": [],
        })
        data = SolanaDataService(rpc).address(CTX, AddressParams(address=ADDRESS))

        info_call = next(c for c in rpc.call.call_args_list if c.args[1] == "getAccountInfo")
        assert info_call.args[2][1]["encoding"] == "base64"
        assert data["account"]["data"]["raw"] == ["AA==", "base64"]

    def test_token_rejects_non_mint_account(self):
        rpc = rpc_with({
            "getTokenSupply": {"context": {}, "value": {"amount": "1", "decimals": 0}},
            "getAccountInfo": {"context": {}, "value": {"data": {"parsed": {"type": "account"}}}},
        })
        with pytest.raises(ExplorerError) as exc_info:
            SolanaDataService(rpc).token(CTX, TokenParams(mint=ADDRESS))
        assert exc_info.value.code == ErrorCode.TOKEN_NOT_FOUND

    def test_address_updates_report_balance_changes(self):
        raw_tx = {
            "blockTime": 1_700_000_000,
            "transaction": {"message": {"accountKeys": [ADDRESS]}},
            "meta": {"fee": 5000, "err": None, "preBalances": [100], "postBalances": [40]},
        }
        rpc = rpc_with({
            "getBalance": {"context": {}, "value": 40},
            "getSignaturesForAddress": [{"signature": "s1", "slot": 1, "blockTime": 1_700_000_000}],
            "getTransaction": raw_tx,
        })
        data = SolanaDataService(rpc).address_updates(
            CTX, AddressUpdatesParams(address=ADDRESS, include_tokens=False)
        )

        assert data["currentBalance"] == 40
        assert [u["type"] for u in data["updates"]] == ["balance_change", "transaction"]
        assert data["updates"][0]["balanceChange"]["change"] == -60
        assert data["tokenAccounts"] is None

    @pytest.mark.parametrize("since,expected", [
        ("2023-11-14T22:13:19", 2),
        ("2023-11-14T22:13:20", 0),
    ])
    def test_address_updates_naive_since_is_utc(self, since, expected):
        raw_tx = {
            "blockTime": 1_700_000_000,
            "transaction": {"message": {"accountKeys": [ADDRESS]}},
            "meta": {"fee": 5000, "err": None, "preBalances": [100], "postBalances": [40]},
        }
        rpc = rpc_with({
            "getBalance": {"context": {}, "value": 40},
            "getSignaturesForAddress": [{"signature": "s1", "slot": 1, "blockTime": 1_700_000_000}],
            "getTransaction": raw_tx,
        })
        params = AddressUpdatesParams(address=ADDRESS, include_tokens=False, since=since)
        data = SolanaDataService(rpc).address_updates(CTX, params)
        assert len(data["updates"]) == expected

    def test_latest_updates_network_failure_is_critical(self):
        rpc = rpc_with({
            "getSlot": 10,
            "getEpochInfo": RpcTransportError("down", status=502),
            "getSupply": {},
            "getRecentPerformanceSamples": [],
            "getVoteAccounts": {},
        })
        data = SolanaDataService(rpc).latest_updates(CTX, LatestUpdatesParams(types=["network"]))
        assert data["networkHealth"] == "critical"
        assert data["updates"] == []
        assert data["latestSlot"] == 10
