"""
Tests for network selection and per-request contexts
"""

import threading
from unittest.mock import MagicMock, Mock

import pytest

from network import NetworkSelector, RequestContext
from responses import ErrorCode, ExplorerError

URLS = {"mainnet": "http://mainnet.invalid", "devnet": "http://devnet.invalid"}


@pytest.fixture
def cache():
    return MagicMock()


@pytest.fixture
def selector(cache):
    return NetworkSelector(URLS, cache=cache, default="mainnet")


class TestNetworkSelector:
    def test_default(self, selector):
        assert selector.get_current_network() == "mainnet"
        assert selector.available == ["mainnet", "devnet"]

    def test_switch_clears_cache(self, selector, cache):
        assert selector.set_network("devnet") is True
        assert selector.get_current_network() == "devnet"
        cache.clear.assert_called_once()

    def test_same_network_is_a_no_op(self, selector, cache):
        assert selector.set_network("mainnet") is False
        cache.clear.assert_not_called()

    def test_unknown_network_rejected(self, selector, cache):
        with pytest.raises(ExplorerError) as exc_info:
            selector.set_network("testnet")
        assert exc_info.value.code == ErrorCode.INVALID_PARAMETERS
        assert selector.get_current_network() == "mainnet"
        cache.clear.assert_not_called()

    def test_concurrent_switch_to_same_network_clears_once(self, selector, cache):
        barrier = threading.Barrier(8)
        outcomes = []

        def switch():
            barrier.wait()
            outcomes.append(selector.set_network("devnet"))

        threads = [threading.Thread(target=switch) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == [False] * 7 + [True]
        assert selector.get_current_network() == "devnet"
        cache.clear.assert_called_once()

    def test_context_follows_path_not_selection(self, selector):
        selector.set_network("devnet")
        assert selector.context_for("mainnet") == RequestContext("mainnet", URLS["mainnet"])

    def test_context_for_unknown_network(self, selector):
        with pytest.raises(ExplorerError) as exc_info:
            selector.context_for("testnet")
        assert exc_info.value.code == ErrorCode.INVALID_NETWORK
        assert exc_info.value.status == 404

    def test_attach_reads_view_args(self, selector):
        request = Mock(view_args={"network": "devnet", "slot": "1"})
        assert selector.attach(request).rpc_url == URLS["devnet"]
        assert selector.attach(Mock(view_args=None)) is None

    def test_rejects_unsupported_configuration(self):
        with pytest.raises(ValueError):
            NetworkSelector({"mainnet": "x", "testnet": "y"})
        with pytest.raises(ValueError):
            NetworkSelector({"devnet": "y"}, default="mainnet")
