"""
Pluggable data providers
Token metadata, prices, NFT metadata and analytics sit behind these interfaces.

Solana RPC has no authoritative source for token names, market prices, NFT
metadata or ecosystem analytics. The defaults here only return data they
can vouch for; anything else is reported as unavailable, never invented.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from schemas import (
    AnalyticsOverviewParams,
    DefiAnalyticsParams,
    FeesChartParams,
    ProgramAnalyticsParams,
    TpsChartParams,
    ValidatorsChartParams,
)


class TokenMetadataProvider(ABC):
    """Name, symbol and branding for token mints"""

    @abstractmethod
    def get_metadata(self, network: str, mint: str) -> Optional[Dict[str, Any]]:
        """Metadata for ``mint`` or None when unknown"""

    def get_many(self, network: str, mints: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        found = {}
        for mint in set(mints):
            meta = self.get_metadata(network, mint)
            if meta:
                found[mint] = meta
        return found


class PriceProvider(ABC):
    """Market data for token mints"""

    @abstractmethod
    def get_price(self, network: str, mint: str) -> Optional[Dict[str, Any]]:
        """``{"usd": float, ...}`` or None when no price source covers ``mint``"""

    def get_many(self, network: str, mints: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        found = {}
        for mint in set(mints):
            price = self.get_price(network, mint)
            if price:
                found[mint] = price
        return found

    def get_history(self, network: str, mint: str, timeframe: str) -> List[Dict[str, Any]]:
        return []


class NftMetadataProvider(ABC):
    """Off-chain NFT metadata and collection floor prices"""

    @abstractmethod
    def get_metadata(self, network: str, mint: str) -> Optional[Dict[str, Any]]:
        """Name, image, collection and attributes for an NFT mint"""

    def get_floor_price(self, network: str, mint: str) -> Optional[Dict[str, Any]]:
        return None


class AnalyticsProvider(ABC):
    """
    Aggregate analytics behind the ``/analytics`` routes.

    Implementations raise ExplorerError(ANALYTICS_DATA_UNAVAILABLE) for
    rollups they have no data source for.
    """

    @abstractmethod
    def overview(self, ctx, params: AnalyticsOverviewParams) -> Dict[str, Any]:
        ...

    @abstractmethod
    def tps_chart(self, ctx, params: TpsChartParams) -> Dict[str, Any]:
        ...

    @abstractmethod
    def fees_chart(self, ctx, params: FeesChartParams) -> Dict[str, Any]:
        ...

    @abstractmethod
    def validators_chart(self, ctx, params: ValidatorsChartParams) -> Dict[str, Any]:
        ...

    @abstractmethod
    def programs(self, ctx, params: ProgramAnalyticsParams) -> Dict[str, Any]:
        ...

    @abstractmethod
    def defi(self, ctx, params: DefiAnalyticsParams) -> Dict[str, Any]:
        ...


# ==================== DEFAULT PROVIDERS ====================

KNOWN_TOKENS: Dict[str, Dict[str, Any]] = {
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": {
        "name": "USD Coin",
        "symbol": "USDC",
        "decimals": 6,
        "logoURI": "https://raw.githubusercontent.com/solana-labs/token-list/main/assets/mainnet/EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v/logo.png",
        "website": "https://www.circle.com/usdc",
        "tags": ["stablecoin"],
        "verified": True,
    },
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": {
        "name": "Tether USD",
        "symbol": "USDT",
        "decimals": 6,
        "logoURI": "https://raw.githubusercontent.com/solana-labs/token-list/main/assets/mainnet/Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB/logo.svg",
        "website": "https://tether.to/",
        "tags": ["stablecoin"],
        "verified": True,
    },
    "So11111111111111111111111111111111111111112": {
        "name": "Wrapped SOL",
        "symbol": "SOL",
        "decimals": 9,
        "logoURI": None,
        "website": "https://solana.com",
        "tags": ["native"],
        "verified": True,
    },
}


class StaticTokenRegistry(TokenMetadataProvider):
    """Fixed registry of well-known mainnet tokens"""

    source = "static-registry"

    def __init__(self, tokens: Optional[Dict[str, Dict[str, Any]]] = None):
        self.tokens = tokens if tokens is not None else KNOWN_TOKENS

    def get_metadata(self, network: str, mint: str) -> Optional[Dict[str, Any]]:
        # Mint addresses above only exist on mainnet
        if network != "mainnet":
            return None
        entry = self.tokens.get(mint)
        if entry is None:
            return None
        return {**entry, "source": self.source}


class NullPriceProvider(PriceProvider):
    """No price source configured"""

    def get_price(self, network: str, mint: str) -> Optional[Dict[str, Any]]:
        return None


class NullNftMetadataProvider(NftMetadataProvider):
    """No NFT metadata source configured"""

    def get_metadata(self, network: str, mint: str) -> Optional[Dict[str, Any]]:
        return None


class Providers:
    """Bundle of providers handed to the data service"""

    def __init__(
        self,
        tokens: Optional[TokenMetadataProvider] = None,
        prices: Optional[PriceProvider] = None,
        nfts: Optional[NftMetadataProvider] = None,
    ):
        self.tokens = tokens or StaticTokenRegistry()
        self.prices = prices or NullPriceProvider()
        self.nfts = nfts or NullNftMetadataProvider()
