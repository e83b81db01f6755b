"""
Request parameter schemas
One pydantic model per endpoint; path and query values are validated together
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Literal, Mapping, Optional, Type

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from responses import ErrorCode

BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

Commitment = Literal["processed", "confirmed", "finalized"]
SortOrder = Literal["asc", "desc"]
UPDATE_TYPES = ("blocks", "transactions", "network")


def _require_text(value: str, label: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{label} is required")
    return value.strip()


def _check_address(value: str) -> str:
    value = _require_text(value, "Address")
    if not BASE58_ADDRESS.match(value):
        raise ValueError("Address must be 32-44 base58 characters")
    return value


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # timestamps without an offset are UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ExplorerParams(BaseModel):
    """Base for every endpoint schema"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
    )

    # Path fields and the error code used when one of them is invalid
    PATH_FIELDS: ClassVar[Dict[str, ErrorCode]] = {}

    def cache_params(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class AddressPathMixin(BaseModel):
    address: str

    @field_validator("address")
    @classmethod
    def _valid_address(cls, value: str) -> str:
        return _check_address(value)


# ==================== NETWORK / SEARCH ====================


class NetworkStatsParams(ExplorerParams):
    pass


class NetworkSelectParams(ExplorerParams):
    network: Literal["mainnet", "devnet"]


class SearchParams(ExplorerParams):
    q: str = Field(min_length=1, max_length=128)
    type: Literal["auto", "transaction", "block", "address"] = "auto"


# ==================== TRANSACTIONS ====================


class TransactionParams(ExplorerParams):
    PATH_FIELDS: ClassVar[Dict[str, ErrorCode]] = {
        "signature": ErrorCode.INVALID_SIGNATURE
    }

    signature: str
    commitment: Commitment = "confirmed"
    max_supported_transaction_version: int = Field(default=0, ge=0)

    @field_validator("signature")
    @classmethod
    def _signature_present(cls, value: str) -> str:
        return _require_text(value, "Transaction signature")


# ==================== BLOCKS ====================


class BlockParams(ExplorerParams):
    PATH_FIELDS: ClassVar[Dict[str, ErrorCode]] = {
        "slot": ErrorCode.INVALID_PARAMETERS
    }

    slot: int = Field(ge=0)
    commitment: Commitment = "confirmed"
    transaction_details: Literal["full", "signatures", "none"] = "signatures"
    rewards: bool = True


class BlockTransactionsParams(ExplorerParams):
    PATH_FIELDS: ClassVar[Dict[str, ErrorCode]] = {
        "slot": ErrorCode.INVALID_PARAMETERS
    }

    slot: int = Field(ge=0)
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
    status: Literal["all", "success", "failed"] = "all"
    sort_by: Literal["index", "fee", "compute"] = "index"
    sort_order: SortOrder = "asc"
    include_details: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def _status_alias(cls, value: Any) -> Any:
        return "failed" if value == "failure" else value


# ==================== ADDRESSES ====================


class AddressParams(AddressPathMixin, ExplorerParams):
    PATH_FIELDS: ClassVar[Dict[str, ErrorCode]] = {
        "address": ErrorCode.INVALID_ADDRESS
    }

    commitment: Commitment = "confirmed"
    include_tokens: bool = False
    encoding: Literal["base58", "base64", "jsonParsed"] = "base58"


class AddressTransactionsParams(AddressPathMixin, ExplorerParams):
    PATH_FIELDS: ClassVar[Dict[str, ErrorCode]] = {
        "address": ErrorCode.INVALID_ADDRESS
    }

    limit: int = Field(default=50, ge=1, le=1000)
    before: Optional[str] = None
    until: Optional[str] = None
    commitment: Commitment = "confirmed"
    filter: Literal["all", "sent", "received", "program"] = "all"
    program: Optional[str] = None

    @model_validator(mode="after")
    def _program_filter(self) -> "AddressTransactionsParams":
        if self.filter == "program" and not self.program:
            raise ValueError("program is required when filter=program")
        return self


class AddressTokensParams(AddressPathMixin, ExplorerParams):
    PATH_FIELDS: ClassVar[Dict[str, ErrorCode]] = {
        "address": ErrorCode.INVALID_ADDRESS
    }

    include_nfts: bool = Field(default=False, alias="includeNFTs")
    include_zero_balance: bool = False
    include_prices: bool = True
    sort_by: Literal["balance", "value", "name"] = "value"
    sort_order: SortOrder = "desc"
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class AddressNftsParams(AddressPathMixin, ExplorerParams):
    PATH_FIELDS: ClassVar[Dict[str, ErrorCode]] = {
        "address": ErrorCode.INVALID_ADDRESS
    }

    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
    include_metadata: bool = True
    include_floor_price: bool = True
    sort_by: Literal["name", "collection", "rarity", "floorPrice"] = "name"
    filter_by: Optional[str] = None


class AddressUpdatesParams(AddressPathMixin, ExplorerParams):
    PATH_FIELDS: ClassVar[Dict[str, ErrorCode]] = {
        "address": ErrorCode.INVALID_ADDRESS
    }

    since: Optional[datetime] = None
    include_tokens: bool = True

    @field_validator("since")
    @classmethod
    def _since_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


# ==================== TOKENS ====================


class TokenParams(ExplorerParams):
    PATH_FIELDS: ClassVar[Dict[str, ErrorCode]] = {
        "mint": ErrorCode.INVALID_PARAMETERS
    }

    mint: str
    include_holders: bool = False
    include_history: bool = True
    timeframe: Literal["24h", "7d", "30d"] = "7d"

    @field_validator("mint")
    @classmethod
    def _mint_present(cls, value: str) -> str:
        return _require_text(value, "Token mint address")


# ==================== UPDATES ====================


class LatestUpdatesParams(ExplorerParams):
    since: Optional[datetime] = None
    types: List[str] = Field(default_factory=lambda: list(UPDATE_TYPES))
    limit: int = Field(default=50, ge=1, le=100)

    @field_validator("since")
    @classmethod
    def _since_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @field_validator("types", mode="before")
    @classmethod
    def _split_types(cls, value: Any) -> Any:
        if isinstance(value, str):
            if value.strip() in ("", "all"):
                return list(UPDATE_TYPES)
            value = [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("types")
    @classmethod
    def _known_types(cls, value: List[str]) -> List[str]:
        unknown = [t for t in value if t not in UPDATE_TYPES]
        if unknown:
            raise ValueError(f"Unsupported update types: {', '.join(unknown)}")
        return value


# ==================== ANALYTICS ====================

ChartTimeframe = Literal["1h", "6h", "24h", "7d", "30d"]
Granularity = Literal["minute", "hour", "day"]


class AnalyticsOverviewParams(ExplorerParams):
    timeframe: Literal["1h", "24h", "7d", "30d", "90d"] = "24h"
    include_history: bool = True


class TpsChartParams(ExplorerParams):
    timeframe: ChartTimeframe = "24h"
    granularity: Optional[Granularity] = None
    include_average: bool = True


class FeesChartParams(ExplorerParams):
    timeframe: ChartTimeframe = "24h"
    granularity: Optional[Granularity] = None
    metric: Literal["total", "average", "median"] = "total"


class ValidatorsChartParams(ExplorerParams):
    timeframe: Literal["24h", "7d", "30d", "90d"] = "24h"
    metric: Literal["count", "stake", "performance"] = "count"


class ProgramAnalyticsParams(ExplorerParams):
    timeframe: Literal["24h", "7d", "30d"] = "24h"
    category: Literal["defi", "nft", "gaming", "infrastructure", "all"] = "all"
    sort_by: Literal["transactions", "users", "fees", "volume"] = "transactions"
    limit: int = Field(default=50, ge=1, le=200)


class DefiAnalyticsParams(ExplorerParams):
    timeframe: Literal["24h", "7d", "30d"] = "24h"
    protocol: Optional[str] = None
    include_historical: bool = True


# ==================== VALIDATION ====================


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating raw request values against a schema"""

    ok: bool
    data: Optional[ExplorerParams] = None
    issues: List[Dict[str, str]] = field(default_factory=list)

    def error_code(self, schema: Type[ExplorerParams]) -> ErrorCode:
        """Path-specific code when a path field failed, else INVALID_PARAMETERS"""
        by_alias = {
            (schema.model_fields[name].alias or name): code
            for name, code in schema.PATH_FIELDS.items()
        }
        for issue in self.issues:
            code = by_alias.get(issue["field"])
            if code is not None:
                return code
        return ErrorCode.INVALID_PARAMETERS


def _issue(error: Dict[str, Any]) -> Dict[str, str]:
    location = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
    return {
        "field": location,
        "constraint": error.get("type", "invalid"),
        "message": error.get("msg", "Invalid value"),
    }


def validate(schema: Type[ExplorerParams], raw: Mapping[str, Any]) -> ValidationResult:
    """
    Validate raw path and query values.

    Empty strings are treated as absent so defaults apply, matching how
    browsers submit blank form fields.
    """
    cleaned = {
        key: value
        for key, value in raw.items()
        if not (isinstance(value, str) and value == "")
    }
    try:
        data = schema.model_validate(cleaned)
    except ValidationError as e:
        return ValidationResult(ok=False, issues=[_issue(err) for err in e.errors()])
    return ValidationResult(ok=True, data=data)
