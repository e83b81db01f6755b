"""
Solana Explorer - API Gateway
Validated, cached and normalized access to Solana JSON-RPC for mainnet and devnet
"""

import json
import logging
import time

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_sock import Sock
from flasgger import Swagger
from simple_websocket import ConnectionClosed
from werkzeug.exceptions import HTTPException

from analytics import RpcAnalyticsProvider
from cache import CachePolicies, create_cache
from config import config
from network import NetworkSelector
from pipeline import Endpoint, Pipeline
from providers import Providers
from rate_limiting import RateLimiter, create_rate_limit_middleware
from responses import ErrorCode, ExplorerError, error_body, error_response, success_response
from rpc_client import SolanaRpcClient
from schemas import (
    AddressNftsParams,
    AddressParams,
    AddressTokensParams,
    AddressTransactionsParams,
    AddressUpdatesParams,
    AnalyticsOverviewParams,
    BlockParams,
    BlockTransactionsParams,
    DefiAnalyticsParams,
    FeesChartParams,
    LatestUpdatesParams,
    NetworkSelectParams,
    NetworkStatsParams,
    ProgramAnalyticsParams,
    SearchParams,
    TokenParams,
    TpsChartParams,
    TransactionParams,
    ValidatorsChartParams,
    validate,
)
from search_api import ExplorerSearch
from solana_service import SolanaDataService

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

app = Flask(__name__)
CORS(app, origins=config.CORS_ORIGINS, methods=["GET", "POST", "OPTIONS"])
sock = Sock(app)

# ==================== SWAGGER CONFIGURATION ====================

swagger_config = {
    "headers": [],
    "specs": [
        {
            "endpoint": 'apispec',
            "route": '/apispec.json',
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/api/docs"
}

swagger_template = {
    "info": {
        "title": "Solana Explorer API",
        "description": "Blocks, transactions, addresses, tokens and analytics for Solana mainnet and devnet",
        "version": API_VERSION,
    },
    "basePath": "/",
    "schemes": ["https", "http"],
    "tags": [
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Network", "description": "Network selection and statistics"},
        {"name": "Search", "description": "Search and discovery endpoints"},
        {"name": "Transactions", "description": "Transaction endpoints"},
        {"name": "Blocks", "description": "Block data endpoints"},
        {"name": "Addresses", "description": "Account/address endpoints"},
        {"name": "Tokens", "description": "SPL token endpoints"},
        {"name": "Updates", "description": "Polling endpoints for recent activity"},
        {"name": "Analytics", "description": "Analytics and statistics endpoints"},
    ]
}

swagger = Swagger(app, config=swagger_config, template=swagger_template)

# Initialize components
cache = create_cache()
selector = NetworkSelector(config.networks(), cache=cache, default=config.DEFAULT_NETWORK)
rpc_client = SolanaRpcClient(timeout=config.RPC_TIMEOUT, max_retries=config.RPC_MAX_RETRIES)
data_service = SolanaDataService(rpc_client, Providers(), max_workers=config.RPC_FANOUT_WORKERS)
search_engine = ExplorerSearch(data_service)
analytics = RpcAnalyticsProvider(data_service)
pipeline = Pipeline(cache, selector)

rate_limiter = RateLimiter.from_config(config)
create_rate_limit_middleware(app, rate_limiter, enabled=config.RATE_LIMIT_ENABLED)


def _transaction_policy(params, data):
    if data.get("confirmationStatus") == "finalized":
        return CachePolicies.FINALIZED
    return CachePolicies.TRANSACTIONS


def _block_policy(params, data):
    if params.commitment == "finalized":
        return CachePolicies.FINALIZED
    return CachePolicies.BLOCKS


ENDPOINTS = {
    "network_stats": Endpoint(
        "network_stats", NetworkStatsParams, data_service.network_stats, CachePolicies.NETWORK_STATS
    ),
    "search": Endpoint("search", SearchParams, search_engine.search, CachePolicies.SEARCH),
    "transaction": Endpoint(
        "transaction", TransactionParams, data_service.transaction, _transaction_policy
    ),
    "block": Endpoint("block", BlockParams, data_service.block, _block_policy),
    "block_transactions": Endpoint(
        "block_transactions", BlockTransactionsParams, data_service.block_transactions,
        CachePolicies.BLOCKS,
    ),
    "address": Endpoint("address", AddressParams, data_service.address, CachePolicies.TRANSACTIONS),
    "address_transactions": Endpoint(
        "address_transactions", AddressTransactionsParams, data_service.address_transactions,
        CachePolicies.TRANSACTIONS,
    ),
    "address_tokens": Endpoint(
        "address_tokens", AddressTokensParams, data_service.address_tokens,
        CachePolicies.TOKEN_BALANCES,
    ),
    "address_nfts": Endpoint(
        "address_nfts", AddressNftsParams, data_service.address_nfts, CachePolicies.ADDRESS_NFTS
    ),
    "address_updates": Endpoint(
        "address_updates", AddressUpdatesParams, data_service.address_updates,
        CachePolicies.REAL_TIME_UPDATES,
    ),
    "token": Endpoint("token", TokenParams, data_service.token, CachePolicies.TOKEN_DETAILS),
    "latest_updates": Endpoint(
        "latest_updates", LatestUpdatesParams, data_service.latest_updates,
        CachePolicies.REAL_TIME_UPDATES,
    ),
    "analytics_overview": Endpoint(
        "analytics_overview", AnalyticsOverviewParams, analytics.overview,
        CachePolicies.ANALYTICS_OVERVIEW,
    ),
    "analytics_tps": Endpoint(
        "analytics_tps", TpsChartParams, analytics.tps_chart, CachePolicies.ANALYTICS_CHARTS
    ),
    "analytics_fees": Endpoint(
        "analytics_fees", FeesChartParams, analytics.fees_chart, CachePolicies.ANALYTICS_CHARTS
    ),
    "analytics_validators": Endpoint(
        "analytics_validators", ValidatorsChartParams, analytics.validators_chart,
        CachePolicies.ANALYTICS_CHARTS,
    ),
    "analytics_programs": Endpoint(
        "analytics_programs", ProgramAnalyticsParams, analytics.programs,
        CachePolicies.ANALYTICS_PROGRAMS,
    ),
    "analytics_defi": Endpoint(
        "analytics_defi", DefiAnalyticsParams, analytics.defi, CachePolicies.ANALYTICS_PROGRAMS
    ),
}


def _serve(name: str, network: str, **path):
    """Run a named endpoint with the query string plus path values"""
    raw = request.args.to_dict()
    raw.update(path)
    return pipeline.execute(ENDPOINTS[name], network, raw)


# ==================== NETWORK ENDPOINTS ====================

@app.route("/api/v1/network", methods=["GET"])
def get_network():
    """
    Get the selected network
    ---
    tags:
      - Network
    responses:
      200:
        description: Current and available networks
        schema:
          type: object
          properties:
            success:
              type: boolean
            data:
              type: object
              properties:
                network:
                  type: string
                  description: Selected network (mainnet or devnet)
                available:
                  type: array
                  items:
                    type: string
    """
    return success_response({
        "network": selector.get_current_network(),
        "available": selector.available,
    })


@app.route("/api/v1/network", methods=["POST"])
def set_network():
    """
    Switch the selected network
    Switching clears every cache tier.
    ---
    tags:
      - Network
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            network:
              type: string
              enum: [mainnet, devnet]
    responses:
      200:
        description: Network selected
      400:
        description: Unknown network or malformed body
    """
    body = request.get_json(silent=True) or {}
    result = validate(NetworkSelectParams, body)
    if not result.ok:
        return error_response(
            ExplorerError(ErrorCode.INVALID_PARAMETERS, "Invalid network selection", result.issues)
        )

    previous = selector.get_current_network()
    try:
        changed = selector.set_network(result.data.network)
    except ExplorerError as e:
        return error_response(e)

    return success_response({
        "network": result.data.network,
        "previous": previous,
        "changed": changed,
        "cacheCleared": changed,
        "available": selector.available,
    })


@app.route("/api/v1/<network>/network/stats", methods=["GET"])
def network_stats(network):
    """
    Get network statistics
    ---
    tags:
      - Network
    parameters:
      - name: network
        in: path
        type: string
        required: true
        enum: [mainnet, devnet]
    responses:
      200:
        description: Slot, epoch, TPS, validator counts, supply and health
        schema:
          type: object
          properties:
            data:
              type: object
              properties:
                currentSlot:
                  type: integer
                epochInfo:
                  type: object
                performance:
                  type: object
                  description: tps, avgTps1m, avgTps5m
                validators:
                  type: object
                supply:
                  type: object
                  description: Supply in SOL
                health:
                  type: string
                  description: healthy, warning or critical
      404:
        description: Unknown network
      503:
        description: Upstream RPC unavailable
    """
    return _serve("network_stats", network)


# ==================== SEARCH ENDPOINTS ====================

@app.route("/api/v1/<network>/search", methods=["GET"])
def search(network):
    """
    Search by slot, transaction signature or address
    ---
    tags:
      - Search
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: q
        in: query
        type: string
        required: true
        description: Slot number, base58 signature or base58 address
      - name: type
        in: query
        type: string
        enum: [auto, transaction, block, address]
        default: auto
    responses:
      200:
        description: Matches with suggestions when nothing matched
      400:
        description: Invalid query
      404:
        description: Explicitly typed lookup found nothing
    """
    return _serve("search", network)


# ==================== TRANSACTION ENDPOINTS ====================

@app.route("/api/v1/<network>/transactions/<signature>", methods=["GET"])
def transaction(network, signature):
    """
    Get transaction details
    ---
    tags:
      - Transactions
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: signature
        in: path
        type: string
        required: true
        description: Base58 transaction signature
      - name: commitment
        in: query
        type: string
        enum: [processed, confirmed, finalized]
        default: confirmed
      - name: maxSupportedTransactionVersion
        in: query
        type: integer
        default: 0
    responses:
      200:
        description: Normalized transaction with account keys, instructions, balance changes and logs
      400:
        description: Malformed signature
      404:
        description: Transaction not found
    """
    return _serve("transaction", network, signature=signature)


# ==================== BLOCK ENDPOINTS ====================

@app.route("/api/v1/<network>/blocks/<slot>", methods=["GET"])
def block(network, slot):
    """
    Get block by slot
    ---
    tags:
      - Blocks
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: slot
        in: path
        type: integer
        required: true
      - name: commitment
        in: query
        type: string
        enum: [confirmed, finalized]
        default: confirmed
      - name: transactionDetails
        in: query
        type: string
        enum: [full, signatures, none]
        default: signatures
      - name: rewards
        in: query
        type: boolean
        default: true
    responses:
      200:
        description: Block with metrics and previous/next slot navigation
      400:
        description: Invalid slot
      404:
        description: Block not found or slot skipped
    """
    return _serve("block", network, slot=slot)


@app.route("/api/v1/<network>/blocks/<slot>/transactions", methods=["GET"])
def block_transactions(network, slot):
    """
    Get a page of a block's transactions
    ---
    tags:
      - Blocks
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: slot
        in: path
        type: integer
        required: true
      - name: limit
        in: query
        type: integer
        default: 100
      - name: offset
        in: query
        type: integer
        default: 0
      - name: status
        in: query
        type: string
        enum: [all, success, failed]
        default: all
      - name: sortBy
        in: query
        type: string
        enum: [index, fee, compute]
        default: index
      - name: sortOrder
        in: query
        type: string
        enum: [asc, desc]
        default: asc
      - name: includeDetails
        in: query
        type: boolean
        default: false
    responses:
      200:
        description: Filtered, sorted transaction page with block metrics
      404:
        description: Block not found
    """
    return _serve("block_transactions", network, slot=slot)


# ==================== ADDRESS ENDPOINTS ====================

@app.route("/api/v1/<network>/addresses/<address>", methods=["GET"])
def address(network, address):
    """
    Get account details
    ---
    tags:
      - Addresses
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: address
        in: path
        type: string
        required: true
        description: Base58 address, 32-44 characters
      - name: commitment
        in: query
        type: string
        default: confirmed
      - name: includeTokens
        in: query
        type: boolean
        default: false
      - name: encoding
        in: query
        type: string
        enum: [base58, base64, jsonParsed]
        default: base58
    responses:
      200:
        description: Balance, account info, type, tokens and activity summary
      400:
        description: Invalid address
    """
    return _serve("address", network, address=address)


@app.route("/api/v1/<network>/addresses/<address>/transactions", methods=["GET"])
def address_transactions(network, address):
    """
    Get transaction history for an address
    ---
    tags:
      - Addresses
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: address
        in: path
        type: string
        required: true
      - name: limit
        in: query
        type: integer
        default: 50
      - name: before
        in: query
        type: string
        description: Cursor, signature to page backwards from
      - name: until
        in: query
        type: string
      - name: filter
        in: query
        type: string
        enum: [all, sent, received, program]
        default: all
      - name: program
        in: query
        type: string
        description: Program id, required when filter=program
    responses:
      200:
        description: Cursor-paginated history with summary
      413:
        description: Address history too large for the upstream node
    """
    return _serve("address_transactions", network, address=address)


@app.route("/api/v1/<network>/addresses/<address>/tokens", methods=["GET"])
def address_tokens(network, address):
    """
    Get SPL token holdings
    ---
    tags:
      - Addresses
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: address
        in: path
        type: string
        required: true
      - name: includeNFTs
        in: query
        type: boolean
        default: false
      - name: includeZeroBalance
        in: query
        type: boolean
        default: false
      - name: includePrices
        in: query
        type: boolean
        default: true
      - name: sortBy
        in: query
        type: string
        enum: [balance, value, name]
        default: value
      - name: sortOrder
        in: query
        type: string
        enum: [asc, desc]
        default: desc
      - name: limit
        in: query
        type: integer
        default: 100
      - name: offset
        in: query
        type: integer
        default: 0
    responses:
      200:
        description: Fungible tokens, NFTs, pagination and portfolio summary
    """
    return _serve("address_tokens", network, address=address)


@app.route("/api/v1/<network>/addresses/<address>/nfts", methods=["GET"])
def address_nfts(network, address):
    """
    Get NFT holdings
    ---
    tags:
      - Addresses
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: address
        in: path
        type: string
        required: true
      - name: limit
        in: query
        type: integer
        default: 100
      - name: offset
        in: query
        type: integer
        default: 0
      - name: includeMetadata
        in: query
        type: boolean
        default: true
      - name: includeFloorPrice
        in: query
        type: boolean
        default: true
      - name: sortBy
        in: query
        type: string
        enum: [name, collection, rarity, floorPrice]
        default: name
      - name: filterBy
        in: query
        type: string
    responses:
      200:
        description: NFT page with collection summary
    """
    return _serve("address_nfts", network, address=address)


@app.route("/api/v1/<network>/addresses/<address>/updates", methods=["GET"])
def address_updates(network, address):
    """
    Poll recent activity for an address
    ---
    tags:
      - Updates
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: address
        in: path
        type: string
        required: true
      - name: since
        in: query
        type: string
        format: date-time
      - name: includeTokens
        in: query
        type: boolean
        default: true
    responses:
      200:
        description: Current balance and balance-changing transactions
    """
    return _serve("address_updates", network, address=address)


# ==================== TOKEN ENDPOINTS ====================

@app.route("/api/v1/<network>/tokens/<mint>", methods=["GET"])
def token(network, mint):
    """
    Get token mint details
    ---
    tags:
      - Tokens
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: mint
        in: path
        type: string
        required: true
      - name: includeHolders
        in: query
        type: boolean
        default: false
      - name: includeHistory
        in: query
        type: boolean
        default: true
      - name: timeframe
        in: query
        type: string
        enum: [24h, 7d, 30d]
        default: 7d
    responses:
      200:
        description: Supply, authorities, provider metadata and market data
      404:
        description: Token mint not found
    """
    return _serve("token", network, mint=mint)


# ==================== UPDATES ENDPOINTS ====================

@app.route("/api/v1/<network>/updates/latest", methods=["GET"])
def latest_updates(network):
    """
    Poll recent blocks, transactions and network state
    ---
    tags:
      - Updates
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: since
        in: query
        type: string
        format: date-time
      - name: types
        in: query
        type: string
        description: all, or a comma list of blocks, transactions, network
        default: all
      - name: limit
        in: query
        type: integer
        default: 50
    responses:
      200:
        description: Updates sorted newest first
    """
    return _serve("latest_updates", network)


@sock.route("/api/v1/<network>/ws/updates")
def websocket_updates(ws, network):
    """WebSocket endpoint pushing the latest-updates snapshot"""
    try:
        ctx = selector.context_for(network)
    except ExplorerError as e:
        ws.send(json.dumps(error_body(e)))
        ws.close()
        return

    params = LatestUpdatesParams()
    logger.info(f"WebSocket client connected on {network}")
    try:
        while True:
            try:
                snapshot = data_service.latest_updates(ctx, params)
                ws.send(json.dumps({"type": "updates", "network": network, "data": snapshot}))
            except ExplorerError as e:
                ws.send(json.dumps(error_body(e)))
            except Exception as e:
                logger.error(f"WebSocket update failed on {network}: {e}")
                ws.send(json.dumps(error_body(ExplorerError(ErrorCode.RPC_ERROR, "Update failed"))))

            # Heartbeats arrive between pushes
            message = ws.receive(timeout=config.WS_PUSH_INTERVAL)
            if message == "ping":
                ws.send("pong")
    except ConnectionClosed as e:
        logger.debug(f"WebSocket closed on {network}: {e}")
    finally:
        logger.info(f"WebSocket client disconnected from {network}")


# ==================== ANALYTICS ENDPOINTS ====================

@app.route("/api/v1/<network>/analytics/overview", methods=["GET"])
def analytics_overview(network):
    """
    Network analytics overview
    ---
    tags:
      - Analytics
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: timeframe
        in: query
        type: string
        enum: [1h, 24h, 7d, 30d, 90d]
        default: 24h
      - name: includeHistory
        in: query
        type: boolean
        default: true
    responses:
      200:
        description: Performance, block, transaction and validator rollups with coverage
    """
    return _serve("analytics_overview", network)


@app.route("/api/v1/<network>/analytics/charts/tps", methods=["GET"])
def analytics_tps(network):
    """
    TPS chart
    ---
    tags:
      - Analytics
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: timeframe
        in: query
        type: string
        enum: [1h, 6h, 24h, 7d, 30d]
        default: 24h
      - name: granularity
        in: query
        type: string
        enum: [minute, hour, day]
      - name: includeAverage
        in: query
        type: boolean
        default: true
    responses:
      200:
        description: TPS data points, statistics and trend
    """
    return _serve("analytics_tps", network)


@app.route("/api/v1/<network>/analytics/charts/fees", methods=["GET"])
def analytics_fees(network):
    """
    Prioritization fee chart
    ---
    tags:
      - Analytics
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: timeframe
        in: query
        type: string
        enum: [1h, 6h, 24h, 7d, 30d]
        default: 24h
      - name: metric
        in: query
        type: string
        enum: [total, average, median]
        default: total
    responses:
      200:
        description: Per-slot prioritization fees and statistics
    """
    return _serve("analytics_fees", network)


@app.route("/api/v1/<network>/analytics/charts/validators", methods=["GET"])
def analytics_validators(network):
    """
    Validator chart
    ---
    tags:
      - Analytics
    parameters:
      - name: network
        in: path
        type: string
        required: true
      - name: timeframe
        in: query
        type: string
        enum: [24h, 7d, 30d, 90d]
        default: 24h
      - name: metric
        in: query
        type: string
        enum: [count, stake, performance]
        default: count
    responses:
      200:
        description: Top validators and stake decentralization
    """
    return _serve("analytics_validators", network)


@app.route("/api/v1/<network>/analytics/programs", methods=["GET"])
def analytics_programs(network):
    """
    Program analytics
    ---
    tags:
      - Analytics
    parameters:
      - name: network
        in: path
        type: string
        required: true
    responses:
      503:
        description: No program analytics source configured
    """
    return _serve("analytics_programs", network)


@app.route("/api/v1/<network>/analytics/defi", methods=["GET"])
def analytics_defi(network):
    """
    DeFi analytics
    ---
    tags:
      - Analytics
    parameters:
      - name: network
        in: path
        type: string
        required: true
    responses:
      503:
        description: No DeFi data source configured
    """
    return _serve("analytics_defi", network)


# ==================== ERROR HANDLERS ====================

@app.errorhandler(404)
def not_found(e):
    return error_response(ExplorerError(ErrorCode.NOT_FOUND, f"Route not found: {request.path}"))


@app.errorhandler(405)
def method_not_allowed(e):
    return error_response(
        ExplorerError(ErrorCode.METHOD_NOT_ALLOWED, f"Method {request.method} not allowed")
    )


@app.errorhandler(Exception)
def unhandled(e):
    if isinstance(e, HTTPException) and e.code and e.code < 500:
        code = ErrorCode.PAYLOAD_TOO_LARGE if e.code == 413 else ErrorCode.INVALID_PARAMETERS
        return error_response(ExplorerError(code, e.description or e.name), status=e.code)
    return error_response(e)


# ==================== HEALTH CHECK ====================

@app.route("/health", methods=["GET"])
def health_check():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: Health status
        schema:
          type: object
          properties:
            status:
              type: string
            network:
              type: string
              description: Selected network
            networks:
              type: array
              items:
                type: string
            cache:
              type: object
            timestamp:
              type: number
    """
    stats = cache.get_stats()
    return jsonify({
        "status": "healthy",
        "version": API_VERSION,
        "network": selector.get_current_network(),
        "networks": selector.available,
        "cache": {
            "entries": stats["l1"].get("size", 0),
            "hitRate": stats["hit_rate"],
            "redis": stats["l2"].get("mode", "disabled"),
        },
        "timestamp": time.time()
    }), 200


# ==================== INFO ENDPOINT ====================

@app.route("/", methods=["GET"])
def index():
    """
    API info
    ---
    tags:
      - Health
    responses:
      200:
        description: Service name, version, networks and endpoint map
    """
    return jsonify({
        "name": "Solana Explorer API",
        "version": API_VERSION,
        "networks": selector.available,
        "endpoints": {
            "network": "/api/v1/network",
            "stats": "/api/v1/{network}/network/stats",
            "search": "/api/v1/{network}/search",
            "transactions": "/api/v1/{network}/transactions/{signature}",
            "blocks": "/api/v1/{network}/blocks/{slot}",
            "addresses": "/api/v1/{network}/addresses/{address}",
            "tokens": "/api/v1/{network}/tokens/{mint}",
            "updates": "/api/v1/{network}/updates/latest",
            "analytics": "/api/v1/{network}/analytics/*",
            "websocket": "/api/v1/{network}/ws/updates",
            "health": "/health",
            "swagger_docs": "/api/docs",
            "openapi_spec": "/apispec.json"
        },
        "timestamp": time.time()
    })


if __name__ == "__main__":
    logger.info("Starting Solana Explorer API")
    logger.info(f"Networks: {', '.join(selector.available)} (default {config.DEFAULT_NETWORK})")
    logger.info(f"Redis cache tier: {'enabled' if config.REDIS_URL else 'disabled'}")
    logger.info(f"Port: {config.EXPLORER_PORT}")

    app.run(
        host=config.EXPLORER_HOST,
        port=config.EXPLORER_PORT,
        debug=config.DEBUG,
        threaded=True
    )
