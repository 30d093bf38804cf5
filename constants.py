#!/usr/bin/env python3
from typing import Dict, List

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- API Configuration ---
COINGECKO_API_BASE_URL = 'https://api.coingecko.com/api/v3'
FEAR_GREED_API_URL = 'https://api.alternative.me/fng/'
BLOCKCHAIN_INFO_HASHRATE_URL = 'https://blockchain.info/q/hashrate'
HTTP_USER_AGENT = 'MeshBitcoinBot/1.0'

# --- Environment Variable Names ---
COINGECKO_API_KEY_ENV_VAR = 'COINGECKO_API_KEY'
PORT_ENV_VAR = 'MESH_BOT_PORT'

# --- Tracked Asset ---
PRICE_ASSET_ID = 'bitcoin'
PRICE_CURRENCY = 'eur'

# --- Transport Limits ---
MESSAGE_MAX_BYTES = 155  # single-packet MeshCore channel payload
SEND_COOLDOWN_SECONDS = 30.0
MESHCORE_BAUDRATE = 115200
MESHCORE_MAX_CHANNELS = 8

# --- Scheduler ---
ALARM_POLL_INTERVAL_SECONDS = 30.0

# --- Retry Defaults ---
RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_DELAY = 10.0
RETRY_MAX_DELAY = 120.0
RETRY_TIMEOUT = 30.0
RETRY_JITTER_RATIO = 0.2

# --- Aave v3 (Ethereum mainnet) ---
RAY = 10 ** 27

AAVE_TOKEN_ADDRESSES: Dict[str, str] = {
    'usdc': '0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48',
    'eurc': '0x1aBaEA1f7C830bD89Acc67eC4af516284b1bC33c',
}

_RESERVE_DATA_OUTPUTS: List[tuple] = [
    ('configuration', 'uint256'),
    ('liquidityIndex', 'uint128'),
    ('currentLiquidityRate', 'uint128'),
    ('variableBorrowIndex', 'uint128'),
    ('currentVariableBorrowRate', 'uint128'),
    ('currentStableBorrowRate', 'uint128'),
    ('lastUpdateTimestamp', 'uint40'),
    ('id', 'uint16'),
    ('aTokenAddress', 'address'),
    ('stableDebtTokenAddress', 'address'),
    ('variableDebtTokenAddress', 'address'),
    ('interestRateStrategyAddress', 'address'),
    ('accruedToTreasury', 'uint128'),
    ('unbacked', 'uint128'),
    ('isolationModeTotalDebt', 'uint128'),
]

AAVE_POOL_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "asset", "type": "address"}],
        "name": "getReserveData",
        "outputs": [
            {"internalType": abi_type, "name": name, "type": abi_type}
            for name, abi_type in _RESERVE_DATA_OUTPUTS
        ],
        "stateMutability": "view",
        "type": "function",
    }
]

VARIABLE_BORROW_RATE_INDEX = 4

# --- Persistence ---
DEFAULT_PRICE_FILE = 'data/bitcoin_price.json'
DEFAULT_CONFIG_FILE = 'config.json'
