"""Read-only method catalogue for the contracts the aggregator queries."""

from poolview.codec.methods import ContractMethod

# ERC20 / smart token
SYMBOL = ContractMethod("symbol", (), ("string",))
DECIMALS = ContractMethod("decimals", (), ("uint8",))
TOTAL_SUPPLY = ContractMethod("totalSupply", (), ("uint256",))

# Pool token container (anchor of a weighted pool)
POOL_TOKENS = ContractMethod("poolTokens", (), ("address[]",))

# Converter, all versions
OWNER = ContractMethod("owner", (), ("address",))
VERSION = ContractMethod("version", (), ("uint16",))
CONVERTER_TYPE = ContractMethod("converterType", (), ("uint16",))
CONNECTOR_TOKEN_COUNT = ContractMethod("connectorTokenCount", (), ("uint16",))
CONNECTOR_TOKENS = ContractMethod("connectorTokens", ("uint256",), ("address",))
CONVERSION_FEE = ContractMethod("conversionFee", (), ("uint32",))
ANCHOR = ContractMethod("anchor", (), ("address",))
GET_CONNECTOR_BALANCE = ContractMethod("getConnectorBalance", ("address",), ("uint256",))

# Weighted (v2) converter
PRIMARY_RESERVE_TOKEN = ContractMethod("primaryReserveToken", (), ("address",))
SECONDARY_RESERVE_TOKEN = ContractMethod("secondaryReserveToken", (), ("address",))
POOL_TOKEN = ContractMethod("poolToken", ("address",), ("address",))
RESERVE_STAKED_BALANCE = ContractMethod("reserveStakedBalance", ("address",), ("uint256",))
EFFECTIVE_RESERVE_WEIGHTS = ContractMethod("effectiveReserveWeights", (), ("uint256", "uint256"))
MAX_STAKED_BALANCE_ENABLED = ContractMethod("maxStakedBalanceEnabled", (), ("bool",))
MAX_STAKED_BALANCES = ContractMethod("maxStakedBalances", ("address",), ("uint256",))
REMOVE_LIQUIDITY_RETURN_AND_FEE = ContractMethod(
    "removeLiquidityReturnAndFee", ("address", "uint256"), ("uint256", "uint256")
)
LIQUIDATION_LIMIT = ContractMethod("liquidationLimit", ("address",), ("uint256",))

# Contract registry
ADDRESS_OF = ContractMethod("addressOf", ("bytes32",), ("address",))

# Converter registry
GET_ANCHORS = ContractMethod("getAnchors", (), ("address[]",))
GET_CONVERTERS_BY_ANCHORS = ContractMethod("getConvertersByAnchors", ("address[]",), ("address[]",))
GET_CONVERTIBLE_TOKEN_ANCHORS = ContractMethod(
    "getConvertibleTokenAnchors", ("address",), ("address[]",)
)
