"""poolview - read-side aggregator for on-chain liquidity pools."""

from poolview.service import PoolService, build_service, get_default_service

__version__ = "0.1.0"
__all__ = ["PoolService", "build_service", "get_default_service", "__version__"]
