"""API endpoints for the pool query surface."""

from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from poolview.errors import (
    AggregationError,
    DiscoveryError,
    QuoteError,
    UnknownPoolError,
    UnknownReserveError,
)
from poolview.models.views import (
    DepositQuoteView,
    FeedView,
    LoadResultView,
    PoolView,
    SwapQuoteView,
    WithdrawQuoteView,
)
from poolview.service import PoolService, get_default_service

logger = structlog.get_logger()

router = APIRouter()


def get_service() -> PoolService:
    """Dependency provider for the pool service.

    Override this in tests to inject a service over a mock endpoint:
        app.dependency_overrides[get_service] = lambda: service

    Returns:
        The service instance to query.
    """
    return get_default_service()


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map service errors to HTTP errors.

    - Unknown pool or reserve: 404
    - Other quote precondition failures: 422 with the specific message
    - Chain reads exhausted or registry unreadable: 503
    """
    try:
        yield
    except (UnknownPoolError, UnknownReserveError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except QuoteError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except (AggregationError, DiscoveryError) as e:
        logger.error("chain_unavailable", error=str(e))
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.get("/pools", response_model_exclude_none=True)
async def list_pools(service: PoolService = Depends(get_service)) -> list[PoolView]:
    """List every loaded pool."""
    with translate_errors():
        await service.ensure_initialised()
    return [PoolView.from_model(pool) for pool in service.list_pools()]


@router.get("/pools/{pool_id}/feeds/{token_id}", response_model_exclude_none=True)
async def get_feed(
    pool_id: str,
    token_id: str,
    service: PoolService = Depends(get_service),
) -> FeedView:
    """Feed for one reserve of a loaded pool; 404 when the pool has no feed for it."""
    with translate_errors():
        await service.ensure_initialised()
        feed = service.get_feed(pool_id, token_id)
    if feed is None:
        raise HTTPException(status_code=404, detail=f"No feed for {token_id} in pool {pool_id}")
    return FeedView.from_model(feed)


@router.get("/quotes/deposit", response_model_exclude_none=True)
async def quote_deposit(
    pool_id: str = Query(alias="poolId"),
    reserve_id: str = Query(alias="reserveId"),
    amount: Decimal = Query(gt=0),
    service: PoolService = Depends(get_service),
) -> DepositQuoteView:
    with translate_errors():
        await service.ensure_initialised()
        quote = await service.quote_deposit(pool_id, reserve_id, amount)
    return DepositQuoteView.from_model(quote)


@router.get("/quotes/withdraw", response_model_exclude_none=True)
async def quote_withdraw(
    pool_id: str = Query(alias="poolId"),
    reserve_id: str = Query(alias="reserveId"),
    amount: Decimal = Query(gt=0),
    service: PoolService = Depends(get_service),
) -> WithdrawQuoteView:
    with translate_errors():
        await service.ensure_initialised()
        quote = await service.quote_withdraw(pool_id, reserve_id, amount)
    return WithdrawQuoteView.from_model(quote)


@router.get("/quotes/swap", response_model_exclude_none=True)
async def quote_swap(
    from_id: str = Query(alias="fromId"),
    to_id: str = Query(alias="toId"),
    amount: Decimal = Query(gt=0),
    service: PoolService = Depends(get_service),
) -> SwapQuoteView:
    with translate_errors():
        await service.ensure_initialised()
        quote = await service.quote_swap(from_id, to_id, amount)
    return SwapQuoteView.from_model(quote)


@router.post("/pools/load-more")
async def load_more_pools(service: PoolService = Depends(get_service)) -> LoadResultView:
    """Assemble every discovered pool not yet loaded."""
    with translate_errors():
        await service.ensure_initialised()
        outcome = await service.load_more_pools()
    logger.info("load_more_served", loaded=len(outcome.pools), failed=len(outcome.failed))
    return LoadResultView(
        loaded=[pool.id for pool in outcome.pools],
        failed=outcome.failed,
        total_pools=service.registry.pool_count,
    )


@router.post("/pools/containing/{token_id}")
async def load_pools_containing(
    token_id: str,
    service: PoolService = Depends(get_service),
) -> LoadResultView:
    """Assemble every pool holding a token."""
    with translate_errors():
        await service.ensure_initialised()
        pools = await service.load_pools_containing(token_id)
    return LoadResultView(
        loaded=[pool.id for pool in pools],
        total_pools=service.registry.pool_count,
    )
