"""Competition price refresh.

Refreshes every portfolio stock of a competition from the price source, at
most once per PRICE_REFRESH_TTL_SECONDS per competition. Runs inline in the
detail request; there is no background scheduler.

Usage:
    from stockpicker.services.price_refresh import get_refresh_orchestrator

    result = await get_refresh_orchestrator().refresh_if_stale(competition_id)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional

from stockpicker.cache.ttl import TTLCache
from stockpicker.core.config import settings
from stockpicker.core.logging import get_logger
from stockpicker.domain.valuation import aggregate_percent_change, stock_percent_change
from stockpicker.repositories import participants_orm as participants_repo
from stockpicker.repositories import price_history_orm as price_history_repo
from stockpicker.services.data_providers.price_source import PriceSource


logger = get_logger("services.price_refresh")


@dataclass
class RefreshResult:
    """Outcome of one refresh attempt."""

    competition_id: str
    refreshed: bool
    stocks_updated: int = 0
    stocks_failed: int = 0
    participants_updated: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PriceRefreshOrchestrator:
    """
    Per-competition staleness check plus refresh.

    The staleness cache maps competition id -> last refresh and is owned by
    this instance. A failed price lookup leaves that stock as it was; the
    refresh as a whole never fails on a single ticker.
    """

    def __init__(self, price_source: PriceSource, cache: Optional[TTLCache] = None):
        self.price_source = price_source
        self.cache = cache if cache is not None else TTLCache(
            settings.price_refresh_ttl_seconds, name="competition_refresh"
        )

    def is_stale(self, competition_id: str) -> bool:
        return not self.cache.is_fresh(competition_id)

    def last_refresh(self, competition_id: str) -> Optional[float]:
        """Clock reading of the last refresh, None if never refreshed."""
        return self.cache.stored_at(competition_id)

    async def refresh_if_stale(
        self,
        competition_id: str,
        *,
        force: bool = False,
    ) -> RefreshResult:
        """Refresh when the TTL has elapsed (or when forced)."""
        if not force and not self.is_stale(competition_id):
            logger.debug(f"Prices fresh for competition {competition_id}, skipping refresh")
            return RefreshResult(competition_id=competition_id, refreshed=False)
        return await self.refresh(competition_id)

    async def _refresh_stock(self, stock: dict[str, Any]) -> bool:
        price = await self.price_source.get_current_price(stock["ticker"])
        if price is None:
            return False

        baseline = stock.get("baseline_price")
        if baseline is None:
            # First observation becomes the baseline
            await participants_repo.update_stock_prices(
                stock["id"],
                current_price=price,
                percent_change=0.0,
                baseline_price=price,
            )
        else:
            await participants_repo.update_stock_prices(
                stock["id"],
                current_price=price,
                percent_change=stock_percent_change(baseline, price),
            )

        await price_history_repo.add_sample(stock["ticker"], price)
        return True

    async def refresh(self, competition_id: str) -> RefreshResult:
        """Refresh every stock in the competition and recompute aggregates."""
        result = RefreshResult(competition_id=competition_id, refreshed=True)
        stocks = await participants_repo.list_competition_stocks(competition_id)
        affected: set[str] = set()

        for stock in stocks:
            try:
                updated = await self._refresh_stock(stock)
            except Exception as e:
                logger.warning(f"Price refresh failed for {stock['ticker']}: {e}")
                updated = False

            if updated:
                result.stocks_updated += 1
                affected.add(stock["participant_id"])
            else:
                result.stocks_failed += 1

        for participant_id in sorted(affected):
            try:
                portfolio = await participants_repo.list_portfolio(participant_id)
                change = aggregate_percent_change(portfolio)
                await participants_repo.update_participant(
                    participant_id,
                    percent_change=change,
                    clear_percent_change=change is None,
                )
                result.participants_updated += 1
            except Exception as e:
                logger.warning(f"Aggregate recompute failed for participant {participant_id}: {e}")

        # Recorded even when every lookup failed
        self.cache.set(competition_id, self.cache.now())

        logger.info(
            f"Refreshed competition {competition_id}: "
            f"{result.stocks_updated} updated, {result.stocks_failed} failed",
            extra=result.to_dict(),
        )
        return result


# Singleton instance
_instance: Optional[PriceRefreshOrchestrator] = None


def get_refresh_orchestrator() -> PriceRefreshOrchestrator:
    """Get singleton PriceRefreshOrchestrator bound to the Yahoo price source."""
    global _instance
    if _instance is None:
        from stockpicker.services.data_providers import get_price_source

        _instance = PriceRefreshOrchestrator(get_price_source())
    return _instance
