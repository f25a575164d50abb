"""
Economy Engine
==============

Purpose
-------
Single entry point for the clicker economy. Wires the stores, the per-player
operation runner and every subsystem service, and exposes one coroutine per
engine action so a transport layer (HTTP handlers, bot commands, jobs) never
touches services or sessions directly.

Lifecycle
---------
    engine = EconomyEngine()
    await engine.start()          # config validation, database, schema
    await engine.register_player("u-1", "alice")
    await engine.tap("u-1")
    await engine.stop()

Design Notes
------------
- Constructor injection only: config, event bus and clock can be swapped
  (tests pass a fixed clock and their own bus).
- Every write goes through PlayerOperationRunner; every service shares the
  same runner, stores and event bus.
- No business logic here; each action delegates to exactly one service.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from warthug.core.config.config import Config
from warthug.core.database.service import DatabaseService
from warthug.core.event.bus import EventBus
from warthug.core.logging.logger import get_logger
from warthug.modules.cards import CardService
from warthug.modules.catalog import CatalogRepository, CatalogService
from warthug.modules.currency import CurrencyService
from warthug.modules.energy import EnergyService
from warthug.modules.leaderboard import LeaderboardService
from warthug.modules.player import PlayerOperationRunner, PlayerRepository, PlayerService
from warthug.modules.referral import ReferralService
from warthug.modules.rewards import RewardsService
from warthug.modules.tasks import TaskService
from warthug.modules.votes import VoteService

if TYPE_CHECKING:
    from warthug.domain.models.player import Player
    from warthug.modules.shared.base_service import Clock

logger = get_logger(__name__)


class EconomyEngine:
    """
    Facade over every economy subsystem.

    Usage:
        engine = EconomyEngine(clock=lambda: fixed_now)
        await engine.start(create_schema=True)
        status = await engine.get_status("u-1")
    """

    def __init__(
        self,
        config: Any = Config,
        event_bus: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config
        self.event_bus = event_bus or EventBus()
        self._clock = clock
        self._started = False

        self.players = PlayerRepository(logger=get_logger("warthug.modules.player.repository"))
        self.catalog = CatalogRepository(logger=get_logger("warthug.modules.catalog.repository"))
        self.runner = PlayerOperationRunner(
            self.players,
            self.event_bus,
            logger=get_logger("warthug.modules.player.runner"),
        )

        self.player_service = self._create_service(PlayerService, catalog=self.catalog)
        self.energy_service = self._create_service(EnergyService)
        self.currency_service = self._create_service(CurrencyService)
        self.card_service = self._create_service(CardService)
        self.leaderboard_service = LeaderboardService(
            self.players,
            config,
            self.event_bus,
            get_logger("warthug.modules.leaderboard.service"),
            clock,
        )
        self.rewards_service = self._create_service(
            RewardsService, leaderboard=self.leaderboard_service
        )
        self.referral_service = self._create_service(ReferralService)
        self.task_service = self._create_service(TaskService, catalog=self.catalog)
        self.vote_service = self._create_service(VoteService, catalog=self.catalog)
        self.catalog_service = self._create_service(CatalogService, catalog=self.catalog)

    def _create_service(self, service_class: type, **dependencies: Any) -> Any:
        return service_class(
            self.runner,
            *dependencies.values(),
            config=self.config,
            event_bus=self.event_bus,
            logger=get_logger(f"{service_class.__module__}.{service_class.__name__}"),
            clock=self._clock,
        )

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def start(self, create_schema: bool = True) -> None:
        """Validate config, initialise the database and (optionally) the schema."""
        if self._started:
            logger.warning("EconomyEngine already started")
            return

        start = time.perf_counter()
        try:
            self.config.validate()
            await DatabaseService.initialize()
            if create_schema:
                await DatabaseService.create_schema()
        except Exception as exc:
            logger.critical(f"Economy engine startup failed: {exc}", exc_info=True)
            raise

        self._started = True
        logger.info(
            "Economy engine started",
            extra={"startup_ms": round((time.perf_counter() - start) * 1000, 2)},
        )

    async def stop(self) -> None:
        if not self._started:
            return
        try:
            await DatabaseService.shutdown()
        except Exception as exc:
            logger.error(f"Database shutdown error: {exc}", exc_info=True)
            raise
        finally:
            self.event_bus.clear()
            self._started = False
        logger.info("Economy engine stopped")

    async def health_check(self) -> bool:
        return await DatabaseService.health_check()

    # ========================================================================
    # PLAYER
    # ========================================================================

    async def register_player(
        self,
        user_id: str,
        username: str,
        referral_code: Optional[str] = None,
        is_verified: bool = False,
    ) -> Dict[str, Any]:
        return await self.player_service.register_player(
            user_id, username, referral_code=referral_code, is_verified=is_verified
        )

    async def get_status(self, user_id: str) -> Dict[str, Any]:
        return await self.player_service.get_status(user_id)

    async def get_points_info(self, user_id: str) -> Dict[str, Any]:
        return await self.player_service.get_points_info(user_id)

    async def get_player(self, user_id: str) -> Player:
        return await self.player_service.get_player(user_id)

    # ========================================================================
    # ENERGY & UPGRADES
    # ========================================================================

    async def tap(self, user_id: str) -> Dict[str, Any]:
        return await self.energy_service.tap(user_id)

    async def refill_energy(self, user_id: str) -> Dict[str, Any]:
        return await self.energy_service.refill_energy(user_id)

    async def upgrade_tap_power(self, user_id: str) -> Dict[str, Any]:
        return await self.energy_service.upgrade_tap_power(user_id)

    async def upgrade_energy_limit(self, user_id: str) -> Dict[str, Any]:
        return await self.energy_service.upgrade_energy_limit(user_id)

    async def get_energy(self, user_id: str) -> Dict[str, Any]:
        return await self.energy_service.get_energy(user_id)

    # ========================================================================
    # CURRENCY
    # ========================================================================

    async def award_hourly_points(self, user_id: str) -> Dict[str, Any]:
        return await self.currency_service.award_hourly_points(user_id)

    async def convert_to_hug_points(self, user_id: str, amount: Any) -> Dict[str, Any]:
        return await self.currency_service.convert_to_hug_points(user_id, amount)

    # ========================================================================
    # CARDS
    # ========================================================================

    async def upgrade_card(self, user_id: str, section: str, card_name: str) -> Dict[str, Any]:
        return await self.card_service.upgrade_card(user_id, section, card_name)

    async def get_card_info(self, user_id: str, section: str, card_name: str) -> Dict[str, Any]:
        return await self.card_service.get_card_info(user_id, section, card_name)

    async def list_cards(self, user_id: str, section: Optional[str] = None) -> Dict[str, Any]:
        return await self.card_service.list_cards(user_id, section)

    # ========================================================================
    # REWARDS
    # ========================================================================

    async def process_daily_claim(self, user_id: str) -> Dict[str, Any]:
        return await self.rewards_service.process_daily_claim(user_id)

    async def get_daily_claim_info(self, user_id: str) -> Dict[str, Any]:
        return await self.rewards_service.get_daily_claim_info(user_id)

    async def start_auto_mine(
        self, user_id: str, duration_ms: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self.rewards_service.start_auto_mine(user_id, duration_ms)

    async def process_auto_mine(self, user_id: str) -> Dict[str, Any]:
        return await self.rewards_service.process_auto_mine(user_id)

    async def claim_auto_mine_rewards(self, user_id: str) -> Dict[str, Any]:
        return await self.rewards_service.claim_auto_mine_rewards(user_id)

    async def get_auto_mine_status(self, user_id: str) -> Dict[str, Any]:
        return await self.rewards_service.get_auto_mine_status(user_id)

    async def claim_starter_bonus(self, user_id: str) -> Dict[str, Any]:
        return await self.rewards_service.claim_starter_bonus(user_id)

    async def get_starter_bonus_status(self, user_id: str) -> Dict[str, Any]:
        return await self.rewards_service.get_starter_bonus_status(user_id)

    async def claim_referral_rank_reward(self, user_id: str) -> Dict[str, Any]:
        return await self.rewards_service.claim_referral_rank_reward(user_id)

    async def get_referral_rank_status(self, user_id: str) -> Dict[str, Any]:
        return await self.rewards_service.get_referral_rank_status(user_id)

    # ========================================================================
    # REFERRALS
    # ========================================================================

    async def claim_referral_reward(self, user_id: str, referral_user_id: str) -> Dict[str, Any]:
        return await self.referral_service.claim_referral_reward(user_id, referral_user_id)

    async def get_pending_referral_rewards(self, user_id: str) -> Dict[str, Any]:
        return await self.referral_service.get_pending_referral_rewards(user_id)

    async def get_referral_details(self, user_id: str) -> Dict[str, Any]:
        return await self.referral_service.get_referral_details(user_id)

    # ========================================================================
    # TASKS
    # ========================================================================

    async def list_tasks(self, user_id: str) -> List[Dict[str, Any]]:
        return await self.task_service.list_tasks_for_player(user_id)

    async def complete_task(self, user_id: str, task_id: int) -> Dict[str, Any]:
        return await self.task_service.complete_task(user_id, task_id)

    async def list_completed_tasks(
        self, user_id: str, page: int = 1, limit: int = 10
    ) -> Dict[str, Any]:
        return await self.task_service.list_completed_tasks(user_id, page, limit)

    async def get_task(self, task_id: int) -> Dict[str, Any]:
        return await self.task_service.get_task(task_id)

    # ========================================================================
    # VOTES
    # ========================================================================

    async def list_active_vote_events(self) -> List[Dict[str, Any]]:
        return await self.vote_service.list_active_vote_events()

    async def cast_vote(
        self, user_id: str, vote_event_id: int, choice_index: int
    ) -> Dict[str, Any]:
        return await self.vote_service.cast_vote(user_id, vote_event_id, choice_index)

    async def get_vote_results(self, vote_event_id: int) -> Dict[str, Any]:
        return await self.vote_service.get_vote_results(vote_event_id)

    # ========================================================================
    # LEADERBOARD
    # ========================================================================

    async def get_leaderboard(
        self,
        board_type: str = "points",
        limit: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.leaderboard_service.get_leaderboard(board_type, limit, user_id)

    # ========================================================================
    # CATALOG ADMINISTRATION
    # ========================================================================

    async def create_card(self, section: str, card_data: Mapping[str, Any]) -> Dict[str, Any]:
        return await self.catalog_service.create_card(section, card_data)

    async def get_card_templates(self) -> Dict[str, List[Dict[str, Any]]]:
        return await self.catalog_service.get_card_templates()

    async def create_task(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        return await self.catalog_service.create_task(data)

    async def create_vote_event(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        return await self.catalog_service.create_vote_event(data)
