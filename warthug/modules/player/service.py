"""
Player Service
==============

Purpose
-------
Registration and whole-player views: status (with lazy settlement), points
summary, and the read model used by the engine facade.

Domain
------
- Register a player with starter state and cloned card sections
- Attribute a referrer once at registration and fan the referral out to the
  referrer (direct) and the referrer's own referrer (indirect)
- Settle lazy time-based effects on a status check and persist them

Design Notes
------------
- Registration is one transaction: the new row, the referrer's direct edge
  and the second-level indirect edge commit together or not at all. A
  version conflict on either ancestor retries the whole registration.
- Registration credits no referral points; referral payouts are explicit
  claims (see ReferralService).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from warthug.domain.models.card import Card
from warthug.domain.models.player import Player
from warthug.modules.shared.base_service import BaseService
from warthug.modules.shared.exceptions import NotFoundError, ValidationError
from warthug.modules.shared.validators import InputValidator

if TYPE_CHECKING:
    from datetime import datetime
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.domain.models.base import DomainEvent
    from warthug.modules.catalog.repository import CatalogRepository
    from warthug.modules.player.runner import PlayerOperationRunner
    from warthug.modules.shared.base_service import Clock


USER_ID_MAX_LENGTH = 128
USERNAME_MAX_LENGTH = 100


class PlayerService(BaseService):
    """
    Registration, status and points views.

    Public Methods
    --------------
    - register_player() -> Create a player, attribute referrer, fan out
    - get_status() -> Settle lazy effects, persist, return summary
    - get_points_info() -> Read-only balances and conversion summary
    - get_player() -> Read-only domain snapshot
    """

    def __init__(
        self,
        runner: PlayerOperationRunner,
        catalog: CatalogRepository,
        config: Any,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config, event_bus, logger, clock)
        self._runner = runner
        self._players = runner.players
        self._catalog = catalog

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    async def _starting_cards(self, session: AsyncSession) -> Dict[str, Dict[str, Card]]:
        templates = await self._catalog.get_card_templates(session)
        return {
            section: {template.key: Card.from_template(template) for template in items}
            for section, items in templates.items()
        }

    async def register_player(
        self,
        user_id: str,
        username: str,
        referral_code: Optional[str] = None,
        is_verified: bool = False,
    ) -> Dict[str, Any]:
        """
        Register a new player.

        Args:
            user_id: Opaque external id
            username: Unique display name, also the player's referral code
            referral_code: Referrer's username, if any
            is_verified: Whether the external identity is verified

        Returns:
            The new player's status summary

        Raises:
            ValidationError: Empty or duplicate user id / username
            NotFoundError: referral_code names no player
            InvalidOperationError: Self-referral
        """
        user_id = InputValidator.validate_string(user_id, "user_id", max_length=USER_ID_MAX_LENGTH)
        username = InputValidator.validate_string(
            username, "username", max_length=USERNAME_MAX_LENGTH
        )
        if referral_code is not None and not str(referral_code).strip():
            referral_code = None
        now = self.now()

        self.log_operation(
            "register_player",
            user_id=user_id,
            username=username,
            referral_code=referral_code,
        )

        async def register(session: AsyncSession, events: List[DomainEvent]) -> Player:
            if await self._players.user_id_taken(session, user_id):
                raise ValidationError("user_id", f"User {user_id} is already registered")
            if await self._players.username_taken(session, username):
                raise ValidationError("username", f"Username {username} is already taken")

            player = Player.create(
                user_id,
                username,
                now,
                is_verified=bool(is_verified),
                starting_tap_points=int(self.get_config("STARTER_TAP_POINTS", 0)),
                cards=await self._starting_cards(session),
            )

            referrer: Optional[Player] = None
            if referral_code is not None:
                player.attribute_referrer(str(referral_code).strip())
                referrer = await self._players.load_by_username(
                    session, player.referral, for_update=True
                )

            try:
                await self._players.insert(session, player)
            except IntegrityError as exc:
                # Lost a race with a concurrent registration of the same identity
                raise ValidationError(
                    "username", "User id or username is already registered"
                ) from exc
            events.extend(player.clear_domain_events())

            if referrer is not None:
                await self._attribute_referral_chain(session, player, referrer, now, events)
            return player

        player = await self._runner.transact("player.register", register, user_id=user_id)

        self.log.info(
            "Player registered",
            extra={"user_id": user_id, "username": username, "referrer": player.referral},
        )
        return player.status_summary(now)

    async def _attribute_referral_chain(
        self,
        session: AsyncSession,
        player: Player,
        referrer: Player,
        now: datetime,
        events: List[DomainEvent],
    ) -> None:
        """Record the direct edge on the referrer and the indirect edge one level up."""
        referrer.add_direct_referral(player.username, player.user_id, player.is_verified, now)
        await self._players.save(session, referrer)
        events.extend(referrer.clear_domain_events())

        if referrer.referral is None:
            return

        try:
            grandparent = await self._players.load_by_username(
                session, referrer.referral, for_update=True
            )
        except NotFoundError:
            self.log.warning(
                "Second-level referrer no longer exists",
                extra={"user_id": player.user_id, "referrer": referrer.username},
            )
            return

        grandparent.add_indirect_referral(
            player.username, player.user_id, referrer.username, player.is_verified, now
        )
        await self._players.save(session, grandparent)
        events.extend(grandparent.clear_domain_events())

    # ========================================================================
    # VIEWS
    # ========================================================================

    async def get_status(self, user_id: str) -> Dict[str, Any]:
        """
        Settle auto-mine and energy, stamp activity, persist, and summarise.

        Pending auto-mine points are reported, not claimed.
        """
        now = self.now()
        self.log_operation("get_status", user_id=user_id)

        def settle(_session: AsyncSession, player: Player) -> Dict[str, Any]:
            player.process_auto_mine(now)
            player.settle_energy(now)
            player.touch(now)
            return player.status_summary(now)

        return await self._runner.run(user_id, "player.status", settle)

    async def get_points_info(self, user_id: str) -> Dict[str, Any]:
        now = self.now()
        return await self._runner.read(user_id, lambda player: player.points_info(now))

    async def get_player(self, user_id: str) -> Player:
        return await self._runner.read(user_id, lambda player: player)
