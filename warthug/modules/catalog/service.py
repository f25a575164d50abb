"""
Catalog Service
===============

Purpose
-------
Administrative writes to the catalog: card templates, tasks and vote events.

Domain
------
- A new card is stored as a template and then cloned into every existing
  player's collection; players registered later receive it from the template
- Card keys are derived from the name (lowercase, whitespace runs -> "_") and
  are unique per section
- Tasks and vote events are plain catalog rows consumed by TaskService and
  VoteService

Design Notes
------------
- The template insert and the card fan-out are one transaction: every
  player is locked, given the card and CAS-saved before the single commit.
  A player that already holds the key is left untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError

from warthug.core.database.service import DatabaseService
from warthug.database.models.catalog import CardTemplate, Task, VoteEvent
from warthug.domain.models.card import Card
from warthug.modules.shared.base_service import BaseService
from warthug.modules.shared.constants import CARD_SECTIONS, DEFAULT_VOTE_REWARD, TASK_TYPES
from warthug.modules.shared.exceptions import ValidationError
from warthug.modules.shared.formulas import normalize_card_key
from warthug.modules.shared.validators import InputValidator
from warthug.modules.tasks.service import task_to_dict
from warthug.modules.votes.service import vote_event_to_dict

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from warthug.core.event.bus import EventBus
    from warthug.domain.models.player import Player
    from warthug.modules.catalog.repository import CatalogRepository
    from warthug.modules.player.runner import PlayerOperationRunner
    from warthug.modules.shared.base_service import Clock


CARD_REQUIRED_FIELDS = (
    "name",
    "base_price",
    "price_increase_rate",
    "per_hour_increase",
    "per_hour_increase_rate",
    "base_cooldown",
    "cooldown_increase_rate",
    "required_level",
    "image_url",
)

TASK_REQUIRED_FIELDS = (
    "topic",
    "description",
    "type",
    "required_points",
    "reward_points",
    "link",
)


def _require(data: Mapping[str, Any], fields: tuple) -> None:
    missing = [name for name in fields if data.get(name) in (None, "")]
    if missing:
        raise ValidationError(missing[0], f"Missing required fields: {', '.join(missing)}")


class CatalogService(BaseService):
    """
    Public Methods
    --------------
    - create_card() -> New card template, fanned out to every player
    - create_task() -> New task
    - create_vote_event() -> New vote event
    - get_card_templates() -> Active templates by section
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
        self._catalog = catalog

    # ========================================================================
    # CARDS
    # ========================================================================

    @staticmethod
    def _validate_card(section: Any, data: Mapping[str, Any]) -> Dict[str, Any]:
        section = InputValidator.validate_choice(section, "section", CARD_SECTIONS)
        _require(data, CARD_REQUIRED_FIELDS)

        name = InputValidator.validate_string(data["name"], "name", max_length=128)
        return {
            "section": section,
            "key": normalize_card_key(name),
            "name": name,
            "base_price": InputValidator.validate_positive_integer(data["base_price"], "base_price"),
            "price_increase_rate": InputValidator.validate_rate(
                data["price_increase_rate"], "price_increase_rate"
            ),
            "per_hour_increase": InputValidator.validate_positive_integer(
                data["per_hour_increase"], "per_hour_increase"
            ),
            "per_hour_increase_rate": InputValidator.validate_rate(
                data["per_hour_increase_rate"], "per_hour_increase_rate"
            ),
            "base_cooldown": InputValidator.validate_positive_integer(
                data["base_cooldown"], "base_cooldown"
            ),
            "cooldown_increase_rate": InputValidator.validate_rate(
                data["cooldown_increase_rate"], "cooldown_increase_rate"
            ),
            "required_level": InputValidator.validate_non_negative_integer(
                data["required_level"], "required_level"
            ),
            "image_url": InputValidator.validate_image_url(data["image_url"], "image_url"),
        }

    async def create_card(self, section: str, card_data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Store a card template and add the card to every existing player.

        The template row and every player's copy commit together; if any
        player cannot be updated nothing is stored and the call may be
        repeated.

        Raises:
            ValidationError: Bad section, missing or malformed field, or a
                card with the same key already exists in the section
            VersionConflictError: A player kept changing under the fan-out
        """
        fields = self._validate_card(section, card_data)
        section = fields["section"]
        self.log_operation("create_card", section=section, key=fields["key"])

        created: Dict[str, Card] = {}

        async def store_template(session: AsyncSession) -> None:
            if await self._catalog.card_template_exists(session, section, fields["key"]):
                raise ValidationError(
                    "name", "A card with this name already exists in this section"
                )
            try:
                template = await self._catalog.add_card_template(session, CardTemplate(**fields))
            except IntegrityError as exc:
                raise ValidationError(
                    "name", "A card with this name already exists in this section"
                ) from exc
            created["card"] = Card.from_template(template)

        def add_to_player(_session: AsyncSession, player: Player) -> bool:
            return player.add_card(section, created["card"])

        players_updated = await self._runner.apply_to_all(
            "catalog.card_fanout", add_to_player, prepare=store_template
        )
        card = created["card"]

        await self.emit_event(
            "catalog.card_created",
            {"section": section, "key": card.key, "players_updated": players_updated},
        )
        return {
            "section": section,
            "card_key": card.key,
            "card": card.to_dict(),
            "players_updated": players_updated,
        }

    async def get_card_templates(self) -> Dict[str, List[Dict[str, Any]]]:
        async with DatabaseService.get_session() as session:
            grouped = await self._catalog.get_card_templates(session)
        return {
            section: [Card.from_template(template).to_dict() for template in templates]
            for section, templates in grouped.items()
        }

    # ========================================================================
    # TASKS
    # ========================================================================

    async def create_task(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: Missing required field or malformed value
        """
        _require(data, TASK_REQUIRED_FIELDS)

        fields: Dict[str, Any] = {
            "topic": InputValidator.validate_string(data["topic"], "topic", max_length=200),
            "description": InputValidator.validate_string(data["description"], "description"),
            "type": InputValidator.validate_choice(data["type"], "type", TASK_TYPES),
            "required_points": InputValidator.validate_non_negative_integer(
                data["required_points"], "required_points"
            ),
            "reward_points": InputValidator.validate_non_negative_integer(
                data["reward_points"], "reward_points"
            ),
            "link": InputValidator.validate_url(data["link"], "link"),
            "required_level": InputValidator.validate_non_negative_integer(
                data.get("required_level", 0), "required_level"
            ),
            "reward_hug_points": InputValidator.validate_decimal(
                data.get("reward_hug_points", 0), "reward_hug_points"
            ),
            "completion_delay": InputValidator.validate_non_negative_integer(
                data.get("completion_delay", 0), "completion_delay"
            ),
            "is_active": bool(data.get("is_active", True)),
            "is_repeatable": bool(data.get("is_repeatable", False)),
            "repeat_cooldown": InputValidator.validate_non_negative_integer(
                data.get("repeat_cooldown", 0), "repeat_cooldown"
            ),
        }
        if data.get("image_url"):
            fields["image_url"] = InputValidator.validate_url(data["image_url"], "image_url")
        if data.get("expires_at") is not None:
            fields["expires_at"] = InputValidator.validate_datetime(
                data["expires_at"], "expires_at"
            )

        self.log_operation("create_task", topic=fields["topic"], type=fields["type"])

        async with DatabaseService.get_transaction() as session:
            task = await self._catalog.add_task(session, Task(**fields))
            result = task_to_dict(task)

        await self.emit_event("catalog.task_created", {"task_id": result["id"]})
        return result

    # ========================================================================
    # VOTE EVENTS
    # ========================================================================

    async def create_vote_event(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: Missing title, no choices, malformed choice,
                bad end date or end date not after the start date
        """
        title = InputValidator.validate_string(data.get("title"), "title", max_length=200)
        description = InputValidator.validate_string(
            data.get("description", ""), "description", min_length=0
        )

        raw_choices = data.get("choices")
        if not isinstance(raw_choices, (list, tuple)) or not raw_choices:
            raise ValidationError("choices", "At least one choice is required")
        choices = []
        for index, choice in enumerate(raw_choices):
            if not isinstance(choice, Mapping):
                raise ValidationError(f"choices[{index}]", "Each choice must be an object")
            choices.append(
                {
                    "name": InputValidator.validate_string(
                        choice.get("name"), f"choices[{index}].name", max_length=200
                    ),
                    "description": str(choice.get("description") or ""),
                    "image_url": str(choice.get("image_url") or ""),
                }
            )

        start_date = (
            InputValidator.validate_datetime(data["start_date"], "start_date")
            if data.get("start_date") is not None
            else self.now()
        )
        end_date = InputValidator.validate_datetime(data.get("end_date"), "end_date")
        if end_date <= start_date:
            raise ValidationError("end_date", "End date must be after the start date")

        reward_amount = InputValidator.validate_positive_integer(
            data.get("reward_amount") or DEFAULT_VOTE_REWARD, "reward_amount"
        )

        self.log_operation("create_vote_event", title=title, choices=len(choices))

        async with DatabaseService.get_transaction() as session:
            event = await self._catalog.add_vote_event(
                session,
                VoteEvent(
                    title=title,
                    description=description,
                    choices=choices,
                    reward_amount=reward_amount,
                    start_date=start_date,
                    end_date=end_date,
                    is_active=bool(data.get("is_active", True)),
                ),
            )
            result = vote_event_to_dict(event)

        await self.emit_event("catalog.vote_event_created", {"vote_event_id": result["id"]})
        return result
