"""Giveaway entry gates.

Checks run in a fixed order and stop at the first failure:

1. giveaway inactive or past ends_at    -> EventEndedError
2. user already entered                 -> DuplicateEntryError
3. max_entries reached                  -> EntryLimitReachedError
4. every requirement (logical AND)      -> RequirementNotMetError(type)

Wager and VIP requirements cannot be evaluated from the data this service
holds, so they fail unless a checker is registered for them.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Optional

from streamcore.giveaways.models import (
    DiscordRequirement,
    EligibilityResult,
    Giveaway,
    GiveawayRequirement,
    LinkedAccountRequirement,
    LinkedCasinoAccount,
    RequirementType,
)
from streamcore.logging_config import get_logger
from streamcore.repositories.base import IdentityProvider, UnitOfWork
from streamcore.utils.errors import (
    DuplicateEntryError,
    EntryLimitReachedError,
    EventEndedError,
    RequirementNotMetError,
)

logger = get_logger(__name__)

# (requirement, user_id, linked accounts) -> satisfied?
RequirementChecker = Callable[
    [GiveawayRequirement, str, list[LinkedCasinoAccount]],
    Awaitable[bool],
]


async def check_discord(
    requirement: DiscordRequirement,
    user_id: str,
    accounts: list[LinkedCasinoAccount],
) -> bool:
    # Entry requires an authenticated caller
    return bool(user_id)


async def check_linked_account(
    requirement: LinkedAccountRequirement,
    user_id: str,
    accounts: list[LinkedCasinoAccount],
) -> bool:
    for account in accounts:
        if requirement.casino_id is not None and account.casino_id != requirement.casino_id:
            continue
        if requirement.require_verified and not account.verified:
            continue
        return True
    return False


async def reject_unsupported(
    requirement: GiveawayRequirement,
    user_id: str,
    accounts: list[LinkedCasinoAccount],
) -> bool:
    return False


DEFAULT_CHECKERS: dict[RequirementType, RequirementChecker] = {
    RequirementType.DISCORD: check_discord,
    RequirementType.LINKED_ACCOUNT: check_linked_account,
    RequirementType.WAGER: reject_unsupported,
    RequirementType.VIP: reject_unsupported,
}


class EligibilityEvaluator:
    """Decides whether a user may enter a giveaway."""

    def __init__(
        self,
        identity: IdentityProvider,
        checkers: Optional[dict[RequirementType, RequirementChecker]] = None,
    ):
        self.identity = identity
        self._checkers = dict(DEFAULT_CHECKERS)
        if checkers:
            self._checkers.update(checkers)

    def register(self, requirement_type: RequirementType, checker: RequirementChecker) -> None:
        """Plug in an evaluator for a requirement type (e.g. wager from a casino API)."""
        self._checkers[requirement_type] = checker
        logger.info("requirement_checker_registered", requirement_type=requirement_type.value)

    async def can_enter(
        self,
        uow: UnitOfWork,
        giveaway: Giveaway,
        requirements: list[GiveawayRequirement],
        user_id: str,
        now: datetime,
    ) -> EligibilityResult:
        """
        Evaluate every gate for ``user_id``.

        ``requirements`` must already include the implicit casino
        requirement (see ``effective_requirements``).
        """
        if not giveaway.is_active or giveaway.has_ended(now):
            return EligibilityResult.rejected(EventEndedError(giveaway.id))

        if await uow.has_giveaway_entry(giveaway.id, user_id):
            return EligibilityResult.rejected(
                DuplicateEntryError("giveaway", giveaway.id, user_id)
            )

        if giveaway.max_entries is not None:
            count = await uow.count_giveaway_entries(giveaway.id)
            if count >= giveaway.max_entries:
                return EligibilityResult.rejected(
                    EntryLimitReachedError(giveaway.id, giveaway.max_entries)
                )

        failure = await self.check_requirements(requirements, user_id)
        if failure is not None:
            return EligibilityResult.rejected(failure)

        return EligibilityResult.ok()

    async def check_requirements(
        self,
        requirements: list[GiveawayRequirement],
        user_id: str,
    ) -> Optional[RequirementNotMetError]:
        """First unmet requirement as an error, or None if all pass."""
        accounts: Optional[list[LinkedCasinoAccount]] = None

        for requirement in requirements:
            if accounts is None and requirement.type != RequirementType.DISCORD:
                accounts = await self.identity.linked_accounts(user_id)

            checker = self._checkers.get(requirement.type, reject_unsupported)
            if not await checker(requirement, user_id, accounts or []):
                return RequirementNotMetError(
                    requirement.type.value,
                    details={"casinoId": requirement.casino_id, "value": requirement.value},
                )
        return None
