"""Giveaway eligibility tests."""

from datetime import timedelta
from decimal import Decimal

import pytest

from streamcore.giveaways.eligibility import EligibilityEvaluator
from streamcore.giveaways.models import (
    DiscordRequirement,
    Giveaway,
    LinkedAccountRequirement,
    RequirementType,
    VipRequirement,
    WagerRequirement,
    effective_requirements,
    parse_requirement,
    requirement_to_row,
)
from streamcore.giveaways.service import GiveawayService
from streamcore.services.audit import Actor
from streamcore.utils.errors import (
    DuplicateEntryError,
    EntryLimitReachedError,
    EventEndedError,
    RequirementNotMetError,
)


async def new_giveaway(service, admin, clock, **kwargs):
    kwargs.setdefault("ends_at", clock.now + timedelta(days=1))
    view = await service.create_giveaway(admin, "Weekly", "$500", **kwargs)
    return view.giveaway.id


class TestCheckOrder:
    @pytest.mark.asyncio
    async def test_open_giveaway_without_requirements(self, giveaway_service, admin, clock):
        giveaway_id = await new_giveaway(giveaway_service, admin, clock)

        result = await giveaway_service.can_enter(giveaway_id, "user-1")
        assert result.eligible
        assert result.reason is None

    @pytest.mark.asyncio
    async def test_ended_checked_first(self, giveaway_service, admin, clock):
        giveaway_id = await new_giveaway(giveaway_service, admin, clock, max_entries=1)
        await giveaway_service.enter(Actor.user("u1"), giveaway_id)
        await giveaway_service.set_requirements(admin, giveaway_id, [VipRequirement()])
        clock.advance(days=2)

        result = await giveaway_service.can_enter(giveaway_id, "u1")
        assert isinstance(result.reason, EventEndedError)

    @pytest.mark.asyncio
    async def test_ends_at_is_exclusive(self, giveaway_service, admin, clock):
        giveaway_id = await new_giveaway(
            giveaway_service, admin, clock, ends_at=clock.now + timedelta(minutes=5)
        )
        clock.advance(minutes=5)

        result = await giveaway_service.can_enter(giveaway_id, "u1")
        assert isinstance(result.reason, EventEndedError)

    @pytest.mark.asyncio
    async def test_duplicate_before_limit(self, giveaway_service, admin, clock):
        giveaway_id = await new_giveaway(giveaway_service, admin, clock, max_entries=1)
        await giveaway_service.enter(Actor.user("u1"), giveaway_id)

        duplicate = await giveaway_service.can_enter(giveaway_id, "u1")
        full = await giveaway_service.can_enter(giveaway_id, "u2")
        assert isinstance(duplicate.reason, DuplicateEntryError)
        assert isinstance(full.reason, EntryLimitReachedError)

    @pytest.mark.asyncio
    async def test_limit_before_requirements(self, giveaway_service, admin, clock, identity):
        giveaway_id = await new_giveaway(
            giveaway_service,
            admin,
            clock,
            max_entries=1,
            requirements=[LinkedAccountRequirement(casino_id=3)],
        )
        identity.link("u1", 3)
        await giveaway_service.enter(Actor.user("u1"), giveaway_id)

        result = await giveaway_service.can_enter(giveaway_id, "u2")
        assert isinstance(result.reason, EntryLimitReachedError)

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, giveaway_service, admin, clock):
        giveaway_id = await new_giveaway(giveaway_service, admin, clock)
        await giveaway_service.can_enter(giveaway_id, "u1")

        view = await giveaway_service.get_giveaway_state(giveaway_id)
        assert view.entry_count == 0


class TestRequirements:
    @pytest.mark.asyncio
    async def test_discord_passes_for_authenticated_user(self, giveaway_service, admin, clock):
        giveaway_id = await new_giveaway(
            giveaway_service, admin, clock, requirements=[DiscordRequirement()]
        )
        assert (await giveaway_service.can_enter(giveaway_id, "u1")).eligible

    @pytest.mark.asyncio
    async def test_linked_account_needed(self, giveaway_service, admin, clock, identity):
        giveaway_id = await new_giveaway(
            giveaway_service, admin, clock, requirements=[LinkedAccountRequirement(casino_id=7)]
        )
        identity.link("linked", 7)
        identity.link("elsewhere", 8)

        assert (await giveaway_service.can_enter(giveaway_id, "linked")).eligible
        result = await giveaway_service.can_enter(giveaway_id, "elsewhere")
        assert isinstance(result.reason, RequirementNotMetError)
        assert result.reason.requirement_type == "linked_account"

    @pytest.mark.asyncio
    async def test_any_casino_account(self, giveaway_service, admin, clock, identity):
        giveaway_id = await new_giveaway(
            giveaway_service, admin, clock, requirements=[LinkedAccountRequirement()]
        )
        identity.link("u1", 42)

        assert (await giveaway_service.can_enter(giveaway_id, "u1")).eligible
        assert not (await giveaway_service.can_enter(giveaway_id, "u2")).eligible

    @pytest.mark.asyncio
    async def test_verified_account_required(self, giveaway_service, admin, clock, identity):
        giveaway_id = await new_giveaway(
            giveaway_service,
            admin,
            clock,
            requirements=[LinkedAccountRequirement(casino_id=7, require_verified=True)],
        )
        identity.link("unverified", 7, verified=False)
        identity.link("verified", 7, verified=True)

        assert not (await giveaway_service.can_enter(giveaway_id, "unverified")).eligible
        assert (await giveaway_service.can_enter(giveaway_id, "verified")).eligible

    @pytest.mark.asyncio
    async def test_casino_giveaway_implies_linked_account(
        self, giveaway_service, admin, clock, identity
    ):
        giveaway_id = await new_giveaway(giveaway_service, admin, clock, casino_id=5)
        identity.link("member", 5)

        result = await giveaway_service.can_enter(giveaway_id, "stranger")
        assert isinstance(result.reason, RequirementNotMetError)
        assert (await giveaway_service.can_enter(giveaway_id, "member")).eligible

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "requirement",
        [WagerRequirement(min_wager=Decimal("1000")), VipRequirement(tier="gold")],
    )
    async def test_unverifiable_requirements_fail(
        self, giveaway_service, admin, clock, identity, requirement
    ):
        giveaway_id = await new_giveaway(
            giveaway_service, admin, clock, requirements=[requirement]
        )
        identity.link("u1", 1, verified=True)

        result = await giveaway_service.can_enter(giveaway_id, "u1")
        assert result.reason.requirement_type == requirement.type.value

    @pytest.mark.asyncio
    async def test_registered_checker_is_used(self, repository, identity, admin, clock):
        wagers = {"whale": Decimal("5000"), "minnow": Decimal("20")}

        async def check_wager(requirement, user_id, accounts):
            return wagers.get(user_id, Decimal("0")) >= requirement.min_wager

        evaluator = EligibilityEvaluator(identity)
        evaluator.register(RequirementType.WAGER, check_wager)
        service = GiveawayService(repository, evaluator, clock=clock)
        giveaway_id = await new_giveaway(
            service, admin, clock, requirements=[WagerRequirement(min_wager=Decimal("1000"))]
        )

        assert (await service.can_enter(giveaway_id, "whale")).eligible
        assert not (await service.can_enter(giveaway_id, "minnow")).eligible

    @pytest.mark.asyncio
    async def test_all_requirements_must_pass(self, giveaway_service, admin, clock, identity):
        giveaway_id = await new_giveaway(
            giveaway_service,
            admin,
            clock,
            requirements=[DiscordRequirement(), LinkedAccountRequirement(casino_id=2), VipRequirement()],
        )
        identity.link("u1", 2)

        result = await giveaway_service.can_enter(giveaway_id, "u1")
        assert result.reason.requirement_type == "vip"


class TestParsing:
    @pytest.mark.parametrize("value", ["verified", "TRUE", "1", "yes"])
    def test_verified_values(self, value):
        requirement = parse_requirement("linked_account", 4, value)
        assert requirement.require_verified is True
        assert requirement.casino_id == 4

    def test_plain_linked_account(self):
        assert parse_requirement("linked_account").require_verified is False

    def test_wager_threshold(self):
        requirement = parse_requirement("WAGER", 1, "250.50")
        assert requirement.min_wager == Decimal("250.50")
        assert requirement_to_row(requirement) == ("wager", 1, "250.50")

    @pytest.mark.parametrize("value", ["lots", "-5"])
    def test_bad_wager_rejected(self, value):
        with pytest.raises(ValueError):
            parse_requirement("wager", None, value)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            parse_requirement("followers", None, "100")

    def test_vip_tier(self):
        assert parse_requirement("vip", None, "gold").tier == "gold"


class TestEffectiveRequirements:
    def test_explicit_requirement_not_duplicated(self):
        giveaway = Giveaway(title="t", prize="p", ends_at=None, casino_id=9)
        explicit = LinkedAccountRequirement(casino_id=9, require_verified=True)

        assert effective_requirements(giveaway, [explicit]) == [explicit]

    def test_implicit_requirement_added(self):
        giveaway = Giveaway(title="t", prize="p", ends_at=None, casino_id=9)
        (requirement,) = effective_requirements(giveaway, [])

        assert requirement.implicit
        assert requirement.casino_id == 9
