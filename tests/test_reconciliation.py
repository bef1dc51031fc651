import asyncio
from datetime import timedelta

import pytest

from conftest import GUILD_ID, MINT, OTHER_GUILD_ID, WALLET_A, WALLET_B, WALLET_C
from tokengate.database.models import STATUS_REJECTED, STATUS_REMOVED
from tokengate.services.reconciliation_service import ReconciliationService
from tokengate.utils.errors import EnforcementError, PersistenceError, ValidationError


@pytest.fixture
def service(store, oracle, notifier, enforcer):
    return ReconciliationService(store, oracle, notifier=notifier, enforcer=enforcer)


# --------------- Scheduled runs ---------------

@pytest.mark.asyncio
async def test_balances_map_to_tiers(service, store, oracle, enforcer, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A)
    store.add_member(2, GUILD_ID, WALLET_B)
    store.add_member(3, GUILD_ID, WALLET_C, status="Holder")
    oracle.balances = {WALLET_A: 150_000, WALLET_B: 50_000, WALLET_C: 5_000}

    summary = await service.run_reconciliation()

    assert store.status_of(1, GUILD_ID) == "Whale"
    assert store.status_of(2, GUILD_ID) == "Holder"
    assert store.status_of(3, GUILD_ID) == STATUS_REMOVED
    assert store.actions_for(1) == ["status_updated"]
    assert store.actions_for(3) == ["access_revoked"]
    enforcer.reset_membership.assert_awaited_once_with(GUILD_ID, 3)

    assert summary.members_checked == 3
    assert summary.status_updates == 2
    assert summary.revoked == 1
    assert summary.failures == 0
    assert service.last_summary is summary


@pytest.mark.asyncio
async def test_threshold_is_inclusive(service, store, oracle, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A)
    oracle.balances = {WALLET_A: 10_000}

    await service.run_reconciliation()

    assert store.status_of(1, GUILD_ID) == "Holder"


@pytest.mark.asyncio
async def test_unchanged_status_is_verified_without_notification(service, store, oracle, notifier, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A, status="Whale")
    oracle.balances = {WALLET_A: 120_000}

    summary = await service.run_reconciliation()

    assert store.actions_for(1) == ["verified"]
    assert store.log[0].balance == 120_000
    notifier.notify.assert_not_awaited()
    assert summary.status_updates == 0


@pytest.mark.asyncio
async def test_status_change_notifies_member(service, store, oracle, notifier, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A, status="Holder")
    oracle.balances = {WALLET_A: 200_000}

    await service.run_reconciliation()

    notifier.notify.assert_awaited_once()
    user_id, text = notifier.notify.await_args.args
    assert user_id == 1
    assert "Whale" in text


@pytest.mark.asyncio
async def test_failed_lookup_leaves_membership_unchanged(service, store, oracle, notifier, enforcer, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A, status="Holder")
    oracle.balances = {WALLET_A: "timeout"}

    summary = await service.run_reconciliation()

    assert store.status_of(1, GUILD_ID) == "Holder"
    assert len(store.log) == 1
    entry = store.log[0]
    assert entry.status == "error"
    assert entry.action == "balance_check_failed: timeout"
    assert entry.balance == 0
    enforcer.reset_membership.assert_not_awaited()
    notifier.notify.assert_not_awaited()
    assert summary.failures == 1


@pytest.mark.asyncio
async def test_revocation_repeats_while_balance_stays_low(service, store, oracle, enforcer, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A, status=STATUS_REMOVED)
    oracle.balances = {WALLET_A: 0}

    await service.run_reconciliation()
    await service.run_reconciliation()

    assert enforcer.reset_membership.await_count == 2
    assert store.actions_for(1) == ["access_revoked", "access_revoked"]


@pytest.mark.asyncio
async def test_group_without_tiers_is_skipped(service, store, oracle):
    store.add_group(GUILD_ID, [])
    store.add_member(1, GUILD_ID, WALLET_A)

    summary = await service.run_reconciliation()

    assert oracle.calls == []
    assert store.log == []
    assert summary.groups_skipped == 1


@pytest.mark.asyncio
async def test_inactive_groups_are_not_verified(service, store, oracle, tiers):
    store.add_group(GUILD_ID, tiers, active=False)
    store.add_member(1, GUILD_ID, WALLET_A)

    await service.run_reconciliation()

    assert oracle.calls == []


@pytest.mark.asyncio
async def test_oracle_called_with_group_mint(service, store, oracle, tiers):
    store.add_group(GUILD_ID, tiers, mint=MINT)
    store.add_member(1, GUILD_ID, WALLET_A)

    await service.run_reconciliation()

    assert oracle.calls == [(WALLET_A, MINT)]


# --------------- Failure isolation ---------------

@pytest.mark.asyncio
async def test_member_failure_does_not_stop_the_group(service, store, oracle, tiers, db_down):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A)
    store.add_member(2, GUILD_ID, WALLET_B)
    oracle.balances = {WALLET_A: 50_000, WALLET_B: 50_000}
    store.failures[("upsert_membership_status", 1)] = db_down

    summary = await service.run_reconciliation()

    assert store.status_of(1, GUILD_ID) is None
    assert store.status_of(2, GUILD_ID) == "Holder"
    assert summary.failures == 1
    assert summary.members_checked == 1


@pytest.mark.asyncio
async def test_group_failure_does_not_stop_the_run(service, store, oracle, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_group(OTHER_GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A)
    store.add_member(2, OTHER_GUILD_ID, WALLET_B)
    oracle.balances = {WALLET_A: 50_000, WALLET_B: 50_000}
    store.failures[("list_memberships", GUILD_ID)] = PersistenceError("list_memberships failed")

    summary = await service.run_reconciliation()

    assert store.status_of(2, OTHER_GUILD_ID) == "Holder"
    assert summary.failures == 1


@pytest.mark.asyncio
async def test_group_listing_failure_aborts_the_run(service, store):
    store.failures["list_active_groups"] = PersistenceError("list_active_groups failed")

    with pytest.raises(PersistenceError):
        await service.run_reconciliation()

    assert service.is_running is False


@pytest.mark.asyncio
async def test_notification_failure_is_swallowed(service, store, oracle, notifier, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A)
    oracle.balances = {WALLET_A: 50_000}
    notifier.notify.side_effect = RuntimeError("Cannot send messages to this user")

    summary = await service.run_reconciliation()

    assert store.status_of(1, GUILD_ID) == "Holder"
    assert summary.failures == 0


@pytest.mark.asyncio
async def test_enforcement_failure_keeps_the_new_status(service, store, oracle, enforcer, notifier, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A, status="Holder")
    oracle.balances = {WALLET_A: 10}
    enforcer.reset_membership.side_effect = EnforcementError(GUILD_ID, 1, "Missing Permissions")

    summary = await service.run_reconciliation()

    assert store.status_of(1, GUILD_ID) == STATUS_REMOVED
    assert store.actions_for(1) == ["access_revoked"]
    notifier.notify.assert_awaited_once()
    assert summary.revoked == 1


@pytest.mark.asyncio
async def test_raw_client_error_during_reset_is_contained(service, store, oracle, enforcer, notifier, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A, status="Holder")
    store.add_member(2, GUILD_ID, WALLET_B, status="Holder")
    oracle.balances = {WALLET_A: 10, WALLET_B: 50_000}
    enforcer.reset_membership.side_effect = OSError("Cannot connect to host discord.com")

    summary = await service.run_reconciliation()

    assert store.status_of(1, GUILD_ID) == STATUS_REMOVED
    assert store.status_of(2, GUILD_ID) == "Holder"
    notifier.notify.assert_awaited_once()
    assert summary.revoked == 1
    assert summary.failures == 0


@pytest.mark.asyncio
async def test_notifications_can_be_disabled(store, oracle, notifier, enforcer, tiers):
    service = ReconciliationService(store, oracle, notifier=notifier, enforcer=enforcer, notify_members=False)
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A)
    oracle.balances = {WALLET_A: 0}

    await service.run_reconciliation()

    notifier.notify.assert_not_awaited()
    enforcer.reset_membership.assert_awaited_once()


# --------------- Overlapping runs ---------------

@pytest.mark.asyncio
async def test_overlapping_trigger_is_dropped(service, store, oracle, tiers):
    store.add_group(GUILD_ID, tiers)
    store.add_member(1, GUILD_ID, WALLET_A)
    oracle.balances = {WALLET_A: 50_000}
    oracle.gate = asyncio.Event()

    first = asyncio.create_task(service.run_reconciliation())
    await oracle.entered.wait()
    assert service.is_running

    assert await service.run_reconciliation() is None

    oracle.gate.set()
    summary = await first
    assert summary.members_checked == 1
    assert len(oracle.calls) == 1
    assert service.is_running is False


# --------------- On-demand paths ---------------

@pytest.mark.asyncio
async def test_check_member_uses_the_full_body(service, store, oracle, enforcer, tiers):
    group = store.add_group(GUILD_ID, tiers)
    membership = store.add_member(1, GUILD_ID, WALLET_A, status="Whale")
    oracle.balances = {WALLET_A: 1}

    outcome = await service.check_member(group, membership)

    assert outcome.revoked
    enforcer.reset_membership.assert_awaited_once_with(GUILD_ID, 1)


@pytest.mark.asyncio
async def test_check_member_requires_tiers(service, store):
    group = store.add_group(GUILD_ID, [])
    membership = store.add_member(1, GUILD_ID, WALLET_A)

    with pytest.raises(ValidationError):
        await service.check_member(group, membership)


@pytest.mark.asyncio
async def test_check_member_survives_reset_timeout(service, store, oracle, enforcer, notifier, tiers):
    group = store.add_group(GUILD_ID, tiers)
    membership = store.add_member(1, GUILD_ID, WALLET_A, status="Holder")
    oracle.balances = {WALLET_A: 1}
    enforcer.reset_membership.side_effect = asyncio.TimeoutError()

    outcome = await service.check_member(group, membership)

    assert outcome.revoked
    assert store.status_of(1, GUILD_ID) == STATUS_REMOVED
    assert store.actions_for(1) == ["access_revoked"]
    notifier.notify.assert_awaited_once()


@pytest.mark.asyncio
async def test_link_wallet_grants_qualifying_wallet(service, store, oracle, tiers):
    group = store.add_group(GUILD_ID, tiers)
    oracle.balances = {WALLET_A: 100_000}

    outcome = await service.link_wallet(group, 7, WALLET_A)

    assert outcome.ok and outcome.status == "Whale"
    assert store.linked == [(7, GUILD_ID, WALLET_A)]
    assert store.status_of(7, GUILD_ID) == "Whale"
    assert store.actions_for(7) == ["access_granted"]


@pytest.mark.asyncio
async def test_link_wallet_rejects_insufficient_balance(service, store, oracle, tiers):
    group = store.add_group(GUILD_ID, tiers)
    oracle.balances = {WALLET_A: 9_999}

    outcome = await service.link_wallet(group, 7, WALLET_A)

    assert outcome.ok and outcome.status == STATUS_REJECTED
    assert store.linked == []
    assert store.log[0].action == "insufficient_balance"
    assert store.log[0].status == STATUS_REJECTED


@pytest.mark.asyncio
async def test_link_wallet_validates_before_lookup(service, store, oracle, tiers):
    group = store.add_group(GUILD_ID, tiers)

    with pytest.raises(ValidationError):
        await service.link_wallet(group, 7, "not-a-wallet")

    assert oracle.calls == []


@pytest.mark.asyncio
async def test_link_wallet_lookup_failure_is_not_audited(service, store, oracle, tiers):
    group = store.add_group(GUILD_ID, tiers)
    oracle.balances = {WALLET_A: "Helius API error: rate limited"}

    outcome = await service.link_wallet(group, 7, WALLET_A)

    assert not outcome.ok
    assert outcome.error == "Helius API error: rate limited"
    assert store.log == []
    assert store.linked == []


@pytest.mark.asyncio
async def test_run_summary_timestamp_is_utc(service, store):
    summary = await service.run_reconciliation()

    assert summary.started_at.utcoffset() == timedelta(0)
