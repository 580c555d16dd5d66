import pytest
from sqlmodel.ext.asyncio.session import AsyncSession

from app.crud import wallets as wallets_crud
from app.crud.wallets import WalletVersionConflict, get_wallet
from app.models.wallet import TransactionStatus, TransactionType
from app.services import reconciler
from app.services.reconciler import (
    compare_balances,
    reconcile_user_wallets,
    sync_all_wallets,
    sync_wallet,
)
from factories import add_transaction, make_user, make_wallet


def test_compare_balances_tolerates_rounding():
    assert compare_balances(100.0, 100.005) == (pytest.approx(0.005), False)
    difference, needs_sync = compare_balances(100_000, 100_000.02)
    assert difference == pytest.approx(0.02)
    assert needs_sync is True


@pytest.mark.asyncio
async def test_wallet_without_drift_is_not_flagged(session):
    user = await make_user(session)
    await make_wallet(session, user, 750.0, amounts=[1_000, -250])
    wallet = await make_wallet(session, user, 40.0, currency="USD")
    await add_transaction(session, wallet, 40.0, TransactionStatus.APPROVED)

    report = await reconcile_user_wallets(session, user.uuid)

    assert len(report.wallets) == 2
    assert report.wallets_needing_sync == 0
    for row in report.wallets:
        assert row.needs_sync is False
        assert row.calculated_balance == pytest.approx(row.stored_balance, abs=0.01)


@pytest.mark.asyncio
async def test_unsettled_transactions_are_ignored(session):
    user = await make_user(session)
    wallet = await make_wallet(session, user, 500.0, amounts=[500])
    await add_transaction(session, wallet, 300, TransactionStatus.PENDING)
    await add_transaction(session, wallet, 900, TransactionStatus.FAILED)

    report = await reconcile_user_wallets(session, user.uuid)

    assert report.wallets[0].calculated_balance == pytest.approx(500)
    assert report.wallets[0].needs_sync is False


@pytest.mark.asyncio
async def test_unaccounted_transaction_shifts_calculated_balance(session):
    user = await make_user(session)
    wallet = await make_wallet(session, user, 1_000.0, amounts=[1_000])

    before = await reconcile_user_wallets(session, user.uuid)
    await add_transaction(session, wallet, -125.0)
    after = await reconcile_user_wallets(session, user.uuid)

    assert after.wallets[0].calculated_balance - before.wallets[0].calculated_balance == -125.0
    assert after.wallets[0].needs_sync is True
    assert after.wallets_needing_sync == 1
    assert after.total_drift == pytest.approx(125.0)


@pytest.mark.asyncio
async def test_sync_overwrites_drifted_balance(session):
    user = await make_user(session)
    wallet = await make_wallet(session, user, 100_000.0, amounts=[100_000, 0.02])

    report = await reconcile_user_wallets(session, user.uuid)
    assert report.wallets[0].difference == pytest.approx(0.02)
    assert report.wallets[0].needs_sync is True

    row = await sync_wallet(session, wallet.id, user.uuid)
    await session.commit()

    stored = await get_wallet(session, wallet.id)
    assert stored.balance == pytest.approx(100_000.02)
    assert stored.version == 1
    assert row.needs_sync is False

    again = await reconcile_user_wallets(session, user.uuid)
    assert again.wallets_needing_sync == 0


@pytest.mark.asyncio
async def test_sync_without_drift_leaves_wallet_untouched(session):
    user = await make_user(session)
    wallet = await make_wallet(session, user, 10.0, amounts=[10])

    await sync_wallet(session, wallet.id, user.uuid)
    await session.commit()

    stored = await get_wallet(session, wallet.id)
    assert stored.version == 0


@pytest.mark.asyncio
async def test_sync_with_stale_version_raises_conflict(session):
    user = await make_user(session)
    wallet = await make_wallet(session, user, 0.0, amounts=[50])

    with pytest.raises(WalletVersionConflict):
        await sync_wallet(session, wallet.id, user.uuid, expected_version=7)
    await session.rollback()

    stored = await get_wallet(session, wallet.id)
    assert stored.balance == 0.0


@pytest.mark.asyncio
async def test_stale_version_conflicts_even_without_drift(session):
    user = await make_user(session)
    wallet = await make_wallet(session, user, 10.0, amounts=[10])

    with pytest.raises(WalletVersionConflict):
        await sync_wallet(session, wallet.id, user.uuid, expected_version=2)

    row = await sync_wallet(session, wallet.id, user.uuid, expected_version=0)
    assert row.needs_sync is False


@pytest.mark.asyncio
async def test_concurrent_writer_between_read_and_write_is_detected(engine):
    async with AsyncSession(engine, expire_on_commit=False) as setup:
        user = await make_user(setup)
        wallet = await make_wallet(setup, user, 0.0, amounts=[50])

    async with AsyncSession(engine, expire_on_commit=False) as session:
        report = await reconcile_user_wallets(session, user.uuid)
        seen_version = report.wallets[0].version

        async with AsyncSession(engine, expire_on_commit=False) as other:
            await wallets_crud.async_apply_ledger_entry(
                other, user.uuid, "UGX", 5.0, TransactionType.DEPOSIT
            )
            await other.commit()

        with pytest.raises(WalletVersionConflict):
            await sync_wallet(session, wallet.id, user.uuid, expected_version=seen_version)


@pytest.mark.asyncio
async def test_fix_all_corrects_every_flagged_wallet(session):
    user = await make_user(session)
    await make_wallet(session, user, 0.0, amounts=[20])
    await make_wallet(session, user, 5.0, amounts=[5], currency="USD")
    await make_wallet(session, user, 99.0, amounts=[100], currency="KES")

    report = await sync_all_wallets(session, user.uuid)
    await session.commit()

    assert report.wallets_needing_sync == 0
    assert report.total_drift == pytest.approx(21.0)

    check = await reconcile_user_wallets(session, user.uuid)
    balances = {row.currency: row.stored_balance for row in check.wallets}
    assert balances == {"KES": pytest.approx(100), "UGX": pytest.approx(20), "USD": pytest.approx(5)}
    assert check.wallets_needing_sync == 0


@pytest.mark.asyncio
async def test_failure_on_one_wallet_aborts_reconciliation(session, monkeypatch):
    user = await make_user(session)
    await make_wallet(session, user, 0.0, amounts=[20])
    await make_wallet(session, user, 0.0, amounts=[30], currency="USD")

    calls = []

    async def flaky_sum(session, wallet_id):
        calls.append(wallet_id)
        if len(calls) == 2:
            raise RuntimeError("transactions unavailable")
        return 0.0

    monkeypatch.setattr(reconciler, "sum_settled_transactions", flaky_sum)

    with pytest.raises(RuntimeError):
        await reconcile_user_wallets(session, user.uuid)
