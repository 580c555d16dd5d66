import pytest
from sqlmodel import select

from app.core.config import settings
from app.crud.buyback_fund import InsufficientBuybackFunds, async_top_up_fund, get_fund_balance
from app.models.sell_order import SellOrder, SellOrderStatus
from app.models.wallet import Transaction, TransactionType
from app.services.buyback import payable_shares, process_buyback_batch
from app.services.reconciler import reconcile_user_wallets
from factories import fund_buyback, make_order, make_user


async def reload(session, order):
    await session.refresh(order)
    return order


def test_payable_shares_is_bounded_by_funds_and_remaining():
    order = SellOrder(
        user_uuid=None, currency="UGX", quantity=10, remaining_quantity=10,
        requested_price=1_000.0, total_sell_value=10_000.0, fifo_position=1,
    )
    assert payable_shares(order, 25_500) == 10
    assert payable_shares(order, 4_999) == 4
    assert payable_shares(order, 999) == 0
    assert payable_shares(order, 0) == 0


@pytest.mark.asyncio
async def test_batch_pays_orders_in_fifo_order(session):
    first_seller = await make_user(session, "First Seller")
    second_seller = await make_user(session, "Second Seller")
    first = await make_order(session, first_seller, 1, 10_000, quantity=10)
    second = await make_order(session, second_seller, 2, 10_000, quantity=10)
    await fund_buyback(session, 15_000)

    result = await process_buyback_batch(session)
    await session.commit()

    assert result.processed_count == 2
    assert result.total_paid == pytest.approx(15_000)
    assert result.fund_balance_before == pytest.approx(15_000)
    assert result.fund_balance_after == pytest.approx(0)
    assert [s.fifo_position for s in result.settled] == [1, 2]

    first = await reload(session, first)
    second = await reload(session, second)
    assert first.status == SellOrderStatus.COMPLETED
    assert first.remaining_quantity == 0
    assert first.processed_at is not None
    assert second.status == SellOrderStatus.PARTIAL
    assert second.remaining_quantity == 5


@pytest.mark.asyncio
async def test_batch_never_skips_an_unpaid_earlier_order(session):
    big_seller = await make_user(session, "Big Seller")
    small_seller = await make_user(session, "Small Seller")
    # one share of the first order costs more than the whole fund
    big = await make_order(session, big_seller, 1, 500_000, quantity=1)
    small = await make_order(session, small_seller, 2, 1_000, quantity=10)
    await fund_buyback(session, 10_000)

    result = await process_buyback_batch(session)
    await session.commit()

    assert result.processed_count == 0
    assert (await reload(session, big)).status == SellOrderStatus.PENDING
    assert (await reload(session, small)).status == SellOrderStatus.PENDING
    assert await get_fund_balance(session, "UGX") == pytest.approx(10_000)


@pytest.mark.asyncio
async def test_batch_respects_max_orders(session):
    seller = await make_user(session)
    for position in range(1, 4):
        await make_order(session, seller, position, 1_000, quantity=10)
    await fund_buyback(session, 100_000)

    result = await process_buyback_batch(session, max_orders=2)

    assert result.processed_count == 2
    assert result.total_paid == pytest.approx(2_000)


@pytest.mark.asyncio
async def test_batch_only_touches_orders_in_the_fund_currency(session):
    seller = await make_user(session)
    usd_order = await make_order(session, seller, 1, 1_000, currency="USD")
    await make_order(session, seller, 2, 1_000)
    await fund_buyback(session, 5_000)

    result = await process_buyback_batch(session, currency="UGX")
    await session.commit()

    assert [s.fifo_position for s in result.settled] == [2]
    assert (await reload(session, usd_order)).status == SellOrderStatus.PENDING


@pytest.mark.asyncio
async def test_empty_fund_aborts_before_any_write(session):
    seller = await make_user(session)
    order = await make_order(session, seller, 1, 1_000)

    with pytest.raises(InsufficientBuybackFunds):
        await process_buyback_batch(session)
    await session.rollback()

    assert (await reload(session, order)).status == SellOrderStatus.PENDING


@pytest.mark.asyncio
async def test_fund_below_threshold_aborts(session, monkeypatch):
    monkeypatch.setattr(settings, "buyback_min_fund_threshold", 50_000.0)
    seller = await make_user(session)
    await make_order(session, seller, 1, 1_000)
    await fund_buyback(session, 10_000)

    with pytest.raises(InsufficientBuybackFunds):
        await process_buyback_batch(session)


@pytest.mark.asyncio
async def test_payout_credits_seller_and_keeps_wallet_reconciled(session):
    seller = await make_user(session)
    await make_order(session, seller, 1, 7_500, quantity=3)
    await fund_buyback(session, 100_000)

    await process_buyback_batch(session)
    await session.commit()

    entries = (await session.exec(
        select(Transaction).where(Transaction.user_uuid == seller.uuid)
    )).all()
    assert len(entries) == 1
    assert entries[0].transaction_type == TransactionType.SHARE_SALE
    assert entries[0].amount == pytest.approx(7_500)

    report = await reconcile_user_wallets(session, seller.uuid)
    assert report.wallets[0].stored_balance == pytest.approx(7_500)
    assert report.wallets_needing_sync == 0


@pytest.mark.asyncio
async def test_top_up_creates_fund_when_missing(session):
    assert await get_fund_balance(session, "KES") == 0

    await async_top_up_fund(session, "KES", 1_000)
    fund = await async_top_up_fund(session, "KES", 500)
    await session.commit()

    assert fund.balance == pytest.approx(1_500)
    assert await get_fund_balance(session, "KES") == pytest.approx(1_500)

    with pytest.raises(ValueError):
        await async_top_up_fund(session, "KES", 0)
