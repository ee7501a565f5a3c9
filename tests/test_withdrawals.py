from unittest.mock import AsyncMock

import pytest

from luckygame import withdrawals
from luckygame.withdrawals import (
    WithdrawalError,
    can_transition,
    moderate_withdrawal,
    notify_status_change,
    parse_action,
    request_withdrawal,
    validate_amount,
)


@pytest.mark.parametrize(
    "data, expected",
    [
        ("approve_12", ("approved", 12)),
        ("pay_3", ("paid", 3)),
        ("reject_7", ("rejected", 7)),
        ("delete_1", None),
        ("approve_x", None),
        ("approve", None),
        ("", None),
    ],
)
def test_parse_action(data, expected):
    assert parse_action(data) == expected


def test_transitions():
    assert can_transition("pending", "approved")
    assert can_transition("pending", "paid")
    assert can_transition("pending", "rejected")
    assert can_transition("approved", "paid")
    assert not can_transition("approved", "rejected")
    assert not can_transition("paid", "approved")
    assert not can_transition("rejected", "paid")
    assert not can_transition("unknown", "paid")


def test_validate_amount():
    assert validate_amount(5000) == 5000
    assert validate_amount("6000") == 6000
    for value, code in [
        (4999, "below_minimum"),
        (0, "invalid_amount"),
        (-10, "invalid_amount"),
        ("abc", "invalid_amount"),
        (None, "invalid_amount"),
        (True, "invalid_amount"),
        (2**31, "invalid_amount"),
    ]:
        with pytest.raises(WithdrawalError) as excinfo:
            validate_amount(value)
        assert excinfo.value.code == code


@pytest.mark.asyncio
async def test_request_withdrawal_notifies_admin_and_user(monkeypatch):
    monkeypatch.setattr(withdrawals, "ADMIN_TELEGRAM_ID", 99)
    create = AsyncMock(
        return_value={"id": 4, "user_id": 7, "amount": 6000, "status": "pending"}
    )
    monkeypatch.setattr(withdrawals, "create_withdrawal", create)
    bot = AsyncMock()
    user = {"telegram_id": 7, "first_name": "Ali", "username": "ali"}

    result = await request_withdrawal(object(), bot, user, 6000, "  UQwallet  ")

    assert result["id"] == 4
    assert create.await_args.args[1:] == (7, 6000, "UQwallet")
    chat_ids = [call.kwargs["chat_id"] for call in bot.send_message.await_args_list]
    assert chat_ids == [99, 7]
    assert bot.send_message.await_args_list[0].kwargs["reply_markup"] is not None


@pytest.mark.asyncio
async def test_request_withdrawal_insufficient_balance(monkeypatch):
    monkeypatch.setattr(withdrawals, "create_withdrawal", AsyncMock(return_value=None))
    bot = AsyncMock()

    with pytest.raises(WithdrawalError) as excinfo:
        await request_withdrawal(object(), bot, {"telegram_id": 7}, 6000)

    assert excinfo.value.code == "insufficient_balance"
    bot.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_reject_refunds_coins(monkeypatch, fake_pool):
    current = {"id": 1, "status": "pending", "user_id": 7, "amount": 6000}
    monkeypatch.setattr(
        withdrawals, "fetch_withdrawal_for_update", AsyncMock(return_value=current)
    )
    monkeypatch.setattr(
        withdrawals,
        "set_withdrawal_status",
        AsyncMock(return_value={**current, "status": "rejected"}),
    )
    credit = AsyncMock()
    monkeypatch.setattr(withdrawals, "credit_coins", credit)
    monkeypatch.setattr(
        withdrawals,
        "get_withdrawal",
        AsyncMock(return_value={**current, "status": "rejected", "first_name": "Ali"}),
    )

    result = await moderate_withdrawal(fake_pool, 1, "rejected")

    assert result["status"] == "rejected"
    credit.assert_awaited_once_with(fake_pool.conn, 7, 6000)


@pytest.mark.asyncio
async def test_approve_does_not_refund(monkeypatch, fake_pool):
    current = {"id": 1, "status": "pending", "user_id": 7, "amount": 6000}
    monkeypatch.setattr(
        withdrawals, "fetch_withdrawal_for_update", AsyncMock(return_value=current)
    )
    monkeypatch.setattr(
        withdrawals,
        "set_withdrawal_status",
        AsyncMock(return_value={**current, "status": "approved"}),
    )
    credit = AsyncMock()
    monkeypatch.setattr(withdrawals, "credit_coins", credit)
    monkeypatch.setattr(withdrawals, "get_withdrawal", AsyncMock(return_value=None))

    result = await moderate_withdrawal(fake_pool, 1, "approved")

    assert result["status"] == "approved"
    credit.assert_not_awaited()


@pytest.mark.asyncio
async def test_moderate_rejects_invalid_transition(monkeypatch, fake_pool):
    monkeypatch.setattr(
        withdrawals,
        "fetch_withdrawal_for_update",
        AsyncMock(return_value={"id": 1, "status": "paid", "user_id": 7, "amount": 6000}),
    )
    set_status = AsyncMock()
    monkeypatch.setattr(withdrawals, "set_withdrawal_status", set_status)

    with pytest.raises(WithdrawalError) as excinfo:
        await moderate_withdrawal(fake_pool, 1, "approved")

    assert excinfo.value.code == "invalid_transition"
    set_status.assert_not_awaited()


@pytest.mark.asyncio
async def test_moderate_missing_withdrawal(monkeypatch, fake_pool):
    monkeypatch.setattr(
        withdrawals, "fetch_withdrawal_for_update", AsyncMock(return_value=None)
    )

    with pytest.raises(WithdrawalError) as excinfo:
        await moderate_withdrawal(fake_pool, 1, "paid")

    assert excinfo.value.code == "not_found"


@pytest.mark.asyncio
async def test_notify_status_change():
    bot = AsyncMock()

    assert await notify_status_change(bot, {"user_id": 7, "status": "paid"})
    assert bot.send_message.await_args.kwargs["chat_id"] == 7
    assert not await notify_status_change(bot, {"user_id": 7, "status": "pending"})
