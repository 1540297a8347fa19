import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest

from bank import payments, refunds, workflows
from bank.errors import (
    AmountRefundFailed,
    PaymentNotApproved,
    PaymentNotExist,
    PaymentNotFound,
    RefundNotFound,
    ValidationError,
)
from bank.models import PaymentStatus, Refund
from tests.conftest import CARD


@pytest.fixture
def payment(ctx):
    return workflows.create_payment(ctx, 50, CARD).payment


def test_partial_refunds_accumulate_up_to_payment_amount(ctx, payment):
    refund = workflows.create_refund(ctx, payment.id, 30)
    assert refund.amount == 30
    assert refund.payment_id == payment.id

    with pytest.raises(AmountRefundFailed):
        workflows.create_refund(ctx, payment.id, 25)
    assert workflows.get_refund_for_payment(ctx, payment.id).amount == 30

    refund = workflows.create_refund(ctx, payment.id, 20)
    assert refund.amount == 50
    assert workflows.get_refund(ctx, refund.id).amount == 50


def test_single_refund_row_per_payment(ctx, payment, session_factory):
    first = workflows.create_refund(ctx, payment.id, 10)
    second = workflows.create_refund(ctx, payment.id, 10)

    assert first.id == second.id
    with session_factory() as db:
        assert db.query(Refund).filter_by(payment_id=payment.id).count() == 1


def test_first_refund_over_amount_creates_nothing(ctx, payment):
    with pytest.raises(AmountRefundFailed):
        workflows.create_refund(ctx, payment.id, 51)

    assert workflows.get_refund_for_payment(ctx, payment.id) is None


def test_refund_for_missing_payment(ctx):
    with pytest.raises(PaymentNotFound) as exc:
        workflows.create_refund(ctx, uuid.uuid4(), 10)
    assert isinstance(exc.value, PaymentNotExist)


def test_refund_for_declined_payment(ctx, session_factory):
    with session_factory() as db:
        declined = payments.insert(db, 40, CARD, status=PaymentStatus.DECLINED)
        db.commit()

    with pytest.raises(PaymentNotApproved) as exc:
        workflows.create_refund(ctx, declined.id, 10)
    assert isinstance(exc.value, PaymentNotExist)
    assert exc.value.message != PaymentNotFound.error


@pytest.mark.parametrize("amount", [0, -10])
def test_refund_amount_must_be_positive(ctx, payment, amount):
    with pytest.raises(ValidationError):
        workflows.create_refund(ctx, payment.id, amount)


def test_get_missing_refund(ctx):
    with pytest.raises(RefundNotFound):
        workflows.get_refund(ctx, uuid.uuid4())


def test_concurrent_refunds_cannot_overdraw(ctx, payment):
    """30 and 25 each fit into 50 but not together: only one may win."""
    barrier = threading.Barrier(2)

    def refund(amount):
        barrier.wait()
        try:
            return workflows.create_refund(ctx, payment.id, amount).amount
        except AmountRefundFailed:
            return None

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(refund, [30, 25]))

    assert len([r for r in results if r is not None]) == 1
    assert workflows.get_refund_for_payment(ctx, payment.id).amount in (30, 25)
    assert len(ctx.refund_locks) == 0


def test_many_concurrent_refunds_stop_at_payment_amount(ctx, payment):
    def refund(_):
        try:
            workflows.create_refund(ctx, payment.id, 7)
            return True
        except AmountRefundFailed:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(refund, range(12)))

    assert results.count(True) == 7
    assert workflows.get_refund_for_payment(ctx, payment.id).amount == 49


def test_refund_row_created_elsewhere_is_picked_up(ctx, payment, session_factory, mocker):
    with session_factory() as db:
        db.add(Refund(payment_id=payment.id, amount=10))
        db.commit()

    read_refund = refunds.get_payment_refund
    calls = []

    def stale_first_read(db, payment_id):
        calls.append(payment_id)
        return None if len(calls) == 1 else read_refund(db, payment_id)

    mocker.patch("bank.refunds.get_payment_refund", side_effect=stale_first_read)

    refund = workflows.create_refund(ctx, payment.id, 20)

    assert refund.amount == 30
    assert len(calls) == 2
