from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
import stripe
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from escrow.models import EscrowTransaction
from escrow.services import EscrowService
from gigstream.exceptions import AlreadyProcessed, EscrowLocked, Unauthorized
from orders.models import Gig, Order
from payments.models import PlatformSettings
from wallet.models import LedgerEntry, Wallet
from wallet.services import reconcile_wallet

pytestmark = pytest.mark.django_db


def seller_wallet(seller):
    return Wallet.objects.get(user=seller)


class TestHold:
    def test_hold_moves_amount_into_pending_clearance(self, order, seller):
        escrow = EscrowService().hold(order=order, amount=Decimal('1000.00'), payment_intent_id='pi_1')

        wallet = seller_wallet(seller)
        assert escrow.status == EscrowTransaction.HELD
        assert wallet.pending_clearance == Decimal('1000.00')
        assert wallet.balance == Decimal('0.00')

        order.refresh_from_db()
        assert order.payment_status == Order.PAYMENT_PROCESSING
        assert order.payment_intent_id == 'pi_1'

        entry = LedgerEntry.objects.get(order=order)
        assert entry.entry_type == LedgerEntry.ESCROW_HOLD
        assert entry.bucket == LedgerEntry.PENDING
        assert entry.amount == Decimal('1000.00')

    def test_second_hold_for_same_order_is_rejected(self, held_escrow, order, seller):
        with pytest.raises(AlreadyProcessed):
            EscrowService().hold(order=order, amount=Decimal('1000.00'))

        assert EscrowTransaction.objects.filter(order=order).count() == 1
        assert seller_wallet(seller).pending_clearance == Decimal('1000.00')

    @pytest.mark.parametrize('amount', ['0', '-5.00'])
    def test_hold_requires_positive_amount(self, order, amount):
        with pytest.raises(ValidationError):
            EscrowService().hold(order=order, amount=Decimal(amount))
        assert not EscrowTransaction.objects.exists()

    def test_hold_checks_the_parties(self, order, outsider):
        with pytest.raises(Unauthorized):
            EscrowService().hold(order=order, amount=Decimal('10.00'), buyer=outsider)


class TestRelease:
    def test_release_of_1000_at_ten_percent(self, held_escrow, buyer, seller, gig):
        escrow = EscrowService().release(escrow_id=held_escrow.id, released_by=buyer)

        wallet = seller_wallet(seller)
        assert wallet.balance == Decimal('900.00')
        assert wallet.pending_clearance == Decimal('0.00')
        assert wallet.total_earnings == Decimal('900.00')

        fee_entry = LedgerEntry.objects.get(order=escrow.order, entry_type=LedgerEntry.SERVICE_FEE)
        assert fee_entry.amount == Decimal('-100.00')
        assert escrow.platform_fee == Decimal('100.00')
        assert escrow.seller_amount == Decimal('900.00')
        assert escrow.status == EscrowTransaction.RELEASED

        order = Order.objects.get(pk=escrow.order_id)
        assert order.status == Order.COMPLETED
        assert order.payment_status == Order.PAYMENT_COMPLETED
        assert order.completed_at is not None

        gig.refresh_from_db()
        assert gig.total_revenue == Decimal('900.00')

    @pytest.mark.parametrize('amount,percent', [
        ('1000.00', '0'),
        ('1000.00', '100'),
        ('49.99', '12.5'),
        ('0.01', '10'),
        ('333.33', '33.33'),
        ('1234.56', '2.75'),
    ])
    def test_release_moves_exactly_amount_minus_fee(self, order_factory, buyer, seller, amount, percent):
        PlatformSettings.objects.create(platform_fee_percent=Decimal(percent))
        amount = Decimal(amount)
        service = EscrowService()
        escrow = service.hold(order=order_factory(total=str(amount)), amount=amount)
        before = seller_wallet(seller)

        escrow = service.release(escrow_id=escrow.id, released_by=buyer)

        after = seller_wallet(seller)
        assert before.pending_clearance - after.pending_clearance == amount
        assert after.balance - before.balance == amount - escrow.platform_fee
        assert Decimal('0') <= escrow.platform_fee <= amount
        assert reconcile_wallet(after)['balanced']

    def test_zero_fee_writes_no_fee_entry(self, held_escrow, buyer):
        PlatformSettings.objects.create(platform_fee_percent=Decimal('0'))
        EscrowService().release(escrow_id=held_escrow.id, released_by=buyer)
        assert not LedgerEntry.objects.filter(entry_type=LedgerEntry.SERVICE_FEE).exists()

    def test_only_the_buyer_can_release(self, held_escrow, seller):
        with pytest.raises(Unauthorized):
            EscrowService().release(escrow_id=held_escrow.id, released_by=seller)
        assert EscrowTransaction.objects.get(pk=held_escrow.pk).status == EscrowTransaction.HELD

    def test_locked_escrow_cannot_be_released(self, held_escrow, buyer):
        EscrowService().set_lock(escrow_id=held_escrow.id, is_locked=True)
        with pytest.raises(EscrowLocked):
            EscrowService().release(escrow_id=held_escrow.id, released_by=buyer)

    def test_moderator_releases_locked_escrow(self, held_escrow, admin_user, seller):
        EscrowService().set_lock(escrow_id=held_escrow.id, is_locked=True)
        escrow = EscrowService().release(escrow_id=held_escrow.id, released_by=admin_user, by_moderator=True)
        assert escrow.status == EscrowTransaction.RELEASED
        assert escrow.is_locked is False
        assert seller_wallet(seller).balance == Decimal('900.00')

    def test_moderator_path_requires_staff(self, held_escrow, buyer):
        with pytest.raises(Unauthorized):
            EscrowService().release(escrow_id=held_escrow.id, released_by=buyer, by_moderator=True)


class TestReleaseRefundExclusive:
    def test_refund_after_release_fails(self, held_escrow, buyer, seller):
        service = EscrowService()
        service.release(escrow_id=held_escrow.id, released_by=buyer)

        with pytest.raises(AlreadyProcessed):
            service.refund(escrow_id=held_escrow.id, reason='Changed my mind', refunded_by=buyer)

        wallet = seller_wallet(seller)
        assert wallet.balance == Decimal('900.00')
        assert not LedgerEntry.objects.filter(entry_type=LedgerEntry.REFUND).exists()

    def test_release_after_refund_fails(self, held_escrow, buyer, seller):
        service = EscrowService()
        service.refund(escrow_id=held_escrow.id, reason='Seller unresponsive', refunded_by=buyer)

        with pytest.raises(AlreadyProcessed):
            service.release(escrow_id=held_escrow.id, released_by=buyer)

        wallet = seller_wallet(seller)
        assert wallet.balance == Decimal('0.00')
        assert wallet.pending_clearance == Decimal('0.00')
        assert not LedgerEntry.objects.filter(entry_type=LedgerEntry.EARNING).exists()

    def test_double_release_fails(self, held_escrow, buyer):
        service = EscrowService()
        service.release(escrow_id=held_escrow.id, released_by=buyer)
        with pytest.raises(AlreadyProcessed):
            service.release(escrow_id=held_escrow.id, released_by=buyer)
        assert LedgerEntry.objects.filter(entry_type=LedgerEntry.EARNING).count() == 1


class TestRefund:
    def test_refund_leaves_available_balance_untouched(self, funded_seller, order_factory, buyer):
        service = EscrowService()
        escrow = service.hold(order=order_factory(total='250.00'), amount=Decimal('250.00'))
        before = seller_wallet(funded_seller)
        assert before.pending_clearance == Decimal('250.00')

        escrow = service.refund(escrow_id=escrow.id, reason='Buyer cancelled', refunded_by=buyer)

        after = seller_wallet(funded_seller)
        assert after.balance == before.balance == Decimal('900.00')
        assert after.pending_clearance == Decimal('0.00')
        assert escrow.status == EscrowTransaction.REFUNDED
        assert escrow.gateway_refund_status == 'pending'

        order = Order.objects.get(pk=escrow.order_id)
        assert order.status == Order.CANCELLED
        assert order.payment_status == Order.PAYMENT_REFUNDED

    def test_outsider_cannot_refund(self, held_escrow, outsider):
        with pytest.raises(Unauthorized):
            EscrowService().refund(escrow_id=held_escrow.id, reason='Not mine', refunded_by=outsider)

    def test_gateway_refund_runs_after_commit(self, held_escrow, buyer, django_capture_on_commit_callbacks):
        with mock.patch('payments.providers.stripe.stripe.Refund.create') as create_refund:
            create_refund.return_value = mock.Mock(id='re_123', status='pending')
            with django_capture_on_commit_callbacks(execute=True):
                EscrowService().refund(escrow_id=held_escrow.id, reason='Buyer cancelled', refunded_by=buyer)

        create_refund.assert_called_once()
        assert create_refund.call_args.kwargs['payment_intent'] == 'pi_test_123'
        escrow = EscrowTransaction.objects.get(pk=held_escrow.pk)
        assert escrow.gateway_refund_status == 'requested'
        assert escrow.gateway_refund_id == 're_123'

    def test_gateway_failure_is_recorded(self, held_escrow, buyer, django_capture_on_commit_callbacks):
        with mock.patch('payments.providers.stripe.stripe.Refund.create', side_effect=stripe.StripeError('boom')):
            with django_capture_on_commit_callbacks(execute=True):
                EscrowService().refund(escrow_id=held_escrow.id, reason='Buyer cancelled', refunded_by=buyer)

        escrow = EscrowTransaction.objects.get(pk=held_escrow.pk)
        assert escrow.status == EscrowTransaction.REFUNDED
        assert escrow.gateway_refund_status == 'failed'


class TestAutoRelease:
    def deliver(self, order, days_ago):
        Order.objects.filter(pk=order.pk).update(
            status=Order.DELIVERED,
            delivered_at=timezone.now() - timedelta(days=days_ago),
        )

    def test_releases_only_after_grace_period(self, settings, order_factory, seller):
        settings.ESCROW_AUTO_RELEASE_DAYS = 3
        service = EscrowService()
        due_order = order_factory(total='100.00')
        fresh_order = order_factory(total='100.00')
        due = service.hold(order=due_order, amount=Decimal('100.00'))
        fresh = service.hold(order=fresh_order, amount=Decimal('100.00'))
        self.deliver(due_order, days_ago=4)
        self.deliver(fresh_order, days_ago=1)

        released = service.auto_release_due()

        assert released == [due.id]
        assert EscrowTransaction.objects.get(pk=fresh.pk).status == EscrowTransaction.HELD
        wallet = seller_wallet(seller)
        assert wallet.balance == Decimal('90.00')
        assert wallet.pending_clearance == Decimal('100.00')

    def test_unexpected_error_does_not_stop_the_batch(self, settings, order_factory, seller):
        settings.ESCROW_AUTO_RELEASE_DAYS = 3
        service = EscrowService()
        broken_order = order_factory(total='100.00')
        healthy_order = order_factory(total='100.00')
        broken = service.hold(order=broken_order, amount=Decimal('100.00'))
        healthy = service.hold(order=healthy_order, amount=Decimal('100.00'))
        self.deliver(broken_order, days_ago=5)
        self.deliver(healthy_order, days_ago=5)

        real_release = service.release

        def flaky_release(*, escrow_id, **kwargs):
            if escrow_id == broken.id:
                raise RuntimeError('db hiccup')
            return real_release(escrow_id=escrow_id, **kwargs)

        with mock.patch.object(service, 'release', side_effect=flaky_release):
            released = service.auto_release_due()

        assert released == [healthy.id]
        assert EscrowTransaction.objects.get(pk=broken.pk).status == EscrowTransaction.HELD
        assert EscrowTransaction.objects.get(pk=healthy.pk).status == EscrowTransaction.RELEASED
        assert seller_wallet(seller).balance == Decimal('90.00')

    def test_locked_escrow_is_skipped(self, settings, held_escrow, order):
        settings.ESCROW_AUTO_RELEASE_DAYS = 3
        self.deliver(order, days_ago=10)
        EscrowService().set_lock(escrow_id=held_escrow.id, is_locked=True)

        assert EscrowService().auto_release_due() == []
        assert EscrowTransaction.objects.get(pk=held_escrow.pk).status == EscrowTransaction.HELD

    def test_undelivered_order_is_not_released(self, settings, held_escrow):
        settings.ESCROW_AUTO_RELEASE_DAYS = 0
        assert EscrowService().auto_release_due() == []


def test_pending_escrow_orders_lists_delivered_orders(held_escrow, order, seller, outsider):
    Order.objects.filter(pk=order.pk).update(status=Order.DELIVERED, delivered_at=timezone.now())
    assert list(EscrowService().pending_escrow_orders(seller)) == [order]
    assert list(EscrowService().pending_escrow_orders(outsider)) == []


def test_gig_revenue_accumulates_across_orders(order_factory, buyer, gig):
    service = EscrowService()
    for total in ('100.00', '200.00'):
        escrow = service.hold(order=order_factory(total=total), amount=Decimal(total))
        service.release(escrow_id=escrow.id, released_by=buyer)
    assert Gig.objects.get(pk=gig.pk).total_revenue == Decimal('270.00')
