import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from io import StringIO
from unittest import mock

import pytest
import stripe
from django.core.management import call_command
from django.db import connection

from gigstream.exceptions import (
    AlreadyProcessed,
    BelowMinimumWithdrawal,
    IdempotencyKeyReused,
    InsufficientBalance,
    PaymentProviderError,
    Unauthorized,
)
from wallet.models import LedgerEntry, Wallet, WithdrawalRequest
from wallet.services import (
    WithdrawalService,
    lock_wallet,
    post_entry,
    reconcile_all_wallets,
    reconcile_wallet,
)
from wallet.tasks import task_reconcile_wallets
from wallet.utils import percentage_of, to_money

pytestmark = pytest.mark.django_db

BANK = {'account_name': 'Sam Seller', 'account_number': '00112233', 'bank_name': 'First Bank'}


def wallet_of(user):
    return Wallet.objects.get(user=user)


class TestMoney:
    def test_rounds_half_up_to_cents(self):
        assert to_money('10.005') == Decimal('10.01')
        assert to_money(3) == Decimal('3.00')
        assert to_money(0.1) == Decimal('0.10')

    def test_percentage_of(self):
        assert percentage_of(Decimal('100'), Decimal('2')) == Decimal('2.00')
        assert percentage_of(Decimal('1000'), 10) == Decimal('100.00')

    @pytest.mark.parametrize('percent', [Decimal('-1'), Decimal('100.01')])
    def test_percentage_out_of_range(self, percent):
        with pytest.raises(ValueError):
            percentage_of(Decimal('100'), percent)


class TestPostEntry:
    def test_available_bucket_cannot_go_negative(self, seller):
        wallet = lock_wallet(seller)
        with pytest.raises(InsufficientBalance):
            post_entry(wallet, entry_type=LedgerEntry.WITHDRAWAL, bucket=LedgerEntry.AVAILABLE, amount=Decimal('-1'))
        assert not LedgerEntry.objects.exists()
        assert wallet_of(seller).balance == Decimal('0.00')

    def test_records_balance_after(self, seller, order):
        wallet = lock_wallet(seller)
        entry = post_entry(
            wallet, entry_type=LedgerEntry.ESCROW_HOLD, bucket=LedgerEntry.PENDING,
            amount=Decimal('12.345'), order=order,
        )
        assert entry.amount == Decimal('12.35')
        assert entry.balance_after == Decimal('12.35')

    def test_same_operation_twice_for_an_order_is_rejected(self, seller, order):
        wallet = lock_wallet(seller)
        post_entry(wallet, entry_type=LedgerEntry.ESCROW_HOLD, bucket=LedgerEntry.PENDING, amount=5, order=order)
        with pytest.raises(AlreadyProcessed):
            post_entry(wallet, entry_type=LedgerEntry.ESCROW_HOLD, bucket=LedgerEntry.PENDING, amount=5, order=order)
        assert LedgerEntry.objects.filter(order=order).count() == 1


class TestWithdrawalRequest:
    def test_fee_and_net_amount(self, funded_seller):
        withdrawal, created = WithdrawalService().request(
            user=funded_seller, amount=Decimal('100'), method='BANK_TRANSFER', account_details=BANK,
        )

        assert created is True
        assert withdrawal.fee == Decimal('2.00')
        assert withdrawal.net_amount == Decimal('98.00')
        assert withdrawal.status == WithdrawalRequest.PENDING
        assert wallet_of(funded_seller).balance == Decimal('800.00')

        entry = LedgerEntry.objects.get(withdrawal=withdrawal)
        assert entry.entry_type == LedgerEntry.WITHDRAWAL
        assert entry.amount == Decimal('-100.00')
        assert entry.status == 'pending'

    def test_replayed_idempotency_key_debits_once(self, funded_seller):
        service = WithdrawalService()
        first, created_first = service.request(
            user=funded_seller, amount=Decimal('100'), method='BANK_TRANSFER',
            account_details=BANK, idempotency_key='wd-1',
        )
        second, created_second = service.request(
            user=funded_seller, amount=Decimal('100'), method='BANK_TRANSFER',
            account_details=BANK, idempotency_key='wd-1',
        )

        assert (created_first, created_second) == (True, False)
        assert first.id == second.id
        assert WithdrawalRequest.objects.count() == 1
        assert wallet_of(funded_seller).balance == Decimal('800.00')

    @pytest.mark.parametrize('amount,method', [
        (Decimal('150'), 'BANK_TRANSFER'),
        (Decimal('100'), 'PAYPAL'),
    ])
    def test_reused_key_for_a_different_request(self, funded_seller, amount, method):
        service = WithdrawalService()
        service.request(
            user=funded_seller, amount=Decimal('100'), method='BANK_TRANSFER',
            account_details=BANK, idempotency_key='wd-1',
        )

        with pytest.raises(IdempotencyKeyReused):
            service.request(
                user=funded_seller, amount=amount, method=method,
                account_details={'email': 'sam@example.com'}, idempotency_key='wd-1',
            )
        assert WithdrawalRequest.objects.count() == 1
        assert wallet_of(funded_seller).balance == Decimal('800.00')

    def test_key_collision_on_insert_replays_the_winner(self, funded_seller):
        service = WithdrawalService()
        first, _ = service.request(
            user=funded_seller, amount=Decimal('100'), method='BANK_TRANSFER',
            account_details=BANK, idempotency_key='wd-1',
        )

        # The lookup misses, as it would for a request racing the first one.
        with mock.patch.object(WithdrawalService, '_find_by_key', return_value=None):
            second, created = service.request(
                user=funded_seller, amount=Decimal('100'), method='BANK_TRANSFER',
                account_details=BANK, idempotency_key='wd-1',
            )

        assert created is False
        assert second.id == first.id
        assert LedgerEntry.objects.filter(entry_type=LedgerEntry.WITHDRAWAL).count() == 1
        assert wallet_of(funded_seller).balance == Decimal('800.00')

    def test_insufficient_balance(self, funded_seller):
        with pytest.raises(InsufficientBalance):
            WithdrawalService().request(
                user=funded_seller, amount=Decimal('900.01'), method='BANK_TRANSFER', account_details=BANK,
            )
        assert not WithdrawalRequest.objects.exists()
        assert wallet_of(funded_seller).balance == Decimal('900.00')

    def test_whole_balance_can_be_withdrawn(self, funded_seller):
        WithdrawalService().request(
            user=funded_seller, amount=Decimal('900.00'), method='BANK_TRANSFER', account_details=BANK,
        )
        assert wallet_of(funded_seller).balance == Decimal('0.00')

    def test_below_minimum(self, funded_seller, settings):
        settings.MIN_WITHDRAWAL_AMOUNT = Decimal('10')
        with pytest.raises(BelowMinimumWithdrawal):
            WithdrawalService().request(
                user=funded_seller, amount=Decimal('9.99'), method='BANK_TRANSFER', account_details=BANK,
            )


class TestWithdrawalLifecycle:
    @pytest.fixture
    def withdrawal(self, funded_seller):
        withdrawal, _ = WithdrawalService().request(
            user=funded_seller, amount=Decimal('100'), method='BANK_TRANSFER', account_details=BANK,
        )
        return withdrawal

    def test_rejection_returns_the_amount(self, withdrawal, funded_seller, admin_user):
        result = WithdrawalService().process(
            withdrawal_id=withdrawal.id, approve=False, notes='Details do not match', processed_by=admin_user,
        )

        assert result.status == WithdrawalRequest.REJECTED
        assert result.rejection_reason == 'Details do not match'
        assert wallet_of(funded_seller).balance == Decimal('900.00')
        reversal = LedgerEntry.objects.get(withdrawal=withdrawal, entry_type=LedgerEntry.WITHDRAWAL_REVERSAL)
        assert reversal.amount == Decimal('100.00')
        assert LedgerEntry.objects.get(withdrawal=withdrawal, entry_type=LedgerEntry.WITHDRAWAL).status == 'failed'

    def test_cancel_returns_the_amount(self, withdrawal, funded_seller):
        result = WithdrawalService().cancel(withdrawal_id=withdrawal.id, user=funded_seller)

        assert result.status == WithdrawalRequest.CANCELLED
        assert wallet_of(funded_seller).balance == Decimal('900.00')

    def test_cancel_by_someone_else(self, withdrawal, outsider):
        with pytest.raises(Unauthorized):
            WithdrawalService().cancel(withdrawal_id=withdrawal.id, user=outsider)

    def test_cannot_process_twice(self, withdrawal, admin_user):
        service = WithdrawalService()
        service.process(withdrawal_id=withdrawal.id, approve=False, processed_by=admin_user)
        with pytest.raises(AlreadyProcessed):
            service.process(withdrawal_id=withdrawal.id, approve=False, processed_by=admin_user)
        with pytest.raises(AlreadyProcessed):
            service.cancel(withdrawal_id=withdrawal.id, user=admin_user)
        assert LedgerEntry.objects.filter(entry_type=LedgerEntry.WITHDRAWAL_REVERSAL).count() == 1

    def test_bank_transfer_approval_completes(self, withdrawal, funded_seller, admin_user):
        result = WithdrawalService().process(withdrawal_id=withdrawal.id, approve=True, processed_by=admin_user)

        assert result.status == WithdrawalRequest.COMPLETED
        assert result.payout_reference.startswith('BT-')
        wallet = wallet_of(funded_seller)
        assert wallet.balance == Decimal('800.00')
        assert wallet.total_withdrawals == Decimal('100.00')
        entry = LedgerEntry.objects.get(withdrawal=withdrawal, entry_type=LedgerEntry.WITHDRAWAL)
        assert entry.status == 'completed'
        assert entry.external_id == result.payout_reference

    def test_failed_payout_reverses_the_debit(self, funded_seller, admin_user):
        withdrawal, _ = WithdrawalService().request(
            user=funded_seller, amount=Decimal('100'), method='STRIPE',
            account_details={'stripe_account_id': 'acct_123'},
        )

        with mock.patch('payments.providers.stripe.stripe.Transfer.create', side_effect=stripe.StripeError('declined')):
            with pytest.raises(PaymentProviderError):
                WithdrawalService().process(withdrawal_id=withdrawal.id, approve=True, processed_by=admin_user)

        withdrawal.refresh_from_db()
        assert withdrawal.status == WithdrawalRequest.FAILED
        assert wallet_of(funded_seller).balance == Decimal('900.00')
        assert wallet_of(funded_seller).total_withdrawals == Decimal('0.00')

    def test_stripe_payout_sends_net_amount(self, funded_seller, admin_user):
        withdrawal, _ = WithdrawalService().request(
            user=funded_seller, amount=Decimal('100'), method='STRIPE',
            account_details={'stripe_account_id': 'acct_123'},
        )

        with mock.patch('payments.providers.stripe.stripe.Transfer.create') as create_transfer:
            create_transfer.return_value = mock.Mock(id='tr_1')
            result = WithdrawalService().process(withdrawal_id=withdrawal.id, approve=True, processed_by=admin_user)

        assert create_transfer.call_args.kwargs['amount'] == 9800
        assert create_transfer.call_args.kwargs['destination'] == 'acct_123'
        assert result.payout_reference == 'tr_1'


class TestReconciliation:
    def test_ledger_matches_after_every_flow(self, funded_seller, admin_user):
        service = WithdrawalService()
        first, _ = service.request(user=funded_seller, amount=Decimal('100'), method='BANK_TRANSFER', account_details=BANK)
        second, _ = service.request(user=funded_seller, amount=Decimal('50'), method='BANK_TRANSFER', account_details=BANK)
        service.process(withdrawal_id=first.id, approve=True, processed_by=admin_user)
        service.cancel(withdrawal_id=second.id, user=funded_seller)

        report = reconcile_wallet(wallet_of(funded_seller))
        assert report['balanced'] is True
        assert report['expected_balance'] == Decimal('800.00')
        assert reconcile_all_wallets() == []

    def test_detects_tampered_balance(self, funded_seller):
        Wallet.objects.filter(user=funded_seller).update(balance=Decimal('1000.00'))

        mismatches = reconcile_all_wallets()
        assert len(mismatches) == 1
        assert mismatches[0]['expected_balance'] == Decimal('900.00')
        assert task_reconcile_wallets.delay().get() == 1

    def test_management_command(self, funded_seller):
        out = StringIO()
        call_command('reconcile_wallets', stdout=out)
        assert 'All wallets match their ledger.' in out.getvalue()

        Wallet.objects.filter(user=funded_seller).update(pending_clearance=Decimal('5.00'))
        out = StringIO()
        call_command('reconcile_wallets', '--user-id', str(funded_seller.id), stdout=out)
        assert '1 wallet(s) out of balance.' in out.getvalue()


@pytest.mark.django_db(transaction=True)
@pytest.mark.skipif(
    not connection.features.has_select_for_update,
    reason="the database backend has no row locks to serialize withdrawals",
)
def test_concurrent_identical_withdrawals_debit_once(funded_seller):
    barrier = threading.Barrier(2)

    def submit():
        try:
            barrier.wait(timeout=5)
            _, created = WithdrawalService().request(
                user=funded_seller, amount=Decimal('100'), method='BANK_TRANSFER',
                account_details=BANK, idempotency_key='wd-race',
            )
            return created
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = [future.result() for future in [pool.submit(submit) for _ in range(2)]]

    assert sorted(results) == [False, True]
    assert WithdrawalRequest.objects.count() == 1
    assert wallet_of(funded_seller).balance == Decimal('800.00')
    assert reconcile_wallet(wallet_of(funded_seller))['balanced'] is True
