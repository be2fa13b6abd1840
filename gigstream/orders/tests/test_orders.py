from decimal import Decimal

import pytest

from escrow.models import EscrowTransaction
from gigstream.exceptions import InvalidTransition
from orders.models import Gig, Order
from orders.services import OrderService
from wallet.models import Wallet

pytestmark = pytest.mark.django_db


def status_url(order):
    return f'/api/orders/{order.id}/status/'


class TestGigs:
    payload = {
        'title': 'Landing page copy',
        'description': 'Conversion focused copy for one page.',
        'packages': [
            {'name': 'basic', 'price': '50.00', 'delivery_days': 2},
            {'name': 'standard', 'price': '120.00', 'delivery_days': 4, 'revisions': 2},
        ],
    }

    def test_seller_creates_gig(self, seller_client, seller):
        response = seller_client.post('/api/gigs/', self.payload, format='json')

        assert response.status_code == 201
        gig = Gig.objects.get(pk=response.data['id'])
        assert gig.seller == seller
        assert gig.get_package('standard') == {'name': 'standard', 'price': '120.00', 'delivery_days': 4, 'revisions': 2}
        assert gig.get_package('basic')['revisions'] == 0

    def test_buyer_cannot_create_gig(self, buyer_client):
        response = buyer_client.post('/api/gigs/', self.payload, format='json')
        assert response.status_code == 403

    @pytest.mark.parametrize('packages', [
        [],
        [{'name': 'basic', 'price': '10.00', 'delivery_days': 1}, {'name': 'basic', 'price': '20.00', 'delivery_days': 1}],
        [{'name': 'basic', 'price': '0.50', 'delivery_days': 1}],
        [{'name': 'basic', 'price': '10.00'}],
    ])
    def test_invalid_packages(self, seller_client, packages):
        response = seller_client.post('/api/gigs/', {**self.payload, 'packages': packages}, format='json')
        assert response.status_code == 422
        assert 'packages' in response.json()['errors']

    def test_only_owner_updates(self, gig, seller_client, outsider_client):
        assert outsider_client.patch(f'/api/gigs/{gig.id}/', {'title': 'Mine now'}, format='json').status_code == 403

        response = seller_client.patch(f'/api/gigs/{gig.id}/', {'title': 'Logo design, fast'}, format='json')
        assert response.status_code == 200
        assert Gig.objects.get(pk=gig.pk).title == 'Logo design, fast'

    def test_anyone_signed_in_can_browse(self, gig, outsider_client):
        response = outsider_client.get('/api/gigs/')
        assert [item['id'] for item in response.data['items']] == [gig.id]


class TestOrderVisibility:
    def test_list_is_scoped(self, order, buyer_client, seller_client, outsider_client, admin_client):
        for client in (buyer_client, seller_client, admin_client):
            assert [item['id'] for item in client.get('/api/orders/').data['items']] == [order.id]
        assert outsider_client.get('/api/orders/').data['items'] == []

    def test_detail_includes_escrow(self, held_escrow, order, buyer_client):
        response = buyer_client.get(f'/api/orders/{order.id}/')
        assert response.data['escrow_id'] == held_escrow.id
        assert response.data['escrow_status'] == EscrowTransaction.HELD

    def test_detail_forbidden_for_outsiders(self, order, outsider_client):
        assert outsider_client.get(f'/api/orders/{order.id}/').status_code == 403


class TestTransitions:
    def test_full_happy_path(self, held_escrow, order, buyer_client, seller_client, seller):
        response = seller_client.patch(status_url(order), {'status': Order.DELIVERED}, format='json')
        assert response.status_code == 200
        assert response.data['status'] == Order.DELIVERED
        assert response.data['delivered_at'] is not None

        response = buyer_client.patch(status_url(order), {'status': Order.COMPLETED}, format='json')
        assert response.status_code == 200
        assert response.data['status'] == Order.COMPLETED
        assert response.data['payment_status'] == Order.PAYMENT_COMPLETED
        assert Wallet.objects.get(user=seller).balance == Decimal('900.00')

    def test_buyer_cannot_deliver(self, held_escrow, order, buyer_client):
        response = buyer_client.patch(status_url(order), {'status': Order.DELIVERED}, format='json')
        assert response.status_code == 403

    def test_cannot_complete_before_delivery(self, held_escrow, order, buyer_client):
        response = buyer_client.patch(status_url(order), {'status': Order.COMPLETED}, format='json')
        assert response.status_code == 400
        assert Order.objects.get(pk=order.pk).status == Order.IN_PROGRESS

    def test_cancel_refunds_held_escrow(self, held_escrow, order, seller_client, seller):
        response = seller_client.patch(
            status_url(order), {'status': Order.CANCELLED, 'reason': 'Out of capacity'}, format='json'
        )

        assert response.status_code == 200
        assert response.data['status'] == Order.CANCELLED
        assert response.data['payment_status'] == Order.PAYMENT_REFUNDED
        escrow = EscrowTransaction.objects.get(pk=held_escrow.pk)
        assert escrow.refund_reason == 'Out of capacity'
        wallet = Wallet.objects.get(user=seller)
        assert (wallet.balance, wallet.pending_clearance) == (Decimal('0.00'), Decimal('0.00'))

    def test_cancel_unpaid_order(self, order_factory, buyer):
        order = order_factory(status=Order.PENDING)
        order = OrderService().transition(order_id=order.id, new_status=Order.CANCELLED, actor=buyer)
        assert order.status == Order.CANCELLED

    def test_delivered_order_cannot_be_cancelled(self, held_escrow, order, seller, buyer):
        OrderService().transition(order_id=order.id, new_status=Order.DELIVERED, actor=seller)
        with pytest.raises(InvalidTransition):
            OrderService().transition(order_id=order.id, new_status=Order.CANCELLED, actor=buyer)

    def test_outsider_gets_404(self, order, outsider_client):
        response = outsider_client.patch(status_url(order), {'status': Order.CANCELLED}, format='json')
        assert response.status_code == 404

    def test_unknown_status_is_422(self, order, buyer_client):
        response = buyer_client.patch(status_url(order), {'status': 'ARCHIVED'}, format='json')
        assert response.status_code == 422


class TestPaymentStatus:
    @pytest.mark.parametrize('current,target', [
        (Order.PAYMENT_COMPLETED, Order.PAYMENT_REFUNDED),
        (Order.PAYMENT_REFUNDED, Order.PAYMENT_COMPLETED),
        (Order.PAYMENT_PENDING, Order.PAYMENT_COMPLETED),
        (Order.PAYMENT_PROCESSING, Order.PAYMENT_PENDING),
    ])
    def test_never_moves_backwards_or_skips(self, order, current, target):
        order.payment_status = current
        with pytest.raises(InvalidTransition):
            order.set_payment_status(target)

    def test_forward_moves(self, order):
        order.set_payment_status(Order.PAYMENT_PROCESSING)
        order.set_payment_status(Order.PAYMENT_REFUNDED)
        assert order.payment_status == Order.PAYMENT_REFUNDED
