from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import CustomUser
from escrow.services import EscrowService
from gigstream.celery import app as celery_app
from orders.models import Gig, Order

PACKAGES = [
    {'name': 'basic', 'price': '100.00', 'delivery_days': 3, 'revisions': 1},
    {'name': 'premium', 'price': '1000.00', 'delivery_days': 7, 'revisions': 3},
]


@pytest.fixture(autouse=True)
def eager_celery():
    celery_app.conf.CELERY_TASK_ALWAYS_EAGER = True
    celery_app.conf.CELERY_TASK_EAGER_PROPAGATES = True
    yield
    celery_app.conf.CELERY_TASK_ALWAYS_EAGER = False


@pytest.fixture
def buyer(db):
    return CustomUser.objects.create_user(
        email='buyer@example.com', password='S3cure-pass!', first_name='Bea', last_name='Buyer',
        user_type=CustomUser.BUYER,
    )


@pytest.fixture
def seller(db):
    return CustomUser.objects.create_user(
        email='seller@example.com', password='S3cure-pass!', first_name='Sam', last_name='Seller',
        user_type=CustomUser.SELLER,
    )


@pytest.fixture
def outsider(db):
    return CustomUser.objects.create_user(
        email='outsider@example.com', password='S3cure-pass!', first_name='Otto', last_name='Side',
    )


@pytest.fixture
def admin_user(db):
    return CustomUser.objects.create_superuser(
        email='admin@example.com', password='S3cure-pass!', first_name='Ada', last_name='Admin',
    )


def make_client(user=None):
    client = APIClient()
    if user is not None:
        client.force_authenticate(user=user)
    return client


@pytest.fixture
def buyer_client(buyer):
    return make_client(buyer)


@pytest.fixture
def seller_client(seller):
    return make_client(seller)


@pytest.fixture
def admin_client(admin_user):
    return make_client(admin_user)


@pytest.fixture
def outsider_client(outsider):
    return make_client(outsider)


@pytest.fixture
def anon_client():
    return make_client()


@pytest.fixture
def gig(seller):
    return Gig.objects.create(
        seller=seller,
        title='Logo design',
        description='A clean vector logo.',
        packages=PACKAGES,
    )


def make_order(gig, buyer, total='1000.00', status=Order.IN_PROGRESS, package_type='premium'):
    total = Decimal(total)
    return Order.objects.create(
        gig=gig,
        buyer=buyer,
        seller=gig.seller,
        package_type=package_type,
        price=total,
        total_amount=total,
        status=status,
        delivery_date=timezone.now() + timedelta(days=7),
    )


@pytest.fixture
def order(gig, buyer):
    return make_order(gig, buyer)


@pytest.fixture
def held_escrow(order):
    return EscrowService().hold(order=order, amount=order.price, payment_intent_id='pi_test_123')


@pytest.fixture
def order_factory(gig, buyer):
    def _make(**kwargs):
        return make_order(gig, buyer, **kwargs)
    return _make


@pytest.fixture
def funded_seller(seller, order_factory, buyer):
    """Seller with 900.00 available after one released 1000.00 order at the default 10% fee."""
    service = EscrowService()
    escrow = service.hold(order=order_factory(), amount=Decimal('1000.00'))
    service.release(escrow_id=escrow.id, released_by=buyer)
    return seller
