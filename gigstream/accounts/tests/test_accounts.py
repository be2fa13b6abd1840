import pytest

from accounts.models import CustomUser
from wallet.models import Wallet

pytestmark = pytest.mark.django_db

REGISTER = {
    'first_name': 'Nia',
    'last_name': 'Maker',
    'email': 'nia@example.com',
    'password': 'Tr1cky-Passw0rd',
    'confirm_password': 'Tr1cky-Passw0rd',
}


def test_seller_registration_opens_a_wallet(anon_client):
    response = anon_client.post('/api/auth/register/', {**REGISTER, 'user_type': 'seller'}, format='json')

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    assert body['data']['access']
    assert body['data']['user']['email'] == 'nia@example.com'
    assert 'password' not in body['data']['user']
    assert Wallet.objects.filter(user__email='nia@example.com').exists()


def test_buyer_registration_has_no_wallet(anon_client):
    response = anon_client.post('/api/auth/register/', {**REGISTER, 'user_type': 'buyer'}, format='json')

    assert response.status_code == 201
    assert not Wallet.objects.exists()


def test_password_mismatch(anon_client):
    payload = {**REGISTER, 'user_type': 'buyer', 'confirm_password': 'something-else'}
    response = anon_client.post('/api/auth/register/', payload, format='json')

    assert response.status_code == 422
    assert 'confirm_password' in response.json()['errors']
    assert not CustomUser.objects.exists()


def test_duplicate_email(anon_client, buyer):
    payload = {**REGISTER, 'user_type': 'buyer', 'email': buyer.email}
    assert anon_client.post('/api/auth/register/', payload, format='json').status_code == 422


def test_token_login(anon_client, seller):
    response = anon_client.post(
        '/api/auth/token/', {'email': 'seller@example.com', 'password': 'S3cure-pass!'}, format='json'
    )

    assert response.status_code == 200
    assert response.data['access']
    assert response.data['refresh']


def test_token_login_and_bearer_access(anon_client, seller):
    token = anon_client.post(
        '/api/auth/token/', {'email': 'seller@example.com', 'password': 'S3cure-pass!'}, format='json'
    ).data['access']

    anon_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    response = anon_client.get('/api/auth/me/')

    assert response.status_code == 200
    assert response.data['user_type'] == 'seller'


def test_inactive_user_cannot_log_in(anon_client, seller):
    seller.is_active = False
    seller.save()
    response = anon_client.post(
        '/api/auth/token/', {'email': 'seller@example.com', 'password': 'S3cure-pass!'}, format='json'
    )
    assert response.status_code == 401


def test_profile_update_keeps_email(buyer_client, buyer):
    response = buyer_client.patch('/api/auth/me/', {'first_name': 'Beatrice', 'email': 'new@example.com'}, format='json')

    assert response.status_code == 200
    buyer.refresh_from_db()
    assert buyer.first_name == 'Beatrice'
    assert buyer.email == 'buyer@example.com'
