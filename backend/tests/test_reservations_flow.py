from datetime import timedelta

from fastapi.testclient import TestClient

from livraria import models
from livraria.main import app

from factories import (
    auth,
    create_book,
    get_row,
    make_category,
    register_admin,
    register_seller,
    register_user,
    token_from_mail,
    update_row,
)

client = TestClient(app)


def _setup(stock=1):
    seller = register_seller('seller@example.com', name='Dona Livraria')
    book = create_book(seller, make_category(), stock=stock)
    buyer = register_user('buyer@example.com', name='Carlos Comprador')
    return seller, book, buyer


def _reserve(buyer, book_id):
    r = client.post('/reservations', json={'book_id': book_id}, headers=auth(buyer))
    assert r.status_code == 201, r.text
    return r.json()


def _confirmed(mailer, stock=1):
    seller, book, buyer = _setup(stock)
    reservation_id = _reserve(buyer, book['id'])['reservation_id']
    mailer.clear()
    r = client.patch(f'/dashboard/reservations/{reservation_id}/confirm', headers=auth(seller))
    assert r.status_code == 200, r.text
    return seller, book, buyer, reservation_id, token_from_mail(mailer.outbox[0])


def test_create_reservation_notifies_seller(mailer):
    seller, book, buyer = _setup()
    mailer.clear()
    body = _reserve(buyer, book['id'])
    assert body['notification_sent'] is True
    assert body['whatsapp_link'].startswith('https://wa.me/5511987654321?text=')
    assert f"ID%20da%20reserva%3A%20{body['reservation_id']}" in body['whatsapp_link']

    assert [m.to for m in mailer.outbox] == ['seller@example.com']
    assert 'Dom Casmurro' in mailer.outbox[0].html
    assert 'Carlos Comprador' in mailer.outbox[0].html

    mine = client.get('/reservations/mine', headers=auth(buyer)).json()
    assert len(mine) == 1
    assert mine[0]['status'] == 'PENDING'
    assert mine[0]['book']['title'] == 'Dom Casmurro'
    # stock is only taken at confirmation
    assert get_row(models.Book, book['id']).stock == 1


def test_create_reservation_rules():
    seller, book, buyer = _setup()
    assert client.post('/reservations', json={'book_id': 999}, headers=auth(buyer)).status_code == 404

    r = client.post('/reservations', json={'book_id': book['id']}, headers=auth(seller))
    assert r.status_code == 403

    _reserve(buyer, book['id'])
    r = client.post('/reservations', json={'book_id': book['id']}, headers=auth(buyer))
    assert r.status_code == 409

    update_row(models.Book, book['id'], stock=0)
    other = register_user('other@example.com')
    r = client.post('/reservations', json={'book_id': book['id']}, headers=auth(other))
    assert r.status_code == 400

    update_row(models.Book, book['id'], stock=1, status=models.BookStatus.UNPUBLISHED)
    r = client.post('/reservations', json={'book_id': book['id']}, headers=auth(other))
    assert r.status_code == 404

    assert client.post('/reservations', json={'book_id': book['id']}).status_code in (401, 403)


def test_create_reservation_succeeds_when_mail_fails(mailer):
    _, book, buyer = _setup()
    mailer.fail = True
    body = _reserve(buyer, book['id'])
    assert body['notification_sent'] is False
    assert body['message'] == 'reservation created'


def test_confirm_reservation_decrements_stock_and_emails_buyer(mailer):
    seller, book, buyer, reservation_id, token = _confirmed(mailer, stock=2)
    assert mailer.outbox[0].to == 'buyer@example.com'
    assert 'http://livraria.test/confirm-delivery?token=' in mailer.outbox[0].html
    assert get_row(models.Book, book['id']).stock == 1

    reservation = get_row(models.Reservation, reservation_id)
    assert reservation.status == models.ReservationStatus.CONFIRMED
    assert reservation.customer_confirmation_token == token
    expires = models.as_aware(reservation.customer_confirmation_token_expires)
    assert timedelta(hours=71) < expires - models.utcnow() <= timedelta(hours=72)

    r = client.patch(f'/dashboard/reservations/{reservation_id}/confirm', headers=auth(seller))
    assert r.status_code == 400
    r = client.patch(f'/dashboard/reservations/{reservation_id}/cancel', headers=auth(seller))
    assert r.status_code == 400


def test_confirm_fails_when_out_of_stock(mailer):
    seller, book, buyer = _setup()
    reservation_id = _reserve(buyer, book['id'])['reservation_id']
    update_row(models.Book, book['id'], stock=0)
    r = client.patch(f'/dashboard/reservations/{reservation_id}/confirm', headers=auth(seller))
    assert r.status_code == 400
    assert get_row(models.Reservation, reservation_id).status == models.ReservationStatus.PENDING
    assert get_row(models.Book, book['id']).stock == 0


def test_only_owning_seller_or_admin_can_act():
    seller, book, buyer = _setup()
    reservation_id = _reserve(buyer, book['id'])['reservation_id']
    other = register_seller('other@example.com', store_name='Outra Loja', whatsapp='11912345678')
    assert client.patch(f'/dashboard/reservations/{reservation_id}/confirm', headers=auth(other)).status_code == 403
    assert client.patch(f'/dashboard/reservations/{reservation_id}/cancel', headers=auth(buyer)).status_code == 403
    assert client.patch('/dashboard/reservations/999/cancel', headers=auth(seller)).status_code == 404

    admin = register_admin()
    r = client.patch(f'/dashboard/reservations/{reservation_id}/cancel', headers=auth(admin))
    assert r.status_code == 200
    assert r.json()['reservation']['status'] == 'CANCELLED'


def test_cancel_pending_reservation_keeps_stock(mailer):
    seller, book, buyer = _setup()
    reservation_id = _reserve(buyer, book['id'])['reservation_id']
    mailer.clear()
    r = client.patch(f'/dashboard/reservations/{reservation_id}/cancel', headers=auth(seller))
    assert r.status_code == 200
    assert r.json()['notification_sent'] is True
    assert mailer.outbox[0].to == 'buyer@example.com'
    assert get_row(models.Book, book['id']).stock == 1

    # a cancelled reservation no longer blocks a new one
    _reserve(buyer, book['id'])


def test_seller_lists_incoming_reservations_by_status():
    seller, book, buyer = _setup(stock=3)
    first = _reserve(buyer, book['id'])['reservation_id']
    other = register_user('other@example.com')
    _reserve(other, book['id'])
    client.patch(f'/dashboard/reservations/{first}/cancel', headers=auth(seller))

    everything = client.get('/dashboard/reservations', headers=auth(seller)).json()
    assert len(everything) == 2
    pending = client.get('/dashboard/reservations', params={'status': 'PENDING'}, headers=auth(seller)).json()
    assert [r['user']['email'] for r in pending] == ['other@example.com']


def test_confirm_delivery_and_rate_updates_store_rating(mailer):
    seller, book, buyer, reservation_id, token = _confirmed(mailer, stock=3)
    r = client.post('/confirm-delivery-and-rate', json={'token': token, 'rating': 4, 'comment': ' Ótimo! '}, headers=auth(buyer))
    assert r.status_code == 200, r.text
    reservation = r.json()['reservation']
    assert reservation['status'] == 'COMPLETED'
    assert reservation['delivery_confirmed_at'] is not None

    profile = client.get('/seller/profile', headers=auth(seller)).json()
    assert profile['average_rating'] == 4.0
    assert profile['total_ratings'] == 1

    # token is single use
    r = client.post('/confirm-delivery-and-rate', json={'token': token, 'rating': 5}, headers=auth(buyer))
    assert r.status_code == 404

    # a second purchase updates the same rating instead of adding one
    reservation_id = _reserve(buyer, book['id'])['reservation_id']
    mailer.clear()
    client.patch(f'/dashboard/reservations/{reservation_id}/confirm', headers=auth(seller))
    token = token_from_mail(mailer.outbox[0])
    client.post('/confirm-delivery-and-rate', json={'token': token, 'rating': 2}, headers=auth(buyer))
    profile = client.get('/seller/profile', headers=auth(seller)).json()
    assert profile['average_rating'] == 2.0
    assert profile['total_ratings'] == 1


def test_rating_average_across_buyers(mailer):
    seller, book, buyer, _, token = _confirmed(mailer, stock=2)
    client.post('/confirm-delivery-and-rate', json={'token': token, 'rating': 5}, headers=auth(buyer))

    other = register_user('other@example.com')
    reservation_id = _reserve(other, book['id'])['reservation_id']
    mailer.clear()
    client.patch(f'/dashboard/reservations/{reservation_id}/confirm', headers=auth(seller))
    token = token_from_mail(mailer.outbox[0])
    client.post('/confirm-delivery-and-rate', json={'token': token, 'rating': 4}, headers=auth(other))

    profile = client.get('/seller/profile', headers=auth(seller)).json()
    assert profile['average_rating'] == 4.5
    assert profile['total_ratings'] == 2


def test_confirm_delivery_rejects_other_user_and_bad_rating(mailer):
    _, _, buyer, reservation_id, token = _confirmed(mailer)
    stranger = register_user('stranger@example.com')
    r = client.post('/confirm-delivery-and-rate', json={'token': token, 'rating': 5}, headers=auth(stranger))
    assert r.status_code == 403
    r = client.post('/confirm-delivery-and-rate', json={'token': token, 'rating': 6}, headers=auth(buyer))
    assert r.status_code == 422
    r = client.post('/confirm-delivery-and-rate', json={'token': 'nope', 'rating': 5}, headers=auth(buyer))
    assert r.status_code == 404
    assert get_row(models.Reservation, reservation_id).status == models.ReservationStatus.CONFIRMED


def test_expired_confirmation_link_cancels_reservation(mailer):
    seller, book, buyer, reservation_id, token = _confirmed(mailer, stock=2)
    update_row(models.Reservation, reservation_id, customer_confirmation_token_expires=models.utcnow() - timedelta(minutes=5))

    r = client.post('/confirm-delivery-and-rate', json={'token': token, 'rating': 5}, headers=auth(buyer))
    assert r.status_code == 400
    reservation = get_row(models.Reservation, reservation_id)
    assert reservation.status == models.ReservationStatus.CANCELLED
    assert reservation.customer_confirmation_token is None
    # stock taken at confirmation stays taken
    assert get_row(models.Book, book['id']).stock == 1
    assert client.get('/seller/profile', headers=auth(seller)).json()['total_ratings'] == 0


def test_confirm_delivery_requires_confirmed_status(mailer):
    _, _, buyer, reservation_id, token = _confirmed(mailer)
    update_row(models.Reservation, reservation_id, status=models.ReservationStatus.PENDING)
    r = client.post('/confirm-delivery-and-rate', json={'token': token, 'rating': 5}, headers=auth(buyer))
    assert r.status_code == 400
