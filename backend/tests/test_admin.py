from fastapi.testclient import TestClient
from sqlmodel import Session, select

from livraria import models
from livraria.database import engine
from livraria.main import app

from factories import (
    ADMIN_EMAIL,
    auth,
    create_book,
    get_row,
    login,
    make_category,
    register_admin,
    register_seller,
    register_user,
    token_from_mail,
    update_row,
)

client = TestClient(app)


def _user_id(token):
    return client.get('/auth/me', headers=auth(token)).json()['id']


def _completed_purchase(mailer, seller, buyer, book_id, rating):
    reservation_id = client.post('/reservations', json={'book_id': book_id}, headers=auth(buyer)).json()['reservation_id']
    mailer.clear()
    client.patch(f'/dashboard/reservations/{reservation_id}/confirm', headers=auth(seller))
    token = token_from_mail(mailer.outbox[0])
    r = client.post('/confirm-delivery-and-rate', json={'token': token, 'rating': rating}, headers=auth(buyer))
    assert r.status_code == 200, r.text
    return reservation_id


def test_admin_routes_require_admin():
    reader = register_user('reader@example.com')
    assert client.get('/admin/stats', headers=auth(reader)).status_code == 403
    assert client.get('/admin/stats').status_code in (401, 403)


def test_role_admin_is_admin_without_configured_email():
    token = register_user('boss@example.com')
    update_row(models.User, _user_id(token), role=models.Role.ADMIN)
    assert client.get('/admin/stats', headers=auth(token)).status_code == 200


def test_stats_counts_everything(mailer):
    admin = register_admin()
    seller = register_seller('seller@example.com')
    book = create_book(seller, make_category(), stock=2)
    buyer = register_user('buyer@example.com')
    _completed_purchase(mailer, seller, buyer, book['id'], 5)
    client.post('/reservations', json={'book_id': book['id']}, headers=auth(buyer))

    stats = client.get('/admin/stats', headers=auth(admin)).json()
    assert stats['users'] == 3
    assert stats['sellers'] == 1
    assert stats['books'] == 1
    assert stats['categories'] == 1
    assert stats['reservations'] == 2
    assert stats['reservations_by_status']['COMPLETED'] == 1
    assert stats['reservations_by_status']['PENDING'] == 1
    assert stats['ratings'] == 1


def test_list_users_filters():
    admin = register_admin()
    register_seller('seller@example.com', store_name='Sebo Estrela')
    register_user('reader@example.com', name='Maria Leitora')

    r = client.get('/admin/users', params={'q': 'estrela'}, headers=auth(admin))
    assert [u['email'] for u in r.json()['data']] == ['seller@example.com']
    assert r.json()['data'][0]['seller_profile']['store_name'] == 'Sebo Estrela'

    r = client.get('/admin/users', params={'role': 'USER'}, headers=auth(admin))
    assert {u['email'] for u in r.json()['data']} == {ADMIN_EMAIL, 'reader@example.com'}
    r = client.get('/admin/users', params={'limit': 1}, headers=auth(admin))
    assert r.json()['pagination']['total_pages'] == 3


def test_delete_seller_removes_store_books_and_reservations(mailer, storage):
    admin = register_admin()
    seller = register_seller('seller@example.com')
    storage.upload_bytes('books/1_capa.jpg', b'img', 'image/jpeg')
    book = create_book(seller, make_category(), stock=3)
    buyer = register_user('buyer@example.com')
    _completed_purchase(mailer, seller, buyer, book['id'], 4)
    client.post('/reservations', json={'book_id': book['id']}, headers=auth(buyer))
    client.post('/wishlist', json={'book_id': book['id']}, headers=auth(buyer))

    seller_id = _user_id(seller)
    r = client.delete(f'/admin/users/{seller_id}', headers=auth(admin))
    assert r.status_code == 200
    assert r.json()['message'] == 'user Vendedor Teste deleted'

    assert get_row(models.User, seller_id) is None
    assert get_row(models.Book, book['id']) is None
    assert client.get('/reservations/mine', headers=auth(buyer)).json() == []
    assert client.get('/wishlist', headers=auth(buyer)).json() == []
    assert storage.stored_objects == {}
    with Session(engine) as session:
        assert session.exec(select(models.SellerProfile)).all() == []
        assert session.exec(select(models.SellerRating)).all() == []


def test_delete_buyer_recomputes_ratings_of_rated_stores(mailer):
    admin = register_admin()
    seller = register_seller('seller@example.com')
    book = create_book(seller, make_category(), stock=3)
    happy = register_user('happy@example.com')
    grumpy = register_user('grumpy@example.com')
    _completed_purchase(mailer, seller, happy, book['id'], 5)
    _completed_purchase(mailer, seller, grumpy, book['id'], 1)
    assert client.get('/seller/profile', headers=auth(seller)).json()['average_rating'] == 3.0

    r = client.delete(f'/admin/users/{_user_id(grumpy)}', headers=auth(admin))
    assert r.status_code == 200
    profile = client.get('/seller/profile', headers=auth(seller)).json()
    assert profile['average_rating'] == 5.0
    assert profile['total_ratings'] == 1


def test_main_admin_account_is_protected():
    admin = register_admin()
    other = register_user('second@example.com')
    update_row(models.User, _user_id(other), role=models.Role.ADMIN)

    admin_id = _user_id(admin)
    assert client.delete(f'/admin/users/{admin_id}', headers=auth(other)).status_code == 403
    assert client.patch(
        f'/admin/users/{admin_id}/change-password', json={'new_password': 'hacked1'}, headers=auth(other)
    ).status_code == 403
    # nobody deletes themselves
    assert client.delete(f"/admin/users/{_user_id(other)}", headers=auth(other)).status_code == 403
    assert client.delete('/admin/users/999', headers=auth(admin)).status_code == 404


def test_admin_changes_user_password():
    admin = register_admin()
    reader = register_user('reader@example.com')
    r = client.patch(
        f'/admin/users/{_user_id(reader)}/change-password', json={'new_password': 'brandnew'}, headers=auth(admin)
    )
    assert r.status_code == 200
    login('reader@example.com', 'brandnew')
    r = client.patch(f'/admin/users/{_user_id(reader)}/change-password', json={'new_password': '123'}, headers=auth(admin))
    assert r.status_code == 422


def test_admin_book_moderation():
    admin = register_admin()
    seller = register_seller('seller@example.com', store_name='Sebo Lua')
    book = create_book(seller, make_category())

    r = client.put(f"/admin/books/{book['id']}", json={'tags': [' raro ', '', 'autografado'], 'publication_year': 1899}, headers=auth(admin))
    assert r.status_code == 200
    assert r.json()['tags'] == ['raro', 'autografado']
    assert r.json()['publication_year'] == 1899
    r = client.put(f"/admin/books/{book['id']}", json={'publication_year': 999}, headers=auth(admin))
    assert r.status_code == 422
    r = client.put(f"/admin/books/{book['id']}", json={'tags': [f't{i}' for i in range(11)]}, headers=auth(admin))
    assert r.status_code == 422

    r = client.patch(f"/admin/books/{book['id']}/status", json={'status': 'PENDING_APPROVAL'}, headers=auth(admin))
    assert r.status_code == 200
    assert client.get(f"/books/{book['id']}").status_code == 404
    assert client.get(f"/admin/books/{book['id']}", headers=auth(admin)).json()['status'] == 'PENDING_APPROVAL'

    r = client.get('/admin/books', params={'status': 'PENDING_APPROVAL', 'q': 'lua'}, headers=auth(admin))
    assert r.json()['pagination']['total_items'] == 1

    assert client.delete(f"/admin/books/{book['id']}", headers=auth(admin)).status_code == 200
    assert client.get(f"/admin/books/{book['id']}", headers=auth(admin)).status_code == 404


def test_admin_orders_and_ratings(mailer):
    admin = register_admin()
    seller = register_seller('seller@example.com')
    book = create_book(seller, make_category(), stock=3)
    buyer = register_user('buyer@example.com')
    other = register_user('other@example.com')
    _completed_purchase(mailer, seller, buyer, book['id'], 5)
    _completed_purchase(mailer, seller, other, book['id'], 2)

    r = client.get('/admin/orders', params={'status': 'COMPLETED'}, headers=auth(admin))
    assert r.json()['pagination']['total_items'] == 2

    ratings = client.get('/admin/ratings', headers=auth(admin)).json()['data']
    assert len(ratings) == 2
    low = next(x for x in ratings if x['rating'] == 2)
    assert low['rated_by']['email'] == 'other@example.com'

    r = client.delete(f"/admin/ratings/{low['id']}", headers=auth(admin))
    assert r.status_code == 200
    assert r.json()['seller']['average_rating'] == 5.0
    assert r.json()['seller']['total_ratings'] == 1
    assert client.delete(f"/admin/ratings/{low['id']}", headers=auth(admin)).status_code == 404
