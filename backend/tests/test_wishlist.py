from fastapi.testclient import TestClient

from livraria.main import app

from factories import auth, create_book, make_category, register_seller, register_user

client = TestClient(app)


def test_wishlist_add_is_idempotent_and_remove():
    seller = register_seller('seller@example.com')
    book = create_book(seller, make_category())
    reader = register_user('reader@example.com')

    r = client.post('/wishlist', json={'book_id': book['id']}, headers=auth(reader))
    assert r.status_code == 201
    assert r.json()['item']['book']['title'] == 'Dom Casmurro'

    r = client.post('/wishlist', json={'book_id': book['id']}, headers=auth(reader))
    assert r.status_code == 200
    assert r.json()['message'] == 'book already in wishlist'

    items = client.get('/wishlist', headers=auth(reader)).json()
    assert [i['book_id'] for i in items] == [book['id']]

    assert client.delete(f"/wishlist/{book['id']}", headers=auth(reader)).status_code == 200
    assert client.get('/wishlist', headers=auth(reader)).json() == []
    assert client.delete(f"/wishlist/{book['id']}", headers=auth(reader)).status_code == 404


def test_wishlist_is_per_user_and_needs_existing_book():
    seller = register_seller('seller@example.com')
    book = create_book(seller, make_category())
    alice = register_user('alice@example.com')
    bob = register_user('bob@example.com')
    client.post('/wishlist', json={'book_id': book['id']}, headers=auth(alice))

    assert client.get('/wishlist', headers=auth(bob)).json() == []
    assert client.post('/wishlist', json={'book_id': 404}, headers=auth(bob)).status_code == 404
    assert client.get('/wishlist').status_code in (401, 403)
