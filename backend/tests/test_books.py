import json

from fastapi.testclient import TestClient

from livraria import models
from livraria.config import settings
from livraria.main import app

from factories import (
    auth,
    book_payload,
    create_book,
    get_row,
    make_category,
    register_admin,
    register_seller,
    register_user,
    update_row,
)

client = TestClient(app)


def test_seller_creates_book_and_public_can_read_it():
    seller = register_seller('seller@example.com')
    category_id = make_category('Romance')
    book = create_book(seller, category_id, isbn='  ', publisher=' Editora Ática ')
    assert book['status'] == 'PUBLISHED'
    assert book['isbn'] is None
    assert book['publisher'] == 'Editora Ática'
    assert book['category']['name'] == 'Romance'
    assert book['seller']['store_name'] == 'Sebo Central'

    r = client.get(f"/books/{book['id']}")
    assert r.status_code == 200
    detail = r.json()
    assert detail['title'] == 'Dom Casmurro'
    assert detail['whatsapp_link'].startswith('https://wa.me/5511987654321?text=')
    assert 'Dom%20Casmurro' in detail['whatsapp_link']


def test_create_book_requires_seller_and_existing_category():
    category_id = make_category()
    reader = register_user('reader@example.com')
    r = client.post('/books', json=book_payload(category_id), headers=auth(reader))
    assert r.status_code == 403

    seller = register_seller('seller@example.com')
    r = client.post('/books', json=book_payload(9999), headers=auth(seller))
    assert r.status_code == 400
    assert r.json()['field'] == 'category_id'

    r = client.post('/books', json=book_payload(category_id, price=0), headers=auth(seller))
    assert r.status_code == 422
    r = client.post('/books', json=book_payload(category_id, title='ab'), headers=auth(seller))
    assert r.status_code == 422


def test_unpublished_book_hidden_from_public_but_visible_to_owner():
    seller = register_seller('seller@example.com')
    book = create_book(seller, make_category())
    update_row(models.Book, book['id'], status=models.BookStatus.UNPUBLISHED)

    assert client.get(f"/books/{book['id']}").status_code == 404
    assert client.get(f"/books/{book['id']}", headers=auth(seller)).status_code == 200
    other = register_user('other@example.com')
    assert client.get(f"/books/{book['id']}", headers=auth(other)).status_code == 404
    assert client.get('/books').json()['pagination']['total_items'] == 0


def test_list_books_sorting_filtering_and_pagination():
    seller = register_seller('seller@example.com')
    romance = make_category('Romance')
    poesia = make_category('Poesia')
    create_book(seller, romance, title='Livro Caro', price=80)
    create_book(seller, romance, title='Livro Barato', price=10)
    create_book(seller, poesia, title='Livro Medio', price=40, author='Cecília Meireles')

    r = client.get('/books', params={'sort': 'price_asc'})
    assert [b['title'] for b in r.json()['data']] == ['Livro Barato', 'Livro Medio', 'Livro Caro']
    r = client.get('/books', params={'sort': 'price_desc'})
    assert r.json()['data'][0]['title'] == 'Livro Caro'
    r = client.get('/books')
    assert r.json()['data'][0]['title'] == 'Livro Medio'

    r = client.get('/books', params={'category_id': poesia})
    assert [b['title'] for b in r.json()['data']] == ['Livro Medio']
    r = client.get('/books', params={'q': 'cecília'})
    assert r.json()['pagination']['total_items'] == 1

    r = client.get('/books', params={'limit': 2, 'page': 2})
    body = r.json()
    assert len(body['data']) == 1
    assert body['pagination'] == {'total_items': 3, 'current_page': 2, 'items_per_page': 2, 'total_pages': 2}


def test_search_matches_title_category_and_store():
    seller = register_seller('seller@example.com', store_name='Sebo Aurora')
    create_book(seller, make_category('Fantasia'), title='O Hobbit', author='J. R. R. Tolkien')
    assert [b['title'] for b in client.get('/books/search', params={'q': 'hobb'}).json()] == ['O Hobbit']
    assert len(client.get('/books/search', params={'q': 'fantasia'}).json()) == 1
    assert len(client.get('/books/search', params={'q': 'aurora'}).json()) == 1
    assert client.get('/books/search', params={'q': 'zzz'}).json() == []


def test_search_term_too_short():
    r = client.get('/books/search', params={'q': ' a '})
    assert r.status_code == 400
    assert client.get('/books/search').status_code == 400


def test_update_book_owner_only_and_cover_cleanup(storage):
    seller = register_seller('seller@example.com')
    category_id = make_category()
    storage.upload_bytes('books/1_capa.jpg', b'old', 'image/jpeg')
    book = create_book(seller, category_id)

    intruder = register_seller('intruder@example.com', store_name='Outra Loja', whatsapp='11912345678')
    r = client.put(f"/books/{book['id']}", json={'price': 1}, headers=auth(intruder))
    assert r.status_code == 403

    r = client.put(
        f"/books/{book['id']}",
        json={'price': 35.5, 'cover_image_url': 'https://storage.example.test/books/2_nova.jpg', 'title': None},
        headers=auth(seller),
    )
    assert r.status_code == 200
    body = r.json()
    assert body['price'] == 35.5
    assert body['title'] == 'Dom Casmurro'
    assert 'books/1_capa.jpg' not in storage.stored_objects

    r = client.put(f"/books/{book['id']}", json={'category_id': 4242}, headers=auth(seller))
    assert r.status_code == 400
    assert client.put('/books/4242', json={'price': 1}, headers=auth(seller)).status_code == 404


def test_admin_can_manage_any_book():
    seller = register_seller('seller@example.com')
    book = create_book(seller, make_category())
    admin = register_admin()
    r = client.put(f"/books/{book['id']}", json={'stock': 5}, headers=auth(admin))
    assert r.status_code == 200
    assert r.json()['stock'] == 5


def test_delete_book_removes_wishlist_entries_and_cover(storage):
    seller = register_seller('seller@example.com')
    storage.upload_bytes('books/1_capa.jpg', b'img', 'image/jpeg')
    book = create_book(seller, make_category())
    reader = register_user('reader@example.com')
    client.post('/wishlist', json={'book_id': book['id']}, headers=auth(reader))

    r = client.delete(f"/books/{book['id']}", headers=auth(seller))
    assert r.status_code == 200
    assert client.get(f"/books/{book['id']}").status_code == 404
    assert client.get('/wishlist', headers=auth(reader)).json() == []
    assert storage.stored_objects == {}


def test_delete_book_blocked_by_open_reservation():
    seller = register_seller('seller@example.com')
    book = create_book(seller, make_category())
    reader = register_user('reader@example.com')
    r = client.post('/reservations', json={'book_id': book['id']}, headers=auth(reader))
    assert r.status_code == 201
    reservation_id = r.json()['reservation_id']

    r = client.delete(f"/books/{book['id']}", headers=auth(seller))
    assert r.status_code == 409
    assert get_row(models.Book, book['id']) is not None

    client.patch(f"/dashboard/reservations/{reservation_id}/cancel", headers=auth(seller))
    assert client.delete(f"/books/{book['id']}", headers=auth(seller)).status_code == 200


def test_batch_delete_only_touches_own_books():
    seller = register_seller('seller@example.com')
    other = register_seller('other@example.com', store_name='Outra Loja', whatsapp='11912345678')
    category_id = make_category()
    mine = [create_book(seller, category_id, title=f'Meu Livro {i}')['id'] for i in range(2)]
    theirs = create_book(other, category_id, title='Livro Alheio')['id']

    r = client.post('/books/batch-delete', json={'book_ids': mine + [theirs]}, headers=auth(seller))
    assert r.status_code == 200
    assert r.json()['count'] == 2
    assert get_row(models.Book, theirs) is not None
    assert client.post('/books/batch-delete', json={'book_ids': []}, headers=auth(seller)).status_code == 422


def test_batch_import_json_rows_with_errors():
    seller = register_seller('seller@example.com')
    make_category('Romance')
    rows = [
        {'Título': 'O Cortiço', 'Autor': 'Aluísio Azevedo', 'Preço': 'R$ 19,90', 'Condição': 'Usado', 'Categoria': 'romance'},
        {'title': 'Vidas Secas', 'author': 'Graciliano Ramos', 'price': 'abc', 'condition': 'NEW', 'category': 'Clássicos'},
        {'title': 'Capitães da Areia', 'author': 'Jorge Amado', 'price': 25, 'condition': 'novo',
         'categoria': 'Clássicos', 'ISBN': 9788535914061, 'estoque': '3'},
    ]
    r = client.post('/books/batch-import', json={'books': rows}, headers=auth(seller))
    assert r.status_code == 200
    body = r.json()
    assert body['success_count'] == 2
    assert body['error_count'] == 1
    assert body['errors'][0]['row'] == 1
    assert body['errors'][0]['data']['title'] == 'Vidas Secas'
    assert 'price' in body['errors'][0]['message']

    names = [c['name'] for c in client.get('/categories').json()]
    assert sorted(names) == ['Clássicos', 'Romance']

    books = {b['title']: b for b in client.get('/books').json()['data']}
    assert books['O Cortiço']['price'] == 19.9
    assert books['O Cortiço']['condition'] == 'USED_GOOD'
    assert books['O Cortiço']['cover_image_url'] == '/cover.jpg'
    assert books['Capitães da Areia']['isbn'] == '9788535914061'
    assert books['Capitães da Areia']['stock'] == 3


def test_batch_import_file_csv_semicolon():
    seller = register_seller('seller@example.com')
    csv_text = (
        'Título;Autor;Preço;Condição;Categoria;Nº de Páginas\n'
        'Memórias Póstumas;Machado de Assis;1.234,50;Usado - Como Novo;Romance;208\n'
        ';;;;;\n'
        'X;Autor Bom;10;NEW;Romance;\n'
    )
    files = {'file': ('livros.csv', csv_text.encode('utf-8'), 'text/csv')}
    r = client.post('/books/batch-import/file', files=files, headers=auth(seller))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body['success_count'] == 1
    assert body['error_count'] == 1
    assert body['errors'][0]['row'] == 1

    book = client.get('/books').json()['data'][0]
    assert book['price'] == 1234.5
    assert book['condition'] == 'USED_LIKE_NEW'
    assert book['pages'] == 208


def test_batch_import_file_json_and_bad_types():
    seller = register_seller('seller@example.com')
    payload = json.dumps({'books': [
        {'title': 'Grande Sertão', 'author': 'Guimarães Rosa', 'price': '59.9', 'condition': 'USED_FAIR', 'category': 'Romance'},
    ]}).encode()
    r = client.post('/books/batch-import/file', files={'file': ('books.json', payload, 'application/json')}, headers=auth(seller))
    assert r.status_code == 200
    assert r.json()['success_count'] == 1

    r = client.post('/books/batch-import/file', files={'file': ('books.xlsx', b'PK..', 'application/octet-stream')}, headers=auth(seller))
    assert r.status_code == 400
    r = client.post('/books/batch-import/file', files={'file': ('books.json', b'{"foo": 1}', 'application/json')}, headers=auth(seller))
    assert r.status_code == 400
    r = client.post('/books/batch-import/file', files={'file': ('vazio.csv', b'', 'text/csv')}, headers=auth(seller))
    assert r.status_code == 400


def test_batch_import_requires_seller():
    reader = register_user('reader@example.com')
    r = client.post('/books/batch-import', json={'books': [{'title': 'x'}]}, headers=auth(reader))
    assert r.status_code == 403


def test_bad_token_on_public_detail_is_treated_as_anonymous():
    seller = register_seller('seller@example.com')
    book = create_book(seller, make_category())
    r = client.get(f"/books/{book['id']}", headers={'Authorization': 'Bearer garbage'})
    assert r.status_code == 200
    assert r.json()['whatsapp_link'].startswith('https://wa.me/')

    update_row(models.Book, book['id'], status=models.BookStatus.UNPUBLISHED)
    r = client.get(f"/books/{book['id']}", headers={'Authorization': 'Bearer garbage'})
    assert r.status_code == 404


def test_batch_import_file_too_large(monkeypatch):
    seller = register_seller('seller@example.com')
    monkeypatch.setattr(settings, 'MAX_UPLOAD_BYTES', 10)
    csv_text = 'Título;Autor;Preço;Condição;Categoria\nDom Casmurro;Machado de Assis;10;NEW;Romance\n'
    r = client.post('/books/batch-import/file', files={'file': ('livros.csv', csv_text.encode('utf-8'), 'text/csv')}, headers=auth(seller))
    assert r.status_code == 413
    assert client.get('/books').json()['pagination']['total_items'] == 0


def test_rejected_import_file_is_logged(caplog):
    seller = register_seller('seller@example.com')
    with caplog.at_level('WARNING', logger='routes.books'):
        r = client.post('/books/batch-import/file', files={'file': ('books.xlsx', b'PK..', 'application/octet-stream')}, headers=auth(seller))
    assert r.status_code == 400
    assert 'import_file_rejected' in caplog.text
