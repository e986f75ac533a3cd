"""File parsing utilities that turn seller spreadsheets into book rows.

Supported input types: JSON and CSV. Parsers return a list of
dictionaries keyed by book field names (`title`, `author`, `price`,
`condition`, `category_name`, ...). Column headers are matched
case-insensitively against common Portuguese and English names so a
spreadsheet exported by hand imports without manual mapping. Values are
left as strings; `normalize_price` and `normalize_condition` are applied
when a row is validated.
"""

import csv
import io
import json
import unicodedata
from typing import Dict, List, Optional, Union

HEADER_ALIASES = {
    'title': 'title',
    'titulo': 'title',
    'livro': 'title',
    'author': 'author',
    'autor': 'author',
    'autores': 'author',
    'price': 'price',
    'preco': 'price',
    'valor': 'price',
    'condition': 'condition',
    'condicao': 'condition',
    'estado': 'condition',
    'category': 'category_name',
    'category_name': 'category_name',
    'categoryname': 'category_name',
    'categoria': 'category_name',
    'genero': 'category_name',
    'description': 'description',
    'descricao': 'description',
    'sinopse': 'description',
    'stock': 'stock',
    'estoque': 'stock',
    'quantidade': 'stock',
    'qtd': 'stock',
    'cover_image_url': 'cover_image_url',
    'coverimageurl': 'cover_image_url',
    'url da imagem': 'cover_image_url',
    'url da capa': 'cover_image_url',
    'imagem': 'cover_image_url',
    'capa': 'cover_image_url',
    'isbn': 'isbn',
    'publisher': 'publisher',
    'editora': 'publisher',
    'publication_year': 'publication_year',
    'publicationyear': 'publication_year',
    'ano': 'publication_year',
    'ano de publicacao': 'publication_year',
    'ano publicacao': 'publication_year',
    'language': 'language',
    'idioma': 'language',
    'pages': 'pages',
    'paginas': 'pages',
    'no de paginas': 'pages',
    'no. de paginas': 'pages',
}

CONDITION_ALIASES = {
    'novo': 'NEW',
    'new': 'NEW',
    'usado - como novo': 'USED_LIKE_NEW',
    'usado como novo': 'USED_LIKE_NEW',
    'like new': 'USED_LIKE_NEW',
    'usado': 'USED_GOOD',
    'usado - bom': 'USED_GOOD',
    'usado bom': 'USED_GOOD',
    'good': 'USED_GOOD',
    'usado - razoavel': 'USED_FAIR',
    'usado razoavel': 'USED_FAIR',
    'fair': 'USED_FAIR',
}


def parse_file_to_book_rows(file_bytes: bytes, filename: str) -> List[Dict]:
    """Dispatch to the appropriate parser based on file extension."""
    name = filename.lower()
    if name.endswith('.json'):
        return parse_json(file_bytes)
    if name.endswith('.csv'):
        return parse_csv(file_bytes)
    raise ValueError('Unsupported file type; use .csv or .json')


def parse_json(b: bytes) -> List[Dict]:
    """Parse a JSON array of book objects, or an object with a `books` array."""
    data = json.loads(b.decode('utf-8-sig'))
    if isinstance(data, dict):
        data = data.get('books')
    if not isinstance(data, list):
        raise ValueError('JSON must be an array of books or {"books": [...]}')
    return [map_headers(item) for item in data if isinstance(item, dict)]


def parse_csv(b: bytes) -> List[Dict]:
    """Parse a CSV with a header row.

    Both comma and semicolon separated files are accepted (spreadsheets
    set to pt-BR export with `;`). Blank lines are skipped.
    """
    text = b.decode('utf-8-sig')
    first_line = text.splitlines()[0] if text.strip() else ''
    delimiter = ';' if first_line.count(';') > first_line.count(',') else ','
    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    out = []
    for row in reader:
        if not any((v or '').strip() for v in row.values() if isinstance(v, str)):
            continue
        out.append(map_headers(row))
    return out


def map_headers(row: dict) -> dict:
    """Rename known headers to book field names; unknown columns are dropped."""
    out = {}
    for key, value in row.items():
        if key is None:
            continue
        field = HEADER_ALIASES.get(_fold(key))
        if field is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if value == '':
                continue
        out[field] = value
    return out


def normalize_price(value: Union[str, int, float, None]) -> Optional[float]:
    """Turn "R$ 1.234,56", "29,90" or "29.90" into a float.

    When a comma is present it is the decimal separator and dots are
    thousand separators. Returns None when nothing numeric is left.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).replace('R$', '').replace(' ', '').strip()
    if ',' in cleaned:
        cleaned = cleaned.replace('.', '').replace(',', '.')
    try:
        return float(cleaned)
    except ValueError:
        return None


def normalize_condition(value):
    """Map a Portuguese/English label to a condition code; unknown passes through."""
    if not isinstance(value, str):
        return value
    folded = _fold(value)
    if folded in CONDITION_ALIASES:
        return CONDITION_ALIASES[folded]
    return value.strip().upper()


def _fold(text: str) -> str:
    """Lower-case and strip accents so 'Preço' matches 'preco'."""
    decomposed = unicodedata.normalize('NFKD', str(text))
    ascii_only = ''.join(c for c in decomposed if not unicodedata.combining(c))
    return ' '.join(ascii_only.lower().split())
