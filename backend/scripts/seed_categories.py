"""CLI script to seed the category list.
Usage: python scripts/seed_categories.py [NAME ...]
Without names, a default set of common book categories is created.
"""
import sys
import argparse
import pathlib
from typing import List, Optional
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from livraria.database import engine, create_db_and_tables
from livraria import services

DEFAULT_CATEGORIES = [
    'Romance',
    'Ficção Científica',
    'Fantasia',
    'Suspense',
    'Biografia',
    'História',
    'Autoajuda',
    'Infantil',
    'Poesia',
    'Didáticos',
]


def main(names: Optional[List[str]] = None) -> int:
    create_db_and_tables()
    with Session(engine) as session:
        created, messages = services.CategoryService(session).create_many(names or DEFAULT_CATEGORIES)
    for m in messages:
        print(m)
    print(f'Total created categories: {len(created)}')
    return len(created)


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('names', nargs='*', help='Category names (defaults to a built-in list)')
    args = parser.parse_args()
    main(args.names)
