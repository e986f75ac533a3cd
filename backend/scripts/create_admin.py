"""CLI script to create an administrator account or promote an existing one.
Usage: python scripts/create_admin.py EMAIL [--name NAME] [--password PASSWORD]
"""
import sys
import argparse
import pathlib
from typing import Optional
# Ensure `backend/` is on sys.path so `livraria` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from livraria.database import engine, create_db_and_tables
from livraria import services
from livraria.dependencies import get_mailer
from livraria.errors import LivrariaError


def main(email: str, name: str = 'Administrador', password: Optional[str] = None) -> int:
    """Ensure `email` is an ADMIN; returns a process exit code."""
    create_db_and_tables()
    with Session(engine) as session:
        svc = services.AuthService(session, get_mailer())
        try:
            user, created = svc.create_or_promote_admin(email, name, password)
        except LivrariaError as exc:
            print(f'Error: {exc.message}')
            return 1
        action = 'Created' if created else 'Promoted'
        print(f'{action} administrator {user.email} (id {user.id})')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('email', help='Account email')
    parser.add_argument('--name', default='Administrador', help='Display name for a new account')
    parser.add_argument('--password', help='Password (required when the account does not exist yet)')
    args = parser.parse_args()
    sys.exit(main(args.email, name=args.name, password=args.password))
