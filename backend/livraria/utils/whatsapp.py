"""WhatsApp number normalization and wa.me contact links."""

import re
from typing import Optional
from urllib.parse import quote

COUNTRY_CODE = "55"


def format_whatsapp_number(number: Optional[str]) -> Optional[str]:
    """Normalize a Brazilian phone number to `55DDDNNNNNNNN`.

    Returns None when the digits do not form a valid number: either
    10/11 digits (area code + number) or 12/13 digits already prefixed
    with the country code.
    """
    if not number:
        return None
    cleaned = re.sub(r"\D", "", number)
    if cleaned.startswith(COUNTRY_CODE) and len(cleaned) in (12, 13):
        return cleaned
    if not cleaned.startswith(COUNTRY_CODE) and len(cleaned) in (10, 11):
        return COUNTRY_CODE + cleaned
    return None


def whatsapp_link(number: Optional[str], message: str) -> Optional[str]:
    if not number:
        return None
    return f"https://wa.me/{number}?text={quote(message, safe='')}"


def book_interest_message(title: str) -> str:
    return f'Olá, tenho interesse no livro "{title}" que vi na Adenosis Livraria!'


def reservation_message(store_name: Optional[str], title: str, reservation_id: int) -> str:
    return (
        f'Olá, {store_name or "Vendedor"}! Tenho interesse no livro "{title}" '
        f"(ID da reserva: {reservation_id}) que vi na Adenosis Livraria e gostaria "
        "de combinar a compra. Minha reserva foi registrada."
    )


def store_message(store_name: str) -> str:
    return f"Olá, {store_name}! Vi sua loja na Adenosis Livraria e gostaria de mais informações."
