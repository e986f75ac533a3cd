"""Email templates (pt-BR) for account and reservation events.

Every builder returns `(subject, html)`. User-supplied values are HTML
escaped before they are interpolated.
"""

from datetime import datetime
from html import escape
from typing import Tuple

from .config import settings

BRAND_COLOR = "#059669"

_BUTTON = (
    f'<a href="{{href}}" target="_blank" style="background-color: {BRAND_COLOR}; color: white; '
    'padding: 10px 20px; text-decoration: none; border-radius: 5px; display: inline-block;">{label}</a>'
)

MONTHS_PT = [
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]


def _wrap(title: str, body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; line-height: 1.6;">'
        f'<h1 style="color: {BRAND_COLOR};">{title}</h1>'
        f"{body}"
        "</div>"
    )


def _button(href: str, label: str) -> str:
    return _BUTTON.format(href=escape(href, quote=True), label=label)


def _link_fallback(href: str) -> str:
    safe = escape(href, quote=True)
    return (
        "<p>Se o botão não funcionar, copie e cole o seguinte link no seu navegador:</p>"
        f'<p><a href="{safe}" target="_blank">{safe}</a></p>'
    )


def format_date_pt(value: datetime) -> str:
    return f"{value.day} de {MONTHS_PT[value.month - 1]} de {value.year}, {value:%H:%M}"


def verification_email(name: str, token: str) -> Tuple[str, str]:
    link = f"{settings.APP_URL}/verify-email?token={token}"
    body = (
        f"<p>Olá {escape(name)},</p>"
        "<p>Obrigado por se registrar. Por favor, clique no botão abaixo para verificar seu "
        "endereço de email e ativar sua conta:</p>"
        f"{_button(link, 'Verificar Email Agora')}"
        f"{_link_fallback(link)}"
        "<p>Este link é válido por 24 horas. Se você não se registrou, por favor, ignore este email.</p>"
        "<p>Atenciosamente,<br>Equipe Adenosis Livraria</p>"
    )
    return "Verifique seu endereço de email - Adenosis Livraria", _wrap("Bem-vindo(a) à Adenosis Livraria!", body)


def password_reset_email(name: str, token: str) -> Tuple[str, str]:
    link = f"{settings.APP_URL}/reset-password?token={token}"
    body = (
        f"<p>Olá {escape(name or 'Usuário')},</p>"
        "<p>Recebemos uma solicitação para redefinir a senha da sua conta na Adenosis Livraria.</p>"
        "<p>Por favor, clique no botão abaixo para criar uma nova senha:</p>"
        f"{_button(link, 'Redefinir Senha')}"
        f"{_link_fallback(link)}"
        "<p>Este link é válido por 1 hora. Se você não solicitou esta redefinição, por favor, "
        "ignore este email.</p>"
        "<p>Atenciosamente,<br>Equipe Adenosis Livraria</p>"
    )
    return "Redefinição de Senha - Adenosis Livraria", _wrap("Solicitação de Redefinição de Senha", body)


def new_reservation_email(
    seller_name: str,
    book_title: str,
    book_author: str,
    customer_name: str,
    customer_email: str,
    reserved_at: datetime,
) -> Tuple[str, str]:
    title = escape(book_title)
    body = (
        f"<p>Olá {escape(seller_name)},</p>"
        f'<p>Você recebeu uma nova reserva para o livro "<strong>{title}</strong>".</p>'
        "<p><strong>Detalhes da Reserva:</strong></p>"
        "<ul>"
        f"<li><strong>Livro:</strong> {title}</li>"
        f"<li><strong>Autor:</strong> {escape(book_author)}</li>"
        f"<li><strong>Cliente:</strong> {escape(customer_name)}</li>"
        f"<li><strong>Email do Cliente:</strong> {escape(customer_email)}</li>"
        f"<li><strong>Data da Reserva:</strong> {format_date_pt(reserved_at)}</li>"
        "</ul>"
        "<p>Esta reserva já consta no seu painel de controle em \"Livros Reservados\". Por favor, "
        "entre em contato com o cliente para combinar os próximos passos.</p>"
        "<p>Para gerenciar suas reservas, acesse seu dashboard:</p>"
        f"{_button(settings.APP_URL + '/dashboard/reservations', 'Ir para o Dashboard')}"
        "<p>Atenciosamente,<br>Equipe Adenosis Livraria</p>"
    )
    return f"Nova Reserva para o Livro: {book_title}", _wrap("Nova Reserva na Adenosis Livraria!", body)


def reservation_confirmed_email(customer_name: str, store_name: str, book_title: str, token: str) -> Tuple[str, str]:
    link = f"{settings.APP_URL}/confirm-delivery?token={token}"
    store = escape(store_name)
    body = (
        f"<p>Olá {escape(customer_name)},</p>"
        f"<p>Boas notícias! O vendedor da loja <strong>{store}</strong> confirmou a sua reserva para "
        f'o livro "<strong>{escape(book_title)}</strong>".</p>'
        "<p>Agora, por favor, após receber/retirar seu livro, clique no link abaixo para confirmar o "
        "recebimento e, se desejar, avaliar o vendedor. Este passo é importante para finalizar a transação.</p>"
        f"{_button(link, 'Confirmar Recebimento e Avaliar')}"
        f"{_link_fallback(link)}"
        "<p>Este link é válido por 72 horas.</p>"
        "<p>Obrigado por usar a Adenosis Livraria!</p>"
        f"<p>Atenciosamente,<br>Equipe Adenosis Livraria (em nome de {store})</p>"
    )
    return (
        f'Sua reserva do livro "{book_title}" foi confirmada!',
        _wrap(f"Reserva Confirmada - {store}", body),
    )


def reservation_cancelled_email(customer_name: str, store_name: str, book_title: str) -> Tuple[str, str]:
    body = (
        f"<p>Olá {escape(customer_name)},</p>"
        f"<p>A loja <strong>{escape(store_name)}</strong> cancelou a sua reserva para o livro "
        f'"<strong>{escape(book_title)}</strong>".</p>'
        "<p>Você pode continuar explorando o acervo e fazer uma nova reserva quando quiser.</p>"
        f"{_button(settings.APP_URL + '/books', 'Ver Livros')}"
        "<p>Atenciosamente,<br>Equipe Adenosis Livraria</p>"
    )
    return f'Sua reserva do livro "{book_title}" foi cancelada', _wrap("Reserva Cancelada", body)
