"""HTTP routers, one module per resource."""

from . import admin, ai, auth, books, categories, dashboard, reservations, sellers, uploads, wishlist

ROUTERS = [
    auth.router,
    books.router,
    categories.router,
    sellers.router,
    sellers.profile_router,
    reservations.router,
    wishlist.router,
    dashboard.router,
    admin.router,
    ai.router,
    uploads.router,
]
