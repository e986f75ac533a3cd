"""Backend package for the Adenosis Livraria book marketplace.

The FastAPI app lives in `livraria.main`; business rules in
`livraria.services`, persistence in `livraria.repositories` and
`livraria.models`, and the HTTP layer in `livraria.routes`.
"""
