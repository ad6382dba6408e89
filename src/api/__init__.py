"""HTTP API layer of Hexgate, hosted by FastAPI.

Key components:
- **main**: Application factory, lifespan and the catch-all dispatch endpoint
- **bootstrap**: The per-request initialization pipeline
- **routing**: Route unit discovery, per-unit routers and the dispatcher
- **controllers**: Controller base contract and the fallback controller
- **request** / **response**: Immutable request view and the response builder
- **security**: API key verification
- **services**: Default service registrations for the process registry
- **middleware**: Correlation ids, request logging and exception handlers
- **schemas**: Pydantic error payload
"""
