"""Route units served by the application.

Each module is one route unit, named after the first URL path segment it
serves (``orders.py`` serves ``/orders/...``). A unit exposes
``setup(router, request)``, which registers its controller actions on the
per-request :class:`~src.api.routing.UnitRouter`. ``generic.py`` serves
requests with an empty first segment.
"""
