"""Route units served by the integration test application."""
