"""Core infrastructure package for shared application functionality.

This package provides the foundational components used by the bootstrap
pipeline and every dispatched controller:

- **config**: Centralized configuration management with environment support
- **context**: Request context, correlation IDs and request-scoped profilers
- **environment**: Deployment tier detection and debug verbosity policy
- **exceptions**: Structured exception hierarchy with error codes
- **error_context**: Sensitive data sanitization for safe logging
- **handlers**: Process-wide exception/warning handlers and debug level state
- **logging**: Structured logging with Loguru
- **observability**: Distributed tracing with OpenTelemetry
- **profiling**: Time and database profilers
- **registry**: Process and request scoped service registry
- **types**: Type aliases for better code clarity
"""
