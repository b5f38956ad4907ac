"""
Shared module for cross-cutting concerns of the presence gateway.

- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging, audit helpers

- shared.infrastructure: Runtime plumbing
  - correlation.py: Connection id binding for log records

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.logging import get_logger
"""
