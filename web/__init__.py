"""Read-only HTTP API over the run ledger.

All business logic is delegated to core modules in multiarch/.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
