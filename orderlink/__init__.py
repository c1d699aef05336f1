"""
OrderLink - real-time order chat and agent location gateway.

- Authenticated websocket namespaces for order chat and live location
- Chat activation and last positions kept in a shared cache
- Notification fan-out to every order participant
- SQL or in-memory stores behind typed contracts
"""

__version__ = "0.1.0"

from .config import GatewayConfig, ConfigLoader, load_config
from .server import OrderLinkServer
from .asgi import OrderLinkApp, create_app

__all__ = [
    "__version__",
    "GatewayConfig",
    "ConfigLoader",
    "load_config",
    "OrderLinkServer",
    "OrderLinkApp",
    "create_app",
]
