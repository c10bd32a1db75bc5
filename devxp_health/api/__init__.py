"""HTTP与WebSocket接口模块"""

from .routes import (STORE_KEY, AGGREGATOR_KEY, SCHEDULER_KEY, BROADCASTER_KEY,
                     SERVER_CONFIG_KEY, parse_history_limit, setup_routes)
from .server import create_app, start_web_server

__all__ = ['STORE_KEY', 'AGGREGATOR_KEY', 'SCHEDULER_KEY', 'BROADCASTER_KEY',
           'SERVER_CONFIG_KEY', 'parse_history_limit', 'setup_routes',
           'create_app', 'start_web_server']
