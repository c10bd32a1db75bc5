"""服务模块"""

from .broadcaster import (UpdateBroadcaster, SubscriberRegistry, build_message,
                          MESSAGE_CONNECTED, MESSAGE_SYSTEM_HEALTH, MESSAGE_SERVICE_HEALTH)
from .config_manager import ConfigManager
from .config_watcher import ConfigWatcher
from .health_aggregator import HealthAggregator, build_snapshot
from .monitor_scheduler import HealthScheduler

__all__ = ['UpdateBroadcaster', 'SubscriberRegistry', 'build_message',
           'MESSAGE_CONNECTED', 'MESSAGE_SYSTEM_HEALTH', 'MESSAGE_SERVICE_HEALTH',
           'ConfigManager', 'ConfigWatcher', 'HealthAggregator', 'build_snapshot',
           'HealthScheduler']
