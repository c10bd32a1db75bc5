"""服务健康门户

定时探测已注册服务的HTTP健康状态，记录检查历史，
计算系统整体健康状况并通过WebSocket实时推送。
"""

__version__ = "1.0.0"
