"""
Realtime app for pushing course notifications and chat messages to drivers.

Key Components:
    - consumers/: WebSocket consumers (one stream per driver)
    - notifications.py: group_send helpers called after row inserts
    - middleware.py: JWT/Cookie authentication for WebSocket connections

Usage:
    from realtime.consumers import DriverConsumer
    from realtime.notifications import publish_notification, publish_chat_message
"""
