"""
Driver-side client runtime.

Runs on the driver's device (or a headless agent) and talks to the backend
over HTTP and the per-driver websocket. Nothing here imports Django.

Key Components:
    - api.py: aiohttp client for the REST endpoints
    - sampler.py: location throttling before upload
    - channel.py: websocket subscription yielding raw events
    - events.py: typed realtime events
    - router.py: dedup, self-filtering and alert dispatch
    - alerts.py: sound and haptic selection
    - countdown.py: start unlock countdown
"""
