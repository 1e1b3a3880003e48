"""
Realtime app for WebSocket communication with geo cell based fan-out.

This app provides:
- A geohash cell codec (current cell + Moore neighbours)
- An in-memory registry of live connections and their cells
- A fan-out dispatcher that delivers report events to nearby connections
- The WebSocket consumer clients connect to
- JWT authentication middleware for WebSocket connections

Key Components:
    - geo.py: cell encode/decode/neighbours
    - registry.py: connection -> cell membership
    - dispatcher.py: nearby fan-out with broadcast fallback
    - notifications.py: report/blog event helpers used by services
    - consumers/: WebSocket consumers

Usage:
    from realtime.consumers import RescueConsumer
    from realtime.notifications import notify_report_event, broadcast_blog
    from realtime.registry import get_connection_registry
    from realtime.geo import encode_cell, cell_neighbors
"""
