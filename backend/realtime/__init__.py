"""
Realtime app for WebSocket communication.

This app provides:
- WebSocket consumers for drivers, riders, and ride tracking
- Caller-owned subscriptions (watch_ride, watch_nearby_rides) with debounced feed refresh
- Notification helpers for sending real-time updates
- JWT/Cookie authentication middleware for WebSocket connections

Key Components:
    - consumers/: WebSocket consumers (driver, rider, ride)
    - subscriptions.py: Subscription handles over channel-layer groups
    - debounce.py: Trailing-edge debounce for feed refreshes
    - notifications.py: Live ride updates and ride event notifications
"""
