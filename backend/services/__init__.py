"""
Services package - Business logic layer.

This package contains the dispatch logic that operates on Django models
but is decoupled from the HTTP/WebSocket layer.

Modules:
    - ride_management: Ride record store, state machine and lifecycle operations
    - matching: Driver-side ride feed and rider-side driver search
    - reassignment: Re-matching rides after a driver drops out
    - pricing / providers: Trip quotes and the external routing/geocoding APIs
"""
