"""
Presence Gateway Components.

Organized into domain-specific modules:
- core/       - Foundational components (constants, audit context)
- connection/ - Per-connection state (registry, heartbeat, rate limiting)
- events/     - Wire messages (inbound validation, outbound shapes)
- endpoints/  - WebSocket endpoints (base, mixins, handlers)
- metrics/    - Observability (collector)

New code should import from specific submodules.
"""
