"""
Age Check Relay service package.

The relay answers "is the account behind display name X verified 18+?" for
game clients, enforcing:
- Admission: user-agent, Unity version and caller-tag allow-lists
- Outbound pacing: a cooldown gate in front of every upstream lookup
- One authenticated upstream session for the whole process

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.adapters: VRChat API client and its error types.
- app.admission: Allow-list filter and middleware.
- app.ratelimit: Cooldown gate.
- app.session: Upstream session lifecycle.
- app.resolver: Exact-match user resolution.
- app.domain: Error translation.
"""
