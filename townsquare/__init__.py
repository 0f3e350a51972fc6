"""
Townsquare — Authorization & Consistency Core for Community Networks
=====================================================================
Users follow hierarchical communities (city → municipality → local),
publish posts scoped to visibility tiers, and interact through follows,
likes, comments, direct messages, and moderator elections.  This package
decides who may read or write what, and keeps the derived counters honest.

Package layout::

    townsquare/
    ├── config.py          # YAML → typed Python config (+ AccessPolicy)
    ├── constants.py       # Limits, defaults
    ├── errors.py          # Domain error hierarchy (kind + HTTP status)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, session helper, async bridge
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── events.py      # DomainEvent envelope + EventType
    │   ├── visibility.py  # Pure visibility-tier rules
    │   └── tally.py       # Pure election tally + tie-break
    ├── services/
    │   ├── community_service.py    # CommunityGraph
    │   ├── membership_service.py   # MembershipStore
    │   ├── counter_service.py      # CounterMaintainer
    │   ├── access_service.py       # VisibilityEvaluator (DB-backed)
    │   ├── content_service.py      # Posts, comments, likes
    │   ├── messaging_service.py    # MessagingGate + direct messages
    │   ├── moderation_service.py   # Moderator set + privileged path
    │   ├── election_service.py     # ElectionEngine
    │   ├── event_bus.py            # Synchronous dispatch + domain event outbox
    │   └── reconciliation_service.py  # Counter recount / drift repair
    └── api/
        ├── main.py        # FastAPI app + error mapping
        ├── deps.py        # JWT principal / admin dependencies
        ├── serializers.py # ORM row → JSON dict
        ├── tasks.py       # Expired-round sweep + reconciliation loop
        └── routes/        # REST endpoints
"""

__version__ = "0.1.0"
