"""Topic routing for outbox records.

Each logical database publishes to its own family of topics. The identity
database routes by aggregate type; auth and legal route by the prefix of
the event type.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from shared_kernel.outbox.value_objects import OutboxDatabase, OutboxRecord


@dataclass(frozen=True)
class TopicRule:
    """Routing table for one database.

    Attributes:
        default_topic: Used when no other rule matches
        aggregate_topics: Lowercased aggregate type -> topic
        event_prefix_topics: Uppercased event type prefix -> topic, checked
            in insertion order so longer prefixes should come first
    """

    default_topic: str
    aggregate_topics: Mapping[str, str] = field(default_factory=dict)
    event_prefix_topics: Mapping[str, str] = field(default_factory=dict)

    def resolve(self, aggregate_type: str, event_type: str) -> str:
        topic = self.aggregate_topics.get(aggregate_type.lower())
        if topic is not None:
            return topic

        upper_event_type = event_type.upper()
        for prefix, prefix_topic in self.event_prefix_topics.items():
            if upper_event_type.startswith(prefix):
                return prefix_topic

        return self.default_topic


DEFAULT_TOPIC_RULES: Mapping[OutboxDatabase, TopicRule] = MappingProxyType(
    {
        OutboxDatabase.IDENTITY: TopicRule(
            default_topic="identity.account.events",
            aggregate_topics={
                "account": "identity.account.events",
                "session": "identity.session.events",
                "device": "identity.device.events",
            },
        ),
        OutboxDatabase.AUTH: TopicRule(
            default_topic="auth.events",
            event_prefix_topics={
                "ROLE_": "auth.role",
                "OPERATOR_": "auth.operator",
                "SANCTION_": "auth.sanction",
                "SERVICE_": "auth.service",
                "PERMISSION_": "auth.permission",
                "ADMIN_": "auth.admin",
                "LOGIN_": "auth.login",
                "PASSWORD_": "auth.password",
                "TOKEN_": "auth.token",
            },
        ),
        OutboxDatabase.LEGAL: TopicRule(
            default_topic="legal.events",
            event_prefix_topics={
                "LEGAL_DOCUMENT_": "legal.document",
                "DOCUMENT_": "legal.document",
                "CONSENT_": "legal.consent",
                "DSR_": "legal.dsr",
            },
        ),
    }
)


class TopicRouter:
    """Chooses the message bus topic for an outbox record."""

    def __init__(
        self, rules: Mapping[OutboxDatabase, TopicRule] | None = None
    ) -> None:
        self._rules = dict(rules if rules is not None else DEFAULT_TOPIC_RULES)

    def topic_for(self, database: OutboxDatabase, record: OutboxRecord) -> str:
        """Return the topic for a record read from the given database.

        Raises:
            KeyError: If no rule is configured for the database
        """
        rule = self._rules[database]
        return rule.resolve(record.aggregate_type, record.event_type)
