"""Immutable registry of configured limits.

``LimitsConfig`` maps action names to their quota rules together with the
key namespacing, and builds ``Limit`` objects from them. It is constructed
explicitly (usually from settings) and passed to whoever needs it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping

from trafficjam.adapters.store.base import AbstractLimitStore
from trafficjam.core.config import LimitRule, Settings, settings
from trafficjam.core.errors import LimitNotFoundError
from trafficjam.core.keys import KeyDeriver
from trafficjam.core.limit import DEFAULT_MAX_ATTEMPTS, Limit


@dataclass(frozen=True)
class LimitsConfig:
    """Configured quota rules per action.

    Attributes:
        rules: Read-only mapping of action name to rule.
        key_prefix: Namespace of derived keys.
        hash_length: Subject digest characters kept in keys.
        max_attempts: Conditional write attempts per operation.
    """

    rules: Mapping[str, LimitRule] = field(default_factory=dict)
    key_prefix: str = "tj"
    hash_length: int = 12
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        rules = {
            action: rule if isinstance(rule, LimitRule) else LimitRule.model_validate(rule)
            for action, rule in self.rules.items()
        }
        object.__setattr__(self, "rules", MappingProxyType(rules))

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> LimitsConfig:
        """Build the registry from settings (defaults to the global settings)."""

        cfg = source or settings
        return cls(
            rules=cfg.limits,
            key_prefix=cfg.key.prefix,
            hash_length=cfg.key.hash_length,
            max_attempts=cfg.store.max_attempts,
        )

    def __contains__(self, action: object) -> bool:
        return action in self.rules

    def rule(self, action: str) -> LimitRule:
        """Return the rule registered for ``action``.

        Raises:
            LimitNotFoundError: If no rule is registered.
        """
        try:
            return self.rules[action]
        except KeyError:
            raise LimitNotFoundError(
                code="limit_not_found",
                message="Limit not found",
                details={"action": action},
            ) from None

    def max(self, action: str) -> float:
        return self.rule(action).max

    def period(self, action: str) -> int:
        return self.rule(action).period

    @property
    def key_deriver(self) -> KeyDeriver:
        return KeyDeriver(prefix=self.key_prefix, hash_length=self.hash_length)

    def limit(
        self,
        action: str,
        subject: Any,
        *,
        store: AbstractLimitStore,
        clock: Callable[[], float] = time.time,
    ) -> Limit:
        """Build a ``Limit`` for ``subject`` using the rule of ``action``."""

        rule = self.rule(action)
        return Limit(
            action,
            subject,
            rule.max,
            rule.period,
            store=store,
            key_deriver=self.key_deriver,
            clock=clock,
            max_attempts=self.max_attempts,
        )
