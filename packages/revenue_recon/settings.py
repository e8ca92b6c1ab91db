"""Engine settings: reconcilable channels and operator-owned identities."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .normalizers import normalize_identity

DEFAULT_RECONCILABLE_CHANNELS: tuple[str, ...] = (
    "Card",
    "iDEAL",
    "SEPA Direct Debit",
    "Card reader",
)

CHANNELS_ENV_VAR = "RECON_RECONCILABLE_CHANNELS"
OPERATOR_IDENTITIES_ENV_VAR = "RECON_OPERATOR_IDENTITIES"


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """Immutable per-run configuration.

    ``reconcilable_channels`` is matched case-insensitively as a substring of
    the feed-A channel label. ``operator_identities`` are normalized identity
    keys excluded from the comparison list.
    """

    reconcilable_channels: tuple[str, ...] = DEFAULT_RECONCILABLE_CHANNELS
    operator_identities: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def build(
        cls,
        *,
        reconcilable_channels: Iterable[str] | None = None,
        operator_identities: Iterable[str] | None = None,
    ) -> EngineSettings:
        channels = (
            tuple(c for c in reconcilable_channels if c.strip())
            if reconcilable_channels is not None
            else DEFAULT_RECONCILABLE_CHANNELS
        )
        identities = frozenset(
            key for key in (normalize_identity(i) for i in operator_identities or ()) if key
        )
        return cls(reconcilable_channels=channels, operator_identities=identities)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineSettings:
        env = os.environ if environ is None else environ
        raw_channels = env.get(CHANNELS_ENV_VAR)
        raw_identities = env.get(OPERATOR_IDENTITIES_ENV_VAR)
        return cls.build(
            reconcilable_channels=_split_csv(raw_channels) if raw_channels else None,
            operator_identities=_split_csv(raw_identities) if raw_identities else None,
        )

    def is_reconcilable(self, channel: str | None) -> bool:
        label = (channel or "").lower()
        if not label:
            return False
        return any(c.lower() in label for c in self.reconcilable_channels)


__all__ = [
    "DEFAULT_RECONCILABLE_CHANNELS",
    "EngineSettings",
]
