from __future__ import annotations

from ..records import canonical_pair


class HistoryGuard:
    """Answers whether two users have ever been paired, in either order.

    Pairs created earlier in the same pass are remembered locally so the
    guard stays correct even when the ledger lookup lags behind its writes.
    """

    def __init__(self, ledger) -> None:
        self.ledger = ledger
        self._seen: set[tuple[str, str]] = set()

    def remember(self, id_a: str, id_b: str) -> None:
        self._seen.add(canonical_pair(id_a, id_b))

    def has_prior_pairing(self, id_a: str, id_b: str) -> bool:
        if canonical_pair(id_a, id_b) in self._seen:
            return True
        return bool(self.ledger.has_pair(id_a, id_b))
