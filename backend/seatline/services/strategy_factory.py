"""
Commit strategy factory.
Configures which commit strategy checkout uses.
"""

from typing import Optional

from seatline.services.interfaces.commit import CommitStrategy
from seatline.services.commit_strategies import CompensatingCommit, TransactionalCommit
from seatline.core.config import get_settings

STRATEGIES: dict[str, type[CommitStrategy]] = {
    TransactionalCommit.name: TransactionalCommit,
    CompensatingCommit.name: CompensatingCommit,
}


def get_commit_strategy(name: Optional[str] = None) -> CommitStrategy:
    """
    Build a commit strategy.

    - transactional: the store supports multi-record transactions (default)
    - compensating: one commit per write, undo on failure

    Selected by the COMMIT_STRATEGY env var unless `name` is given.
    """
    strategy = name or get_settings().COMMIT_STRATEGY
    try:
        return STRATEGIES[strategy]()
    except KeyError:
        raise ValueError(
            f"Unknown COMMIT_STRATEGY {strategy!r}, expected one of {sorted(STRATEGIES)}"
        ) from None


# Singleton instance
_strategy: Optional[CommitStrategy] = None


def get_committer() -> CommitStrategy:
    """Get commit strategy singleton, chosen once per process."""
    global _strategy
    if _strategy is None:
        _strategy = get_commit_strategy()
    return _strategy
