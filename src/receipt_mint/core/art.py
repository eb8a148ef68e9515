"""Art template registry and selection.

The pool is loaded once at startup and passed explicitly to ``select_art``.
Selection only reads from it.
"""

import logging
import random
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from types import MappingProxyType

from pydantic import BaseModel, Field, ValidationError

from receipt_mint.core.tags import RANDOM_TAG
from receipt_mint.models import ArtOption, Rarity, Tier, TierId

logger = logging.getLogger(__name__)

DEFAULT_ART_POOL_PATH = Path(__file__).parent.parent / "data" / "art_pool.json"

BONUS_RARITIES = frozenset({Rarity.RARE, Rarity.LEGENDARY})


class ArtPoolError(ValueError):
    """Raised when an art pool document is invalid."""


class ArtPoolDocument(BaseModel):
    """On-disk layout of the art registry."""

    buckets: dict[str, list[ArtOption]]
    bonus: dict[TierId, list[ArtOption]] = Field(default_factory=dict)


class ArtPool:
    """Immutable, tag-indexed collection of art options.

    ``buckets`` maps a category to its entries and must include ``random``,
    the fallback bucket. ``bonus`` entries are only offered to the tier they
    are filed under.
    """

    def __init__(
        self,
        buckets: Mapping[str, Iterable[ArtOption]],
        bonus: Mapping[TierId, Iterable[ArtOption]] | None = None,
    ) -> None:
        self._buckets = MappingProxyType(
            {name.lower(): tuple(options) for name, options in buckets.items()}
        )
        self._bonus = MappingProxyType(
            {TierId(tier): tuple(options) for tier, options in (bonus or {}).items()}
        )
        self._validate()

    def _validate(self) -> None:
        if RANDOM_TAG not in self._buckets or not self._buckets[RANDOM_TAG]:
            raise ArtPoolError("Art pool needs a non-empty 'random' bucket")

        for tier, options in self._bonus.items():
            for option in options:
                if option.rarity not in BONUS_RARITIES:
                    raise ArtPoolError(
                        f"Bonus art {option.id} for {tier.value} must be rare or "
                        f"legendary, not {option.rarity.value}"
                    )

        seen: set[str] = set()
        for option in self:
            if option.id in seen:
                raise ArtPoolError(f"Duplicate art id: {option.id}")
            seen.add(option.id)

    def __iter__(self):
        for options in self._buckets.values():
            yield from options
        for options in self._bonus.values():
            yield from options

    def __len__(self) -> int:
        return sum(1 for _ in self)

    @property
    def buckets(self) -> Mapping[str, tuple[ArtOption, ...]]:
        return self._buckets

    @property
    def fallback(self) -> tuple[ArtOption, ...]:
        return self._buckets[RANDOM_TAG]

    def bonus_for(self, tier: TierId) -> tuple[ArtOption, ...]:
        return self._bonus.get(tier, ())

    def matching(self, tags: Iterable[str]) -> list[ArtOption]:
        """Entries filed under one of ``tags`` or tagged with one of them."""
        wanted = {tag.lower() for tag in tags}
        return [
            option
            for bucket, options in self._buckets.items()
            for option in options
            if bucket in wanted or not wanted.isdisjoint(option.tags)
        ]


def load_art_pool(path: str | Path | None = None) -> ArtPool:
    """Load and validate the art registry.

    Args:
        path: JSON registry file. Defaults to the packaged pool.

    Raises:
        FileNotFoundError: If the file does not exist.
        ArtPoolError: If the document is malformed or breaks pool rules.
    """
    pool_path = Path(path) if path else DEFAULT_ART_POOL_PATH
    if not pool_path.is_file():
        raise FileNotFoundError(f"Art pool not found: {pool_path}")

    try:
        document = ArtPoolDocument.model_validate_json(
            pool_path.read_text(encoding="utf-8")
        )
    except ValidationError as e:
        raise ArtPoolError(f"Invalid art pool {pool_path}: {e}") from e

    pool = ArtPool(document.buckets, document.bonus)
    logger.info("Loaded %d art options from %s", len(pool), pool_path)
    return pool


def select_art(
    pool: ArtPool,
    tags: Sequence[str],
    tier: Tier | TierId | str,
    count: int = 6,
    rng: random.Random | None = None,
) -> list[ArtOption]:
    """Pick up to ``count`` unique art options for a receipt.

    Premium and luxury receipts get their tier's bonus entries first, then
    every entry matching ``tags``. Short lists are topped up from the
    ``random`` bucket. The result is shuffled with ``rng`` and truncated, so
    a seeded ``rng`` makes the selection reproducible.

    Returns fewer than ``count`` options only when the pool runs out.
    """
    if count <= 0:
        return []
    rng = rng or random.Random()
    if isinstance(tier, Tier):
        tier_id = tier.id
    elif isinstance(tier, TierId):
        tier_id = tier
    else:
        tier_id = TierId(tier.upper())

    unique: dict[str, ArtOption] = {}
    for option in (*pool.bonus_for(tier_id), *pool.matching(tags)):
        unique.setdefault(option.id, option)

    if len(unique) < count:
        fallback = [option for option in pool.fallback if option.id not in unique]
        rng.shuffle(fallback)
        for option in fallback[: count - len(unique)]:
            unique[option.id] = option

    selected = list(unique.values())
    if len(selected) < count:
        logger.debug(
            "Art pool exhausted: wanted %d options, found %d", count, len(selected)
        )

    rng.shuffle(selected)
    return selected[:count]
