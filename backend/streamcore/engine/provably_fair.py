"""
Provably Fair Selection.

Seeded, reproducible shuffles and draws for bracket seeding, bonus-hunt
queue ordering and giveaway winner selection.

Core principles:
─────────────────────────────────────────────────────────────────

1. Seed:
   - secrets.token_hex(32): a fresh 256-bit value per operation
   - generated at the moment of the lock/draw, never derived from ids or time
   - persisted afterwards together with sha256(seed) for audit

2. Shuffle (bracket / queue order):
   - rng = random.Random(int(sha256(seed), 16))
   - Fisher-Yates: for i = n-1 .. 1: j = rng.randint(0, i); swap(i, j)

3. Draw (giveaway winner):
   - digest = sha256(seed | [context |] key_1,key_2,...,key_n)
   - index = int(digest, 16) mod n

4. Verification:
   - anyone holding the seed and the same ordered input snapshot
     recomputes the identical permutation or index

─────────────────────────────────────────────────────────────────
"""

import hashlib
import random
import secrets
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional, TypeVar

T = TypeVar("T")

SeedFactory = Callable[[], str]


@dataclass(frozen=True)
class DrawProof:
    """Everything needed to recompute a draw."""

    seed: str
    seed_hash: str
    entries_hash: str
    index: int
    entry_count: int
    context: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "seed": self.seed,
            "seed_hash": self.seed_hash,
            "entries_hash": self.entries_hash,
            "index": self.index,
            "entry_count": self.entry_count,
            "context": self.context,
        }


class FairSelector:
    """
    Deterministic selection driven by a recorded seed.

    ``shuffle`` and ``draw`` are pure functions of their arguments: no
    global RNG state, no clock. Only ``generate_seed`` touches the CSPRNG.
    """

    SEED_BYTES = 32  # 256-bit

    @staticmethod
    def generate_seed() -> str:
        """
        Generate a fresh seed from the CSPRNG.

        Returns:
            64 hex chars
        """
        return secrets.token_hex(FairSelector.SEED_BYTES)

    @staticmethod
    def hash_seed(seed: str) -> str:
        """SHA-256 commitment of a seed."""
        return hashlib.sha256(seed.encode()).hexdigest()

    @staticmethod
    def rng(seed: str) -> random.Random:
        """Deterministic PRNG for a seed."""
        seed_int = int(hashlib.sha256(seed.encode()).hexdigest(), 16)
        return random.Random(seed_int)

    @staticmethod
    def shuffle(seed: str, items: Sequence[T]) -> list[T]:
        """
        Deterministic Fisher-Yates shuffle.

        Args:
            seed: recorded seed
            items: input snapshot; its order is part of the contract

        Returns:
            New list with the permutation (input is not modified)
        """
        rng = FairSelector.rng(seed)
        shuffled = list(items)

        for i in range(len(shuffled) - 1, 0, -1):
            j = rng.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]

        return shuffled

    @staticmethod
    def fingerprint(keys: Sequence[str]) -> str:
        """SHA-256 of the ordered, comma-joined keys."""
        return hashlib.sha256(",".join(keys).encode()).hexdigest()

    @staticmethod
    def draw_index(
        seed: str,
        keys: Sequence[str],
        context: Optional[str] = None,
    ) -> int:
        """
        Index of the drawn item.

        index = int(sha256(seed|[context|]k1,k2,...), 16) mod len(keys)

        Raises:
            ValueError: if keys is empty
        """
        if not keys:
            raise ValueError("Cannot draw from an empty sequence")

        parts = [seed]
        if context is not None:
            parts.append(context)
        parts.append(",".join(keys))
        digest = hashlib.sha256("|".join(parts).encode()).hexdigest()
        return int(digest, 16) % len(keys)

    @staticmethod
    def draw(
        seed: str,
        items: Sequence[T],
        key: Callable[[T], str] = str,
        context: Optional[str] = None,
    ) -> T:
        """
        Draw one item.

        Args:
            seed: recorded seed
            items: ordered input snapshot
            key: stable identity of an item (entry id)
            context: optional domain separator (giveaway id)
        """
        keys = [key(item) for item in items]
        return items[FairSelector.draw_index(seed, keys, context)]

    @staticmethod
    def prove_draw(
        seed: str,
        keys: Sequence[str],
        context: Optional[str] = None,
    ) -> DrawProof:
        """Draw and return the full proof record."""
        return DrawProof(
            seed=seed,
            seed_hash=FairSelector.hash_seed(seed),
            entries_hash=FairSelector.fingerprint(keys),
            index=FairSelector.draw_index(seed, keys, context),
            entry_count=len(keys),
            context=context,
        )

    @staticmethod
    def verify_draw(
        seed: str,
        seed_hash: str,
        keys: Sequence[str],
        expected_index: int,
        context: Optional[str] = None,
        expected_entries_hash: Optional[str] = None,
    ) -> tuple[bool, Optional[str]]:
        """
        Recompute a draw from its published data.

        Returns:
            (success, error_message)
        """
        if FairSelector.hash_seed(seed) != seed_hash:
            return False, "Seed hash mismatch"

        if expected_entries_hash is not None:
            if FairSelector.fingerprint(keys) != expected_entries_hash:
                return False, "Entries hash mismatch"

        if not keys:
            return False, "No entries to draw from"

        if FairSelector.draw_index(seed, keys, context) != expected_index:
            return False, "Winner index mismatch"

        return True, None
