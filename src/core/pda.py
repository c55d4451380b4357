"""
Program-derived address primitive.

Every PDA in the project goes through derive_address so the seed lists
live with the platform address providers and nothing else touches
find_program_address.
"""

from collections.abc import Sequence

from solders.pubkey import Pubkey

Seed = bytes | str | Pubkey


def seed_bytes(seed: Seed) -> bytes:
    """Normalise one seed to raw bytes (str seeds are UTF-8 encoded)."""
    if isinstance(seed, Pubkey):
        return bytes(seed)
    if isinstance(seed, str):
        return seed.encode("utf-8")
    return bytes(seed)


def derive_address(seeds: Sequence[Seed], program_id: Pubkey) -> Pubkey:
    """Derive the canonical (highest bump) off-curve address for seeds.

    Args:
        seeds: Ordered seeds, each at most 32 bytes
        program_id: Owning program

    Returns:
        The derived address
    """
    address, _ = derive_address_with_bump(seeds, program_id)
    return address


def derive_address_with_bump(
    seeds: Sequence[Seed], program_id: Pubkey
) -> tuple[Pubkey, int]:
    """Same as derive_address but also returns the bump that was found."""
    raw = [seed_bytes(seed) for seed in seeds]
    for seed in raw:
        if len(seed) > 32:
            raise ValueError(f"Seed longer than 32 bytes: {seed!r}")
    return Pubkey.find_program_address(raw, program_id)
