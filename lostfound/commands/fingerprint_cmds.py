from __future__ import annotations

from itertools import combinations
from pathlib import Path

import typer
from rich import print

from ..errors import FingerprintError


def fingerprint_cmd(
    *,
    compute_fingerprint,
    hamming_distance,
    images: list[Path],
    size: int,
    bits: int,
    compare: bool,
) -> None:
    """Print a perceptual fingerprint per image, optionally with pairwise distances."""

    if bits < 2 or bits % 2 or size < bits:
        print(f"[red]Invalid grid: bits={bits} size={size} (bits must be even, 2..size)[/red]")
        raise typer.Exit(code=1)

    fingerprints: dict[Path, str] = {}
    failed = False
    for image in images:
        try:
            fingerprints[image] = compute_fingerprint(image, size=size, bits=bits)
        except (FingerprintError, OSError, ValueError) as exc:
            print(f"[red]{image}: {exc}[/red]")
            failed = True
            continue
        print(f"{fingerprints[image]}  {image}")
    if compare and len(fingerprints) > 1:
        print("")
        for (left, left_hash), (right, right_hash) in combinations(fingerprints.items(), 2):
            distance = hamming_distance(left_hash, right_hash)
            print(f"{distance:>3}  {left} <-> {right}")
    if failed:
        raise typer.Exit(code=1)
