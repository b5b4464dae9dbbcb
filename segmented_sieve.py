#!/usr/bin/env python3
"""
Cache-aware segmented sieve of Eratosthenes (single core, NumPy buffers)

Counts the primes <= n by sieving fixed-size windows that fit in the L1 data
cache. Sieving primes are discovered incrementally by a small bootstrap sieve
and each one carries its next odd multiple from window to window, so no
division is needed to find a starting point.

Examples:
  python segmented_sieve.py              # primes below 10^9
  python segmented_sieve.py 1000000 -v   # with timing on stderr
"""

import argparse
import math
import re
import sys
import time
from collections import namedtuple

import numpy as np

# L1 data cache size in bytes; one flag per byte
L1D_CACHE_SIZE = 32_768
DEFAULT_LIMIT = 1_000_000_000
INT64_MAX = 2**63 - 1

Segment = namedtuple("Segment", "low high flags registry")


class SieveCancelled(Exception):
    """Raised when a run is stopped between two segments."""

    def __init__(self, low: int, partial):
        super().__init__(f"sieve cancelled before segment starting at {low}")
        self.low = low
        self.partial = partial


class SievingPrime:
    __slots__ = ("_prime", "next_offset")

    def __init__(self, prime: int, next_offset: int):
        self._prime = prime
        # position of the next odd multiple, relative to the current low
        self.next_offset = next_offset

    @property
    def prime(self) -> int:
        return self._prime

    def __repr__(self):
        return f"SievingPrime({self.prime}, {self.next_offset})"


class SievingPrimeRegistry:
    """Append-only list of sieving primes, in ascending order."""

    def __init__(self):
        self._items: list[SievingPrime] = []

    def append(self, prime: int, next_offset: int) -> SievingPrime:
        if self._items and prime <= self._items[-1].prime:
            raise ValueError(f"sieving prime {prime} registered out of order")
        sp = SievingPrime(prime, next_offset)
        self._items.append(sp)
        return sp

    def primes(self) -> list[int]:
        return [sp.prime for sp in self._items]

    def __iter__(self):
        return iter(self._items)

    def __len__(self):
        return len(self._items)


class BootstrapCursor:
    """
    Simple sieve over [0, sqrt(limit)] that is extended lazily as the segment
    boundary grows. Two cursors only ever move forward:
      i : next odd candidate whose multiples have not been struck out
      s : next odd value not yet checked for registration
    """

    def __init__(self, sqrt_limit: int):
        self.sqrt_limit = sqrt_limit
        self.is_prime = np.ones(sqrt_limit + 1, dtype=bool)
        self.i = 3
        self.s = 3

    def extend_to(self, sqrt_high: int) -> None:
        i = self.i
        while i <= sqrt_high:
            if self.is_prime[i]:
                # strike up to sqrt(limit), not sqrt_high: i is never revisited
                self.is_prime[i * i :: 2 * i] = False
            i += 2
        self.i = i

    def register(self, sqrt_high: int, low: int, registry: SievingPrimeRegistry) -> int:
        """Append every prime in [s, sqrt_high] to registry; returns how many."""
        s = self.s
        if s > sqrt_high:
            return 0
        found = s + 2 * np.flatnonzero(self.is_prime[s : sqrt_high + 1 : 2])
        for p in found.tolist():
            registry.append(p, p * p - low)
        # next odd value past sqrt_high
        self.s = sqrt_high + 1 if sqrt_high & 1 == 0 else sqrt_high + 2
        return len(found)


def mark_segment(flags: np.ndarray, registry: SievingPrimeRegistry) -> None:
    """Strike odd multiples of every sieving prime and carry the overshoot."""
    size = len(flags)
    for sp in registry:
        offset = sp.next_offset
        step = 2 * sp.prime
        if offset < size:
            flags[offset::step] = False
            # first position past the end of the buffer
            offset += -(-(size - offset) // step) * step
        sp.next_offset = offset - size


def _first_odd(low: int) -> int:
    # smallest odd candidate >= low, skipping 1
    return max(3, low | 1)


class CountingPass:
    """Counts true flags at odd offsets. 2 is counted up front."""

    def __init__(self, limit: int):
        self.result = 1 if limit >= 2 else 0

    def __call__(self, low: int, high: int, flags: np.ndarray) -> None:
        n = _first_odd(low)
        if n <= high:
            self.result += int(np.count_nonzero(flags[n - low : high - low + 1 : 2]))


class CollectingPass:
    """Collects the primes themselves instead of counting them."""

    def __init__(self, limit: int):
        self.result: list[int] = [2] if limit >= 2 else []

    def __call__(self, low: int, high: int, flags: np.ndarray) -> None:
        n = _first_odd(low)
        if n <= high:
            idx = np.flatnonzero(flags[n - low : high - low + 1 : 2])
            self.result.extend((n + 2 * idx).tolist())


class SegmentedSieve:
    def __init__(self, limit: int, cache_size: int = L1D_CACHE_SIZE):
        if cache_size < 1:
            raise ValueError(f"cache_size must be positive, got {cache_size}")
        self.limit = max(int(limit), 0)
        self.sqrt_limit = math.isqrt(self.limit)
        self.segment_size = max(self.sqrt_limit, cache_size)

    def segments(self, should_stop=None):
        """
        Sieve [0, limit] window by window, yielding a Segment once its flags
        are final. Windows are visited in increasing order; the flag buffer is
        reused and must not be kept past the next iteration.
        """
        limit = self.limit
        size = self.segment_size
        bootstrap = BootstrapCursor(self.sqrt_limit)
        registry = SievingPrimeRegistry()
        flags = np.empty(size, dtype=bool)

        low = 0
        while low <= limit:
            if should_stop is not None and should_stop():
                raise SieveCancelled(low, None)
            flags.fill(True)

            # current segment = [low, high]
            high = min(low + size - 1, limit)
            sqrt_high = math.isqrt(high)

            bootstrap.extend_to(sqrt_high)
            bootstrap.register(sqrt_high, low, registry)
            mark_segment(flags, registry)

            yield Segment(low, high, flags, registry)
            low += size

    def run(self, segment_pass, should_stop=None):
        try:
            for seg in self.segments(should_stop):
                segment_pass(seg.low, seg.high, seg.flags)
        except SieveCancelled as exc:
            exc.partial = segment_pass.result
            raise
        return segment_pass.result

    def count(self, should_stop=None) -> int:
        return self.run(CountingPass(self.limit), should_stop)

    def primes(self, should_stop=None) -> list[int]:
        return self.run(CollectingPass(self.limit), should_stop)


def count_primes(limit: int, cache_size: int = L1D_CACHE_SIZE) -> int:
    """Number of primes <= limit."""
    return SegmentedSieve(limit, cache_size).count()


def primes_upto(limit: int, cache_size: int = L1D_CACHE_SIZE) -> list[int]:
    """All primes <= limit, ascending."""
    return SegmentedSieve(limit, cache_size).primes()


_LEADING_INT = re.compile(r"\s*([+-]?\d+)", re.ASCII)
_FLAGS = ("-v", "--verbose", "-h", "--help")


def parse_limit(text: str) -> int:
    """Lenient integer parse (atol-style). Malformed or negative input gives 0."""
    m = _LEADING_INT.match(text)
    if not m:
        return 0
    value = int(m.group(1))
    if value < 0:
        return 0
    return min(value, INT64_MAX)


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Cache-aware segmented sieve of Eratosthenes.")
    ap.add_argument("n", nargs="?", default=str(DEFAULT_LIMIT),
                    help=f"Count the primes <= n (default: {DEFAULT_LIMIT:,}).")
    ap.add_argument("-v", "--verbose", action="store_true",
                    help="Print segment size and timing to stderr.")
    if argv is None:
        argv = sys.argv[1:]
    # only exact flags reach argparse; the first other token is the limit and
    # anything after it is ignored, so malformed input never exits non-zero
    rest = [a for a in argv if a not in _FLAGS]
    args = ap.parse_args([a for a in argv if a in _FLAGS])

    limit = parse_limit(rest[0] if rest else args.n)
    sieve = SegmentedSieve(limit)
    if args.verbose:
        print(f"Sieving primes <= {limit:,} | Segment size: {sieve.segment_size:,}",
              file=sys.stderr)

    t0 = time.perf_counter()
    count = sieve.count()
    elapsed = time.perf_counter() - t0

    print(f"{count} primes found.")
    if args.verbose:
        print(f"Elapsed: {elapsed:.3f}s", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
