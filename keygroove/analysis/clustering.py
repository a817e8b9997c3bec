"""Tolerance-based clustering of BPM candidates."""

from bisect import bisect_left, bisect_right
from collections.abc import Iterable

from keygroove.analysis.models import BpmCandidate, BpmCluster


def _as_candidates(values: Iterable[BpmCandidate | float]) -> list[BpmCandidate]:
    return [v if isinstance(v, BpmCandidate) else BpmCandidate(bpm=float(v)) for v in values]


def cluster_bpms(
    values: Iterable[BpmCandidate | float],
    tolerance: float = 3.0,
    limit: int | None = None,
) -> list[BpmCluster]:
    """Group BPM candidates around each other within +/- tolerance.

    Every candidate seeds a neighbourhood of all candidates within
    *tolerance* of it. Neighbourhoods are ranked by summed support, then by
    member count, then by lower BPM spread; the best one becomes a cluster
    and its members are removed before the next round. Plain floats are
    treated as candidates with support 1.0; weak candidates such as half-time
    guesses cannot outvote fewer strong ones on numbers alone.

    Returns at most *limit* clusters, best-first.
    """
    remaining = sorted(_as_candidates(values), key=lambda c: c.bpm)
    clusters: list[BpmCluster] = []

    while remaining and (limit is None or len(clusters) < limit):
        bpms = [c.bpm for c in remaining]
        best_span = (0, 1)
        best_rank = None
        for seed in bpms:
            lo = bisect_left(bpms, seed - tolerance)
            hi = bisect_right(bpms, seed + tolerance)
            members = remaining[lo:hi]
            rank = (sum(c.support for c in members), hi - lo, -(bpms[hi - 1] - bpms[lo]))
            if best_rank is None or rank > best_rank:
                best_rank = rank
                best_span = (lo, hi)

        lo, hi = best_span
        members = remaining[lo:hi]
        clusters.append(BpmCluster(
            bpm=sum(c.bpm for c in members) / len(members),
            members=members,
            support=sum(c.support for c in members),
        ))
        remaining = remaining[:lo] + remaining[hi:]

    return clusters


def dominant_cluster(
    values: Iterable[BpmCandidate | float],
    tolerance: float = 3.0,
    min_share: float = 0.3,
    min_count: int = 2,
) -> BpmCluster | None:
    """Return the best-supported cluster if it is representative enough.

    The cluster is accepted when it holds at least *min_share* of the total
    support or at least *min_count* candidates.
    """
    candidates = _as_candidates(values)
    if not candidates:
        return None
    best = cluster_bpms(candidates, tolerance, limit=1)[0]
    total = sum(c.support for c in candidates)
    share = best.support / total if total > 0 else 0.0
    if share >= min_share or best.size >= min_count:
        return best
    return None
