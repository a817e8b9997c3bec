"""Tests for BPM candidate clustering."""

import pytest

from keygroove.analysis.clustering import cluster_bpms, dominant_cluster
from keygroove.analysis.models import BpmCandidate


def test_groups_values_within_tolerance():
    clusters = cluster_bpms([119.0, 120.0, 121.0, 90.0], tolerance=3.0)

    assert clusters[0].size == 3
    assert clusters[0].bpm == pytest.approx(120.0)
    assert clusters[1].size == 1
    assert clusters[1].bpm == pytest.approx(90.0)


def test_window_votes_ignore_outlier():
    cluster = dominant_cluster([118, 119, 120, 121, 122, 60], tolerance=3.0)

    assert round(cluster.bpm) == 120
    assert cluster.size == 5


def test_every_candidate_lands_in_exactly_one_cluster():
    values = [60.0, 61.0, 95.0, 99.0, 100.0, 140.0, 141.5, 143.0, 180.0]
    clusters = cluster_bpms(values, tolerance=3.0)

    members = sorted(c.bpm for cluster in clusters for c in cluster.members)
    assert members == sorted(values)


def test_tolerance_boundary_is_inclusive():
    clusters = cluster_bpms([120.0, 123.0], tolerance=3.0)
    assert len(clusters) == 1
    assert clusters[0].size == 2


def test_support_breaks_ties_between_equal_sized_groups():
    candidates = [
        BpmCandidate(bpm=150.0, support=0.5),
        BpmCandidate(bpm=151.0, support=0.5),
        BpmCandidate(bpm=100.0, support=1.0),
        BpmCandidate(bpm=101.0, support=1.0),
    ]
    best = cluster_bpms(candidates, tolerance=3.0, limit=1)

    assert len(best) == 1
    assert best[0].bpm == pytest.approx(100.5)
    assert best[0].support == pytest.approx(2.0)


def test_limit_caps_cluster_count():
    clusters = cluster_bpms([60.0, 100.0, 140.0, 180.0], tolerance=3.0, limit=2)
    assert len(clusters) == 2


def test_dominant_cluster_empty_input():
    assert dominant_cluster([]) is None


def test_dominant_cluster_accepts_by_share():
    # 1 of 3 candidates is a third of the votes
    cluster = dominant_cluster([100.0, 150.0, 180.0], min_share=0.3, min_count=2)
    assert cluster is not None
    assert cluster.size == 1


def test_dominant_cluster_accepts_by_count():
    # Two agreeing windows out of ten scattered ones is enough
    values = [100.0, 101.0, 60.0, 70.0, 80.0, 90.0, 120.0, 135.0, 160.0, 190.0]
    cluster = dominant_cluster(values, min_share=0.3, min_count=2)

    assert cluster is not None
    assert cluster.bpm == pytest.approx(100.5)


def test_dominant_cluster_rejects_scattered_votes():
    cluster = dominant_cluster([60.0, 100.0, 140.0, 180.0], min_share=0.3, min_count=2)
    assert cluster is None


def test_low_support_candidates_cannot_win_on_count():
    # Four half-weight guesses near 60 against three full intervals near 120
    candidates = [BpmCandidate(bpm=b, support=1.0) for b in (119.5, 120.0, 120.5)]
    candidates += [BpmCandidate(bpm=b, support=0.5) for b in (59.5, 60.0, 60.0, 60.5)]

    best = cluster_bpms(candidates, tolerance=3.0)[0]

    assert best.bpm == pytest.approx(120.0)
    assert best.size == 3


def test_dominant_cluster_share_is_weighted_by_support():
    candidates = [BpmCandidate(bpm=120.0, support=1.0)]
    candidates += [BpmCandidate(bpm=b, support=0.1) for b in (60.0, 80.0, 100.0, 140.0, 160.0, 180.0)]

    cluster = dominant_cluster(candidates, min_share=0.6, min_count=3)

    assert cluster is not None
    assert cluster.bpm == pytest.approx(120.0)
