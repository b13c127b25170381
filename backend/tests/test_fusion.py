"""Tests for weighted Reciprocal Rank Fusion."""

from __future__ import annotations

import pytest

from notecatalog.search.fusion import ChannelHit, rrf_fuse, single_channel


def _hits(channel: str, *doc_ids: int) -> list[ChannelHit]:
    return [
        ChannelHit(document_id=doc_id, rank=rank, score=1.0 - rank * 0.1, channel=channel)
        for rank, doc_id in enumerate(doc_ids)
    ]


class TestRRFFuse:
    def test_documents_in_both_channels_rank_first(self):
        fused = rrf_fuse({"keyword": _hits("keyword", 1, 2, 3), "semantic": _hits("semantic", 3, 1)})
        assert [h.document_id for h in fused] == [1, 3, 2]
        assert fused[0].score == pytest.approx(1 / 61 + 1 / 62)
        assert fused[0].channels == ["keyword", "semantic"]

    def test_weights_change_order(self):
        fused = rrf_fuse(
            {"keyword": _hits("keyword", 1), "semantic": _hits("semantic", 2)},
            weights={"keyword": 0.5, "semantic": 1.0},
        )
        assert [h.document_id for h in fused] == [2, 1]
        assert fused[1].score == pytest.approx(0.5 / 61)

    def test_missing_weight_defaults_to_one(self):
        fused = rrf_fuse({"ingredient": _hits("ingredient", 9)}, weights={"keyword": 2.0})
        assert fused[0].score == pytest.approx(1 / 61)

    def test_ties_keep_first_seen_order(self):
        fused = rrf_fuse({"keyword": _hits("keyword", 5, 6), "semantic": _hits("semantic", 7, 8)})
        assert [h.document_id for h in fused] == [5, 7, 6, 8]

    def test_duplicate_within_channel_counts_once(self):
        fused = rrf_fuse({"keyword": _hits("keyword", 1, 1, 2)})
        by_id = {h.document_id: h for h in fused}
        assert by_id[1].score == pytest.approx(1 / 61)
        assert len(by_id[1].contributions) == 1
        assert by_id[2].contributions[0].rank == 2

    def test_contributions_sum_to_score(self):
        fused = rrf_fuse(
            {"keyword": _hits("keyword", 1, 2), "snapshot_keyword": _hits("snapshot_keyword", 2)},
            weights={"snapshot_keyword": 0.6},
            k=10,
        )
        for hit in fused:
            assert hit.score == pytest.approx(sum(c.rrf_score for c in hit.contributions))
        two = next(h for h in fused if h.document_id == 2)
        assert [c.channel for c in two.contributions] == ["keyword", "snapshot_keyword"]
        assert two.contributions[1].raw_score == 1.0

    def test_extra_channel_ranking_a_document_first_only_raises_it(self):
        base = {"keyword": _hits("keyword", 1, 2, 3), "semantic": _hits("semantic", 2, 1)}
        before = {h.document_id: h.score for h in rrf_fuse(base)}
        after = {h.document_id: h.score for h in rrf_fuse({**base, "ingredient": _hits("ingredient", 3)})}
        assert after[3] > before[3]
        assert after[1] == before[1]
        assert after[2] == before[2]

    def test_deterministic(self):
        lists = {"keyword": _hits("keyword", 4, 2, 9), "semantic": _hits("semantic", 9, 4, 1)}
        first = [h.model_dump() for h in rrf_fuse(lists)]
        second = [h.model_dump() for h in rrf_fuse(lists)]
        assert first == second

    def test_empty_input(self):
        assert rrf_fuse({}) == []
        assert rrf_fuse({"keyword": []}) == []


class TestSingleChannel:
    def test_keeps_native_order_and_raw_scores(self):
        hits = _hits("keyword", 3, 1, 3, 2)
        wrapped = single_channel(hits)
        assert [h.document_id for h in wrapped] == [3, 1, 2]
        assert [h.score for h in wrapped] == pytest.approx([1.0, 0.9, 0.7])
        assert wrapped[0].channels == ["keyword"]
