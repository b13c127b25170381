# @TEST tests/test_fusion.py

"""Weighted Reciprocal Rank Fusion over retrieval channel outputs.

A document at 0-based rank ``r`` in channel ``c`` contributes::

    weight_c / (k + r + 1)

Contributions from every channel that returned the document are summed.
Ordering is by fused score descending; equal scores keep the order in
which documents were first seen (channels are visited in the order given).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from pydantic import BaseModel, Field


class ChannelHit(BaseModel):
    """One candidate from one retrieval channel."""

    document_id: int
    rank: int  # 0-based, in the channel's native order
    score: float  # channel's raw score (ts_rank, cosine similarity, ...)
    channel: str


class ChannelContribution(BaseModel):
    """A single channel's contribution to a fused score."""

    channel: str
    rank: int
    raw_score: float
    rrf_score: float  # weight / (k + rank + 1)


class FusedHit(BaseModel):
    """A document with its fused score and the channels that produced it."""

    document_id: int
    score: float
    channels: list[str] = Field(default_factory=list)
    contributions: list[ChannelContribution] = Field(default_factory=list)


def rrf_fuse(
    channel_hits: Mapping[str, Sequence[ChannelHit]],
    weights: Mapping[str, float] | None = None,
    k: int = 60,
) -> list[FusedHit]:
    """Merge ranked channel lists with weighted RRF.

    Args:
        channel_hits: Channel name -> hits in that channel's native order.
            A document repeated within one channel only counts once, at its
            best rank.
        weights: Channel name -> weight. Missing channels weigh 1.0.
        k: Smoothing constant.

    Returns:
        Fused hits sorted by score descending, ties in first-seen order.
    """
    weights = weights or {}
    fused: dict[int, FusedHit] = {}

    for channel, hits in channel_hits.items():
        weight = float(weights.get(channel, 1.0))
        seen: set[int] = set()
        for rank, hit in enumerate(hits):
            if hit.document_id in seen:
                continue
            seen.add(hit.document_id)
            contribution = weight / (k + rank + 1)
            item = fused.get(hit.document_id)
            if item is None:
                item = FusedHit(document_id=hit.document_id, score=0.0)
                fused[hit.document_id] = item
            item.score += contribution
            item.channels.append(channel)
            item.contributions.append(
                ChannelContribution(channel=channel, rank=rank, raw_score=hit.score, rrf_score=contribution)
            )

    # sorted() is stable, so equal scores keep insertion order
    return sorted(fused.values(), key=lambda item: item.score, reverse=True)


def single_channel(hits: Sequence[ChannelHit]) -> list[FusedHit]:
    """Wrap one channel's hits without fusion, keeping native order and raw scores."""
    out: list[FusedHit] = []
    seen: set[int] = set()
    for rank, hit in enumerate(hits):
        if hit.document_id in seen:
            continue
        seen.add(hit.document_id)
        out.append(
            FusedHit(
                document_id=hit.document_id,
                score=hit.score,
                channels=[hit.channel],
                contributions=[
                    ChannelContribution(channel=hit.channel, rank=rank, raw_score=hit.score, rrf_score=hit.score)
                ],
            )
        )
    return out
