"""Tests for evidence extraction."""

import pytest
from youtube_discovery.models import CandidateVideo, ChannelCandidate, Evidence
from youtube_discovery.services.evidence_extractor import (
    EvidenceExtractor,
    detect_links,
    merge_evidence,
)


def _by_key(evidence):
    return {(e.type, e.keyword): e for e in evidence}


class TestExtract:
    """Test cases for keyword extraction from a single text."""

    @pytest.fixture
    def extractor(self):
        """Create evidence extractor instance."""
        return EvidenceExtractor(max_videos=10)

    def test_referral_text(self, extractor, referral_text):
        """Test commercial and contract evidence in a referral pitch."""
        found = _by_key(extractor.extract(referral_text, "description"))

        assert found[("commercial", "referral code")].count == 1
        assert found[("commercial", "referral")].count == 1
        assert found[("contract", "futures")].count == 1
        assert found[("contract", "futures trading")].count == 1
        assert all(e.source == "description" for e in found.values())

    def test_whole_word_only(self, extractor):
        """Test keywords do not match inside other words."""
        found = _by_key(extractor.extract("Futuresque margins and partnerships", "title"))

        assert ("contract", "futures") not in found
        assert ("contract", "margin") not in found
        assert ("commercial", "partnership") not in found

    def test_internal_whitespace_flexible(self, extractor):
        """Test phrase keywords match across any whitespace run."""
        found = _by_key(extractor.extract("Funding\n  rate and OPEN\tINTEREST", "description"))

        assert found[("mechanism", "funding rate")].count == 1
        assert found[("mechanism", "open interest")].count == 1

    def test_counts_not_capped(self, extractor):
        """Test raw counts are kept above the scoring cap."""
        found = _by_key(extractor.extract("futures " * 7, "description"))

        assert found[("contract", "futures")].count == 7

    def test_negative_keywords(self, extractor):
        """Test same-name noise is recorded as negative evidence."""
        found = _by_key(extractor.extract("LBank song lyrics and bank account loan", "title"))

        assert ("negative", "song") in found
        assert ("negative", "lyrics") in found
        assert ("negative", "bank account") in found
        assert ("negative", "loan") in found

    @pytest.mark.parametrize("text", ["", None])
    def test_empty_text(self, extractor, text):
        """Test absent text yields no evidence."""
        assert extractor.extract(text, "title") == []

    def test_competitor_mentions(self, extractor):
        """Test brand aliases become competitor evidence."""
        evidence = extractor.extract_competitor_mentions(
            "WEEX is great. weex exchange beats WeExchange?", ["WEEX", "WeExchange", "weex"], "title"
        )
        found = _by_key(evidence)

        assert found[("competitor", "weex")].count == 2
        assert found[("competitor", "weexchange")].count == 1
        assert len(evidence) == 2


class TestDetectLinks:
    """Test cases for link detection."""

    def test_link_types(self):
        """Test each recognizer."""
        text = (
            "https://example.com bit.ly/abc linktr.ee/me t.me/group "
            "discord.gg/xyz twitter.com/me"
        )
        scan = detect_links(text)

        assert scan.has_links is True
        assert scan.link_types == ["http_link", "bitly", "linktree", "telegram", "discord", "twitter"]

    def test_type_reported_once(self):
        """Test multiple patterns of one type yield one entry."""
        scan = detect_links("discord.gg/a discord.com/invite/b x.com/me twitter.com/me")

        assert scan.link_types == ["discord", "twitter"]

    def test_domain_suffix_is_not_x_link(self, referral_text):
        """Test weex.com is not mistaken for an x.com link."""
        scan = detect_links(referral_text)

        assert scan.link_types == ["http_link"]

    def test_no_links(self):
        """Test plain text."""
        scan = detect_links("No links here")

        assert scan.has_links is False
        assert scan.link_types == []


class TestMergeEvidence:
    """Test cases for evidence merging."""

    @pytest.fixture
    def title_items(self):
        return [
            Evidence(type="contract", keyword="futures", count=2, source="title"),
            Evidence(type="commercial", keyword="referral", count=1, source="title"),
        ]

    @pytest.fixture
    def description_items(self):
        return [
            Evidence(type="contract", keyword="futures", count=3, source="description"),
            Evidence(type="mechanism", keyword="funding rate", count=1, source="description"),
        ]

    def test_counts_summed(self, title_items, description_items):
        """Test duplicate (type, keyword) counts are summed."""
        merged = _by_key(merge_evidence(title_items + description_items))

        assert merged[("contract", "futures")].count == 5
        assert len(merged) == 3

    def test_strongest_source_kept(self, title_items, description_items):
        """Test the title source wins over description."""
        merged = _by_key(merge_evidence(description_items + title_items))

        assert merged[("contract", "futures")].source == "title"

    def test_order_independent(self, title_items, description_items):
        """Test merge gives the same result in any scan order."""
        forward = merge_evidence(title_items + description_items)
        backward = merge_evidence(list(reversed(description_items + title_items)))

        assert forward == backward


class TestExtractCandidate:
    """Test cases for whole-candidate extraction."""

    def test_sources_and_signals(self):
        """Test channel description, titles and descriptions are all scanned."""
        extractor = EvidenceExtractor(max_videos=10)
        candidate = ChannelCandidate(
            channel_id="UC1",
            channel_description="Futures trading tutorials. Join t.me/desk",
            subscriber_count=20000,
            videos=[
                CandidateVideo(title="Perps rebate guide", description="Guaranteed 100x gains",
                               published_at="2024-01-01T00:00:00Z"),
            ]
        )

        result = extractor.extract_candidate(candidate, ["WEEX"])
        found = _by_key(result.evidence)

        assert found[("contract", "futures")].source == "channelDescription"
        assert found[("contract", "perps")].source == "title"
        assert found[("commercial", "rebate")].source == "title"
        assert result.links.link_types == ["telegram"]
        assert "guide" in result.quality_indicators
        assert "guaranteed" in result.risk_flags
        assert "100x" in result.risk_flags

    def test_only_most_recent_videos(self):
        """Test at most max_videos newest videos are scanned."""
        extractor = EvidenceExtractor(max_videos=10)
        videos = [
            CandidateVideo(title="futures", published_at=f"2024-01-{day:02d}T00:00:00Z")
            for day in range(1, 13)
        ]
        candidate = ChannelCandidate(channel_id="UC1", videos=videos)

        result = extractor.extract_candidate(candidate)
        sources = extractor.candidate_sources(candidate)

        assert _by_key(result.evidence)[("contract", "futures")].count == 10
        assert sources[0][0] == "futures"
        assert len(sources) == 10

    def test_zero_videos_scans_channel_only(self):
        """Test an explicit max_videos of 0 is honoured, not replaced by the default."""
        extractor = EvidenceExtractor(max_videos=0)
        candidate = ChannelCandidate(
            channel_id="UC1",
            channel_description="Futures trading",
            videos=[CandidateVideo(title="Perps rebate guide", published_at="2024-01-01T00:00:00Z")]
        )

        assert extractor.candidate_sources(candidate) == [("Futures trading", "channelDescription")]

    def test_scan_order_does_not_matter(self):
        """Test shuffling videos leaves merged evidence unchanged."""
        extractor = EvidenceExtractor(max_videos=10)
        videos = [
            CandidateVideo(title="futures referral", description="leverage futures", published_at="2024-01-02"),
            CandidateVideo(title="perpetual rebate", description="futures referral code", published_at="2024-01-02"),
        ]

        forward = extractor.extract_candidate(ChannelCandidate(channel_id="c", videos=videos))
        backward = extractor.extract_candidate(ChannelCandidate(channel_id="c", videos=videos[::-1]))

        assert forward.evidence == backward.evidence

    def test_empty_candidate(self):
        """Test a candidate without text yields empty results."""
        result = EvidenceExtractor().extract_candidate(ChannelCandidate(channel_id="UC1"))

        assert result.evidence == []
        assert result.links.has_links is False
