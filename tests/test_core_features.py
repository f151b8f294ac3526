"""Tests for feature maps and model libraries.

Tests cover:
- FeatureMap validation
- Parent, child and adjacent peptide queries
- Display labels and names
"""

import pytest

from viralqc.core.features import (
    Feature,
    FeatureKind,
    FeatureMap,
    FeatureMapError,
    ModelLibrary,
)
from viralqc.utils.intervals import SegmentList


class TestFeatureMap:
    """Tests for FeatureMap validation and queries."""

    def test_children_and_parent(self, toy_map):
        assert [f.index for f in toy_map.children_of(0)] == [1, 2]
        assert toy_map.parent_of(2).index == 0
        assert toy_map.parent_of(0) is None

    def test_adjacent_peptides(self, toy_map):
        pairs = toy_map.adjacent_peptide_pairs()
        assert [(a.index, b.index) for a, b in pairs] == [(1, 2)]

    def test_labels(self, toy_map):
        assert toy_map.label(0) == "CDS.1"
        assert toy_map.label(2) == "mat_peptide.2"

    def test_feature_names(self, build_map):
        fmap = build_map(extra=[("stem_loop", "45..50:+")])
        assert fmap[0].name == "polyprotein"
        assert fmap[3].display_type == "stem_loop"
        assert fmap[3].name == "stem_loop.4"

    def test_identical_cds(self, build_map):
        fmap = build_map(extra=[("gene", "11..40:+")])
        assert fmap.has_identical_cds(3)
        assert not fmap.has_identical_cds(1)

    def test_parent_must_precede(self):
        features = [
            Feature(0, FeatureKind.MAT_PEPTIDE, SegmentList.parse("11..25:+"), parent=1),
            Feature(1, FeatureKind.CDS, SegmentList.parse("11..40:+")),
        ]
        with pytest.raises(FeatureMapError, match="earlier feature"):
            FeatureMap("bad", 60, features)

    def test_peptide_outside_cds(self):
        features = [
            Feature(0, FeatureKind.CDS, SegmentList.parse("11..40:+")),
            Feature(1, FeatureKind.MAT_PEPTIDE, SegmentList.parse("30..45:+"), parent=0),
        ]
        with pytest.raises(FeatureMapError, match="not contained"):
            FeatureMap("bad", 60, features)

    def test_peptide_parent_must_be_cds(self):
        features = [
            Feature(0, FeatureKind.GENE, SegmentList.parse("11..40:+")),
            Feature(1, FeatureKind.MAT_PEPTIDE, SegmentList.parse("11..25:+"), parent=0),
        ]
        with pytest.raises(FeatureMapError, match="not CDS"):
            FeatureMap("bad", 60, features)

    def test_segment_outside_model(self):
        features = [Feature(0, FeatureKind.CDS, SegmentList.parse("11..70:+"))]
        with pytest.raises(FeatureMapError, match="outside model"):
            FeatureMap("bad", 60, features)

    def test_index_mismatch(self):
        features = [Feature(3, FeatureKind.CDS, SegmentList.parse("11..40:+"))]
        with pytest.raises(FeatureMapError, match="does not match"):
            FeatureMap("bad", 60, features)

    def test_unsupported_table(self):
        with pytest.raises(FeatureMapError, match="translation table"):
            FeatureMap("bad", 60, [], transl_table=99)

    def test_library_duplicate(self, toy_map):
        with pytest.raises(FeatureMapError, match="Duplicate"):
            ModelLibrary([toy_map, toy_map])


    def test_library_lookup(self, toy_library):
        assert "toy" in toy_library
        assert len(toy_library.features_for_model("toy")) == 3
        with pytest.raises(KeyError):
            toy_library.features_for_model("missing")
