"""Tests for the detector families.

Each family is exercised on its own against small edits of the toy
sequence, so the expected alert list is exact.
"""

import pytest

from viralqc.core.evidence import (
    ClassificationScores,
    Hit,
    ModelScore,
    ProteinIndel,
    ProteinPrediction,
)
from viralqc.detectors import (
    AmbiguityDetector,
    BoundaryDetector,
    ClassificationDetector,
    CodonDetector,
    CoverageDetector,
    Detector,
    DetectorConfig,
    DetectorInvariantError,
    DetectorSet,
    IndelDetector,
    StructureDetector,
)
from viralqc.qc.alerts import Alert, AlertCode, DetectorFamily
from viralqc.utils.intervals import Interval, SegmentList, Strand

from conftest import MINUS_TOY_SEQUENCE, TOY_LENGTH

C = AlertCode


def _codes(alerts):
    return [a.code for a in alerts]


def _hit(seq, mdl, score=50.0, strand=Strand.PLUS):
    if strand is Strand.MINUS:
        seq_iv = Interval(seq[1], seq[0], Strand.MINUS)
    else:
        seq_iv = Interval(seq[0], seq[1], Strand.PLUS)
    return Hit(seq=seq_iv, mdl=Interval(mdl[0], mdl[1], Strand.PLUS), bit_score=score)


# =============================================================================
# Coverage
# =============================================================================


class TestCoverageDetector:
    """Tests for hit-list topology and coverage alerts."""

    def test_full_coverage(self, make_unit, make_context, toy_map):
        ctx = make_context(make_unit(), toy_map)
        assert CoverageDetector().detect(ctx) == []

    def test_no_hits(self, make_unit, make_context, toy_map):
        ctx = make_context(make_unit(hits=[]), toy_map)
        assert _codes(CoverageDetector().detect(ctx)) == [C.NOANNOTN]

    def test_reverse_complement_only(self, make_unit, make_context, toy_map):
        """A minus-strand top hit short-circuits every other coverage check."""
        hits = [_hit((1, 30), (1, 30), 100.0, Strand.MINUS)]
        ctx = make_context(make_unit(hits=hits), toy_map)
        assert _codes(CoverageDetector().detect(ctx)) == [C.REVCOMPL]

    def test_indefinite_strand(self, make_unit, make_context, toy_map):
        hits = [
            _hit((1, TOY_LENGTH), (1, TOY_LENGTH), 100.0),
            _hit((1, 30), (1, 30), 30.0, Strand.MINUS),
        ]
        ctx = make_context(make_unit(hits=hits), toy_map)
        alerts = CoverageDetector().detect(ctx)
        assert _codes(alerts) == [C.INDFSTRN]
        assert alerts[0].detail == "score:30.0>=25.0"

    def test_weak_opposite_strand_ignored(self, make_unit, make_context, toy_map):
        hits = [
            _hit((1, TOY_LENGTH), (1, TOY_LENGTH), 100.0),
            _hit((1, 30), (1, 30), 20.0, Strand.MINUS),
        ]
        ctx = make_context(make_unit(hits=hits), toy_map)
        assert CoverageDetector().detect(ctx) == []

    def test_duplicate_region(self, make_unit, make_context, toy_map):
        hits = [_hit((1, 30), (1, 30)), _hit((31, 60), (5, 34))]
        ctx = make_context(make_unit(hits=hits), toy_map)
        alerts = CoverageDetector().detect(ctx)
        assert _codes(alerts) == [C.DUPREGIN]
        assert str(alerts[0].seq_coords) == "1..30:+,31..60:+"
        assert alerts[0].detail.startswith("26 nt overlap")

    def test_overlap_at_threshold_not_duplicate(self, make_unit, make_context, toy_map):
        # 20 nt model overlap equals the minimum, which does not count
        hits = [_hit((1, 30), (1, 30)), _hit((31, 60), (11, 40))]
        ctx = make_context(make_unit(hits=hits), toy_map)
        assert C.DUPREGIN not in _codes(CoverageDetector().detect(ctx))

    def test_discontinuous(self, make_unit, make_context, toy_map):
        hits = [_hit((1, 30), (31, 60)), _hit((31, 60), (1, 30))]
        ctx = make_context(make_unit(hits=hits), toy_map)
        alerts = CoverageDetector().detect(ctx)
        assert _codes(alerts) == [C.DISCONTN]
        assert alerts[0].detail == "model order of hits:2,1"

    def test_low_coverage_and_three_prime_gap(self, make_unit, make_context, toy_map):
        hits = [_hit((1, 40), (1, 40), 100.0)]
        ctx = make_context(make_unit(hits=hits), toy_map)
        alerts = CoverageDetector().detect(ctx)
        assert _codes(alerts) == [C.LOWCOVRG, C.LOWSIM3S]
        assert alerts[0].detail == "0.667<0.900"
        assert str(alerts[0].seq_coords) == "41..60:+"
        assert str(alerts[1].mdl_coords) == "41..60:+"

    def test_low_similarity_in_cds(self, make_unit, make_context, cds_only_map):
        hits = [_hit((1, 30), (1, 30), 100.0)]
        ctx = make_context(make_unit(hits=hits), cds_only_map)
        alerts = CoverageDetector().detect(ctx)
        assert _codes(alerts) == [C.LOWCOVRG, C.LOWSIM3C]
        assert alerts[1].feature_ref == 0
        assert "10 nt overlap" in alerts[1].detail

    def test_internal_gap_in_cds(self, make_unit, make_context, cds_only_map):
        hits = [_hit((1, 20), (1, 20)), _hit((23, 60), (23, 60))]
        ctx = make_context(make_unit(hits=hits), cds_only_map)
        alerts = CoverageDetector().detect(ctx)
        assert _codes(alerts) == [C.LOWSIMIC]
        assert str(alerts[0].seq_coords) == "21..22:+"

    def test_short_terminal_gap_ignored(self, make_unit, make_context, cds_only_map):
        hits = [_hit((1, 55), (1, 55), 100.0)]
        ctx = make_context(make_unit(hits=hits), cds_only_map)
        assert CoverageDetector().detect(ctx) == []


# =============================================================================
# Classification
# =============================================================================


class TestClassificationDetector:
    """Tests for classification score alerts."""

    def _ctx(self, make_unit, make_context, toy_map, scores, **config):
        unit = make_unit(classification=scores)
        return make_context(unit, toy_map, DetectorConfig(**config))

    def test_no_scores(self, make_unit, make_context, toy_map):
        ctx = make_context(make_unit(), toy_map)
        assert ClassificationDetector().detect(ctx) == []

    def test_confident(self, make_unit, make_context, toy_map):
        scores = ClassificationScores(best=ModelScore("toy", 60.0), second=ModelScore("other", 20.0))
        ctx = self._ctx(make_unit, make_context, toy_map, scores)
        assert ClassificationDetector().detect(ctx) == []

    def test_indefinite(self, make_unit, make_context, toy_map):
        scores = ClassificationScores(best=ModelScore("toy", 30.0), second=ModelScore("other", 29.5))
        ctx = self._ctx(make_unit, make_context, toy_map, scores)
        alerts = ClassificationDetector().detect(ctx)
        assert _codes(alerts) == [C.INDFCLAS]
        assert "second model other" in alerts[0].detail

    def test_low_score(self, make_unit, make_context, toy_map):
        scores = ClassificationScores(best=ModelScore("toy", 12.0))
        ctx = self._ctx(make_unit, make_context, toy_map, scores)
        assert _codes(ClassificationDetector().detect(ctx)) == [C.LOWSCORE]

    def test_biased(self, make_unit, make_context, toy_map):
        scores = ClassificationScores(best=ModelScore("toy", 60.0, bias=30.0))
        ctx = self._ctx(make_unit, make_context, toy_map, scores)
        assert _codes(ClassificationDetector().detect(ctx)) == [C.BIASDSEQ]

    def test_expected_group_not_scored(self, make_unit, make_context, toy_map):
        scores = ClassificationScores(best=ModelScore("toy", 60.0, group="other"))
        ctx = self._ctx(make_unit, make_context, toy_map, scores, expected_group="toyvirus")
        assert _codes(ClassificationDetector().detect(ctx)) == [C.INCGROUP]

    def test_expected_group_close(self, make_unit, make_context, toy_map):
        scores = ClassificationScores(
            best=ModelScore("toy", 60.0, group="other"),
            best_in_group=ModelScore("toy2", 59.0, group="toyvirus"),
        )
        ctx = self._ctx(make_unit, make_context, toy_map, scores, expected_group="toyvirus")
        assert _codes(ClassificationDetector().detect(ctx)) == [C.QSTGROUP]

    def test_expected_group_far(self, make_unit, make_context, toy_map):
        scores = ClassificationScores(
            best=ModelScore("toy", 60.0, group="other"),
            best_in_group=ModelScore("toy2", 30.0, group="toyvirus"),
        )
        ctx = self._ctx(make_unit, make_context, toy_map, scores, expected_group="toyvirus")
        assert _codes(ClassificationDetector().detect(ctx)) == [C.INCGROUP]

    def test_expected_subgroup_matches(self, make_unit, make_context, toy_map):
        scores = ClassificationScores(best=ModelScore("toy", 60.0, group="g", subgroup="a"))
        ctx = self._ctx(make_unit, make_context, toy_map, scores, expected_subgroup="a")
        assert ClassificationDetector().detect(ctx) == []


# =============================================================================
# Structure
# =============================================================================


class TestStructureDetector:
    """Tests for annotation presence, deletion and adjacency alerts."""

    def test_clean(self, make_unit, make_context, toy_map):
        assert StructureDetector().detect(make_context(make_unit(), toy_map)) == []

    def test_deleted_feature(self, make_unit, make_context, build_map):
        fmap = build_map(extra=[("stem_loop", "45..50:+")])
        ctx = make_context(make_unit(deleted=range(45, 51)), fmap)
        alerts = StructureDetector().detect(ctx)
        assert _codes(alerts) == [C.DELETINS]
        assert alerts[0].feature_ref is None
        assert str(alerts[0].mdl_coords) == "45..50:+"
        assert "stem_loop.1" in alerts[0].detail

    def test_deletable_feature(self, make_unit, make_context, build_map):
        fmap = build_map(extra=[("stem_loop", "45..50:+", True)])
        ctx = make_context(make_unit(deleted=range(45, 51)), fmap)
        assert StructureDetector().detect(ctx) == []

    def test_deleted_segment(self, make_unit, make_context, build_map):
        fmap = build_map(extra=[("stem_loop", "41..44:+,47..50:+")])
        ctx = make_context(make_unit(deleted=range(47, 51)), fmap)
        alerts = StructureDetector().detect(ctx)
        assert _codes(alerts) == [C.DELETINF]
        assert alerts[0].feature_ref == 3
        assert str(alerts[0].mdl_coords) == "47..50:+"

    def test_peptides_not_adjacent(self, make_unit, make_context, toy_map):
        ctx = make_context(make_unit(inserts={25: "GGG"}), toy_map)
        alerts = StructureDetector().detect(ctx)
        assert _codes(alerts) == [C.PEPADJCY]
        assert alerts[0].feature_ref == 1
        assert str(alerts[0].seq_coords) == "25..25:+,29..29:+"

    def test_no_features_annotated(self, make_unit, make_context, toy_map):
        ctx = make_context(make_unit(deleted=range(1, 45)), toy_map)
        assert _codes(StructureDetector().detect(ctx)) == [C.NOFTRANN]

    def test_hits_without_alignment(self, make_unit, make_context, toy_map):
        ctx = make_context(make_unit(aligned=False), toy_map)
        assert _codes(StructureDetector().detect(ctx)) == [C.UNEXDIVG]

    def test_nothing_at_all(self, make_unit, make_context, toy_map):
        ctx = make_context(make_unit(aligned=False, hits=[]), toy_map)
        assert StructureDetector().detect(ctx) == []


# =============================================================================
# Codons
# =============================================================================


class TestCodonDetector:
    """Tests for start, stop, length and frameshift alerts."""

    def test_clean(self, make_unit, make_context, toy_map):
        assert CodonDetector().detect(make_context(make_unit(), toy_map)) == []

    def test_mutated_start(self, make_unit, make_context, cds_only_map):
        ctx = make_context(make_unit(substitutions={12: "A"}), cds_only_map)
        alerts = CodonDetector().detect(ctx)
        assert _codes(alerts) == [C.MUTSTART]
        assert str(alerts[0].seq_coords) == "11..13:+"
        assert str(alerts[0].mdl_coords) == "11..13:+"
        assert alerts[0].detail == "AAG start codon"

    def test_atg_only(self, make_unit, make_context, cds_only_map):
        unit = make_unit(substitutions={11: "T"})
        assert CodonDetector().detect(make_context(unit, cds_only_map)) == []
        ctx = make_context(unit, cds_only_map, DetectorConfig(atg_only=True))
        assert _codes(CodonDetector().detect(ctx)) == [C.MUTSTART]

    def test_early_stop(self, make_unit, make_context, cds_only_map):
        unit = make_unit(substitutions={23: "T", 24: "A", 25: "A", 40: "C"})
        alerts = CodonDetector().detect(make_context(unit, cds_only_map))
        assert _codes(alerts) == [C.CDSSTOPN, C.MUTENDCD]
        assert str(alerts[0].seq_coords) == "23..25:+"
        assert alerts[0].detail == "TAA shifted S:15,M:15"

    def test_no_stop_anywhere(self, make_unit, make_context, cds_only_map):
        unit = make_unit(substitutions={40: "C"})
        alerts = CodonDetector().detect(make_context(unit, cds_only_map))
        assert _codes(alerts) == [C.MUTENDCD, C.MUTENDNS]
        assert alerts[0].detail == "TAC stop codon"

    def test_downstream_stop(self, make_unit, make_context, cds_only_map):
        unit = make_unit(substitutions={40: "C", 46: "A"})
        alerts = CodonDetector().detect(make_context(unit, cds_only_map))
        assert _codes(alerts) == [C.MUTENDCD, C.MUTENDEX]
        assert str(alerts[1].seq_coords) == "44..46:+"
        assert alerts[1].detail == "TAA shifted S:-6,M:-6"

    def test_frameshift_high_confidence(self, make_unit, make_context, cds_only_map):
        unit = make_unit(deleted={17}, inserts={29: "C"})
        alerts = CodonDetector().detect(make_context(unit, cds_only_map))
        assert _codes(alerts) == [C.FSTHICFI]
        assert str(alerts[0].seq_coords) == "17..28:+"
        assert str(alerts[0].mdl_coords) == "18..29:+"

    def test_frameshift_without_confidence(self, make_unit, make_context, cds_only_map):
        unit = make_unit(deleted={17}, inserts={29: "C"}, conf=None)
        alerts = CodonDetector().detect(make_context(unit, cds_only_map))
        assert _codes(alerts) == [C.FSTUKCFI]

    def test_minus_strand_clean(self, make_unit, make_context, minus_cds_map):
        ctx = make_context(make_unit(template=MINUS_TOY_SEQUENCE), minus_cds_map)
        assert CodonDetector().detect(ctx) == []

    def test_minus_strand_early_stop(self, make_unit, make_context, minus_cds_map):
        unit = make_unit(
            template=MINUS_TOY_SEQUENCE, substitutions={26: "T", 27: "T", 28: "A", 11: "G"}
        )
        alerts = CodonDetector().detect(make_context(unit, minus_cds_map))
        assert _codes(alerts) == [C.CDSSTOPN, C.MUTENDCD]
        assert str(alerts[0].seq_coords) == "28..26:-"
        assert alerts[0].detail == "TAA shifted S:15,M:15"
        assert str(alerts[1].seq_coords) == "13..11:-"
        assert str(alerts[1].mdl_coords) == "13..11:-"
        assert alerts[1].detail == "TAC stop codon"

    def test_minus_strand_frameshift(self, make_unit, make_context, minus_cds_map):
        unit = make_unit(template=MINUS_TOY_SEQUENCE, deleted={25}, inserts={15: "C"})
        alerts = CodonDetector().detect(make_context(unit, minus_cds_map))
        assert _codes(alerts) == [C.FSTHICFI]
        assert str(alerts[0].seq_coords) == "25..17:-"
        assert str(alerts[0].mdl_coords) == "24..16:-"

    def test_peptide_length(self, make_unit, make_context, toy_map):
        alerts = CodonDetector().detect(make_context(make_unit(inserts={30: "A"}), toy_map))
        peptide_alerts = [a for a in alerts if a.feature_ref in (1, 2)]
        assert [(a.code, a.feature_ref) for a in peptide_alerts] == [(C.UNEXLENG, 2)]
        assert peptide_alerts[0].detail == "13 nt, not a multiple of 3"


# =============================================================================
# Boundaries
# =============================================================================


class TestBoundaryDetector:
    """Tests for boundary gap, confidence and protein agreement alerts."""

    def _predict(self, start, end, strand=Strand.PLUS, **kwargs):
        return ProteinPrediction(0, Interval(start, end, strand), 100.0, **kwargs)

    def test_clean(self, make_unit, make_context, toy_map):
        assert BoundaryDetector().detect(make_context(make_unit(), toy_map)) == []

    def test_low_confidence_cds_start(self, make_unit, make_context, cds_only_map):
        ctx = make_context(make_unit(conf_at={11: 0.5}), cds_only_map)
        alerts = BoundaryDetector().detect(ctx)
        assert _codes(alerts) == [C.INDF5LCC]
        assert str(alerts[0].seq_coords) == "11..11:+"
        assert alerts[0].detail == "0.50<0.80"

    def test_low_confidence_other_feature(self, make_unit, make_context, build_map):
        fmap = build_map(with_peptides=False, extra=[("stem_loop", "45..50:+")])
        ctx = make_context(make_unit(conf_at={50: 0.5}), fmap)
        alerts = BoundaryDetector().detect(ctx)
        assert [(a.code, a.feature_ref) for a in alerts] == [(C.INDF3LCN, 1)]

    def test_peptide_threshold(self, make_unit, make_context, toy_map):
        # 0.7 is below the CDS threshold but above the mat_peptide one
        ctx = make_context(make_unit(conf_at={11: 0.7}), toy_map)
        alerts = BoundaryDetector().detect(ctx)
        assert [(a.code, a.feature_ref) for a in alerts] == [(C.INDF5LCC, 0)]

    def test_gap_at_end(self, make_unit, make_context, cds_only_map):
        ctx = make_context(make_unit(deleted={40}), cds_only_map)
        alerts = BoundaryDetector().detect(ctx)
        assert _codes(alerts) == [C.INDF3GAP]
        assert alerts[0].detail == "model position 40 is a gap"

    def test_protein_agrees(self, make_unit, make_context, cds_only_map):
        unit = make_unit(protein_predictions=[self._predict(11, 40)])
        assert BoundaryDetector().detect(make_context(unit, cds_only_map)) == []

    def test_protein_stops_before_stop_codon(self, make_unit, make_context, cds_only_map):
        unit = make_unit(protein_predictions=[self._predict(11, 37)])
        assert BoundaryDetector().detect(make_context(unit, cds_only_map)) == []

    @pytest.mark.parametrize(
        "start,end,code",
        [
            (20, 40, C.INDF5PST),
            (1, 40, C.INDF5PLG),
            (11, 50, C.INDF3PLG),
            (11, 30, C.INDF3PST),
        ],
    )
    def test_protein_endpoints(self, make_unit, make_context, cds_only_map, start, end, code):
        unit = make_unit(protein_predictions=[self._predict(start, end)])
        assert _codes(BoundaryDetector().detect(make_context(unit, cds_only_map))) == [code]

    def test_protein_missing(self, make_unit, make_context, cds_only_map):
        unit = make_unit(protein_predictions=[])
        assert _codes(BoundaryDetector().detect(make_context(unit, cds_only_map))) == [C.INDFANTN]

    def test_protein_stage_not_run(self, make_unit, make_context, cds_only_map):
        unit = make_unit(protein_predictions=None)
        assert BoundaryDetector().detect(make_context(unit, cds_only_map)) == []

    def test_protein_strand_mismatch(self, make_unit, make_context, cds_only_map):
        unit = make_unit(protein_predictions=[self._predict(40, 11, Strand.MINUS)])
        alerts = BoundaryDetector().detect(make_context(unit, cds_only_map))
        assert _codes(alerts) == [C.INDFSTRP]

    def test_protein_stop(self, make_unit, make_context, cds_only_map):
        unit = make_unit(protein_predictions=[self._predict(11, 40, stop_pos=20)])
        alerts = BoundaryDetector().detect(make_context(unit, cds_only_map))
        assert _codes(alerts) == [C.CDSSTOPP]
        assert str(alerts[0].seq_coords) == "20..22:+"

    def test_protein_only_cds(self, make_unit, make_context, cds_only_map):
        unit = make_unit(deleted=range(1, 45), protein_predictions=[self._predict(11, 40)])
        alerts = BoundaryDetector().detect(make_context(unit, cds_only_map))
        assert _codes(alerts) == [C.INDFANTP]

    def test_weak_protein_only_cds_ignored(self, make_unit, make_context, cds_only_map):
        pred = ProteinPrediction(0, Interval(11, 40), 50.0)
        unit = make_unit(deleted=range(1, 45), protein_predictions=[pred])
        assert BoundaryDetector().detect(make_context(unit, cds_only_map)) == []

    def test_best_prediction_wins(self, make_unit, make_context, cds_only_map):
        preds = [
            ProteinPrediction(0, Interval(20, 40), 40.0),
            ProteinPrediction(0, Interval(11, 40), 90.0),
        ]
        unit = make_unit(protein_predictions=preds)
        assert BoundaryDetector().detect(make_context(unit, cds_only_map)) == []

    def test_unknown_feature_index(self, make_unit, make_context, cds_only_map):
        pred = ProteinPrediction(5, Interval(11, 40), 100.0)
        ctx = make_context(make_unit(protein_predictions=[pred]), cds_only_map)
        with pytest.raises(DetectorInvariantError):
            BoundaryDetector().detect(ctx)


# =============================================================================
# Indels
# =============================================================================


class TestIndelDetector:
    """Tests for long insertion and deletion alerts."""

    def test_long_insertion(self, make_unit, make_context, cds_only_map):
        unit = make_unit(inserts={23: "GGGGGG"})
        ctx = make_context(unit, cds_only_map, DetectorConfig(nmaxins=5))
        alerts = IndelDetector().detect(ctx)
        assert _codes(alerts) == [C.INSERTNN]
        assert alerts[0].feature_ref == 0
        assert str(alerts[0].seq_coords) == "24..29:+"
        assert str(alerts[0].mdl_coords) == "23..23:+"

    def test_insertion_within_limit(self, make_unit, make_context, cds_only_map):
        ctx = make_context(make_unit(inserts={23: "GGGGGG"}), cds_only_map)
        assert IndelDetector().detect(ctx) == []

    def test_insertion_outside_cds(self, make_unit, make_context, cds_only_map):
        unit = make_unit(inserts={45: "GGGGGG"})
        ctx = make_context(unit, cds_only_map, DetectorConfig(nmaxins=5))
        assert IndelDetector().detect(ctx) == []

    def test_long_deletion(self, make_unit, make_context, cds_only_map):
        unit = make_unit(deleted={20, 21, 22})
        ctx = make_context(unit, cds_only_map, DetectorConfig(nmaxdel=2))
        alerts = IndelDetector().detect(ctx)
        assert _codes(alerts) == [C.DELETINN]
        assert str(alerts[0].seq_coords) == "19..20:+"
        assert str(alerts[0].mdl_coords) == "20..22:+"

    def test_minus_strand_long_insertion(self, make_unit, make_context, minus_cds_map):
        unit = make_unit(template=MINUS_TOY_SEQUENCE, inserts={23: "GGGGGG"})
        ctx = make_context(unit, minus_cds_map, DetectorConfig(nmaxins=5))
        alerts = IndelDetector().detect(ctx)
        assert _codes(alerts) == [C.INSERTNN]
        assert str(alerts[0].seq_coords) == "29..24:-"
        assert str(alerts[0].mdl_coords) == "23..23:-"

    def test_protein_indels(self, make_unit, make_context, cds_only_map):
        pred = ProteinPrediction(
            0,
            Interval(11, 40),
            100.0,
            max_insert=ProteinIndel(20, 4, 30),
            max_delete=ProteinIndel(26, 6, 33),
        )
        ctx = make_context(make_unit(protein_predictions=[pred]), cds_only_map)
        alerts = IndelDetector().detect(ctx)
        assert _codes(alerts) == [C.INSERTNP, C.DELETINP]
        assert str(alerts[1].seq_coords) == "26..26:+"


# =============================================================================
# Ambiguity
# =============================================================================


class TestAmbiguityDetector:
    """Tests for ambiguous nucleotide alerts."""

    @pytest.mark.parametrize(
        "pos,expected",
        [
            (1, [C.AMBGNT5S]),
            (60, [C.AMBGNT3S]),
            (12, [C.AMBGCD5C]),
            (40, [C.AMBGNT3C]),
            (39, [C.AMBGCD3C]),
            (25, []),
        ],
    )
    def test_cds_and_sequence_ends(self, make_unit, make_context, cds_only_map, pos, expected):
        ctx = make_context(make_unit(substitutions={pos: "N"}), cds_only_map)
        assert _codes(AmbiguityDetector().detect(ctx)) == expected

    def test_start_codon_detail(self, make_unit, make_context, cds_only_map):
        ctx = make_context(make_unit(substitutions={12: "N"}), cds_only_map)
        (alert,) = AmbiguityDetector().detect(ctx)
        assert alert.detail == "ANG start codon"
        assert str(alert.seq_coords) == "11..13:+"

    def test_cds_and_peptide_share_start(self, make_unit, make_context, toy_map):
        ctx = make_context(make_unit(substitutions={11: "N"}), toy_map)
        alerts = AmbiguityDetector().detect(ctx)
        assert [(a.code, a.feature_ref) for a in alerts] == [(C.AMBGNT5C, 0), (C.AMBGNT5F, 1)]

    def test_feature_identical_to_cds_skipped(self, make_unit, make_context, build_map):
        fmap = build_map(with_peptides=False, extra=[("gene", "11..40:+")])
        ctx = make_context(make_unit(substitutions={11: "N"}), fmap)
        assert _codes(AmbiguityDetector().detect(ctx)) == [C.AMBGNT5C]


# =============================================================================
# Dispatch
# =============================================================================


class _ForeignDetector(Detector):
    family = DetectorFamily.AMBIGUITY

    def detect(self, ctx):
        return [Alert(sequence_id="someone-else", model_id=ctx.model_id, code=C.LOWSCORE)]


class TestDetectorSet:
    """Tests for running detector families together."""

    def test_default_order(self):
        families = DetectorSet().families
        assert families == [
            DetectorFamily.COVERAGE,
            DetectorFamily.CLASSIFICATION,
            DetectorFamily.STRUCTURE,
            DetectorFamily.CODONS,
            DetectorFamily.BOUNDARIES,
            DetectorFamily.INDELS,
            DetectorFamily.AMBIGUITY,
        ]

    def test_sorted_by_family(self):
        detectors = DetectorSet([AmbiguityDetector(), CoverageDetector()])
        assert detectors.families == [DetectorFamily.COVERAGE, DetectorFamily.AMBIGUITY]

    def test_emission_numbers(self, make_unit, make_context, cds_only_map):
        unit = make_unit(substitutions={1: "N", 40: "C"})
        alerts = DetectorSet().run(make_context(unit, cds_only_map), start_emission=5)
        assert _codes(alerts) == [C.MUTENDCD, C.MUTENDNS, C.AMBGNT5S]
        assert [a.emission for a in alerts] == [5, 6, 7]

    def test_disabled_family(self, make_unit, make_context, cds_only_map):
        unit = make_unit(substitutions={1: "N"})
        ctx = make_context(unit, cds_only_map, DetectorConfig(run_ambiguity=False))
        assert DetectorSet().run(ctx) == []

    def test_foreign_sequence_rejected(self, make_unit, make_context, cds_only_map):
        ctx = make_context(make_unit(), cds_only_map)
        with pytest.raises(DetectorInvariantError, match="someone-else"):
            DetectorSet([_ForeignDetector()]).run(ctx)

    def test_context_feature_lookup(self, make_unit, make_context, cds_only_map):
        ctx = make_context(make_unit(), cds_only_map)
        assert ctx.feature(0).is_cds
        with pytest.raises(DetectorInvariantError):
            ctx.feature(3)
        assert ctx.mapping(0) is ctx.mapping(0)
        assert ctx.model_coords_for(Interval(11, 40)) == SegmentList.parse("11..40:+")
