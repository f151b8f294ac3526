"""Tests for reading frame tracking and codon checks."""

import pytest

from viralqc.core.alignment import AlignmentView
from viralqc.core.frames import (
    EditKind,
    FrameConfig,
    FrameRun,
    FrameshiftConfidence,
    analyze_codons,
    expected_frame,
    find_frameshifts,
    format_frame_string,
    format_length_string,
    frame_runs,
)
from viralqc.utils.intervals import Interval, Strand

from conftest import MINUS_TOY_SEQUENCE, TOY_CDS, TOY_LENGTH


def _cds_mapping(unit, fmap):
    view = AlignmentView(unit.alignment, unit.sequence, TOY_LENGTH)
    return view, view.map_feature(fmap[0])


class TestDisplayStrings:
    """Tests for compact frame and length strings."""

    def test_frame_string(self):
        runs = [FrameRun(1, 9), FrameRun(3, 6), FrameRun(1, 9)]
        assert format_frame_string(runs, 1) == "1(3)1"

    def test_length_string_truncated(self):
        runs = [FrameRun(2, 10, truncated_5=True), FrameRun(1, 8, truncated_3=True)]
        assert format_length_string(runs, 2) == "<10:(8)>"


class TestFrameConfig:
    """Tests for FrameConfig.validate."""

    def test_defaults_valid(self):
        FrameConfig().validate()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"fst_min_nt_internal": 0},
            {"min_restore_nt": 0},
            {"fst_high_thr": 1.5},
            {"fst_low_thr": 0.9, "fst_high_thr": 0.5},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            FrameConfig(**kwargs).validate()


class TestFrameRuns:
    """Tests for splitting a CDS into frame runs."""

    def test_clean_cds_single_run(self, make_unit, cds_only_map):
        view, mapping = _cds_mapping(make_unit(), cds_only_map)
        runs, edits = frame_runs(view, mapping)
        assert len(runs) == 1
        assert runs[0].frame == 1
        assert runs[0].length == 30
        assert edits == []
        assert format_frame_string(runs, 1) == "1"

    def test_shift_and_restore(self, make_unit, cds_only_map):
        unit = make_unit(deleted={17}, inserts={29: "C"})
        view, mapping = _cds_mapping(unit, cds_only_map)
        runs, edits = frame_runs(view, mapping)
        assert [r.frame for r in runs] == [1, 3, 1]
        assert [r.length for r in runs] == [6, 12, 12]
        assert [e.kind for e in edits] == [EditKind.DELETE, EditKind.INSERT]
        assert edits[0].mdl == Interval(17, 17, Strand.PLUS)
        assert edits[1].seq == Interval(29, 29, Strand.PLUS)

    def test_five_prime_truncation_sets_expected_frame(self, make_unit, cds_only_map):
        unit = make_unit(deleted=set(range(1, 13)))
        view, mapping = _cds_mapping(unit, cds_only_map)
        assert mapping.trunc5
        assert expected_frame(mapping, view) == 2
        runs, _ = frame_runs(view, mapping)
        assert [r.frame for r in runs] == [2]
        assert format_length_string(runs, 2) == "<28"

    def test_minus_strand_clean_cds(self, make_unit, minus_cds_map):
        unit = make_unit(template=MINUS_TOY_SEQUENCE)
        view, mapping = _cds_mapping(unit, minus_cds_map)
        runs, edits = frame_runs(view, mapping)
        assert [(r.frame, r.length) for r in runs] == [(1, 30)]
        assert (runs[0].seq_start, runs[0].seq_stop) == (40, 11)
        assert edits == []

    def test_minus_strand_deletion(self, make_unit, minus_cds_map):
        unit = make_unit(template=MINUS_TOY_SEQUENCE, deleted={25})
        view, mapping = _cds_mapping(unit, minus_cds_map)
        runs, edits = frame_runs(view, mapping)
        assert [r.frame for r in runs] == [1, 3]
        assert [r.length for r in runs] == [15, 14]
        assert [r.seq_start for r in runs] == [39, 24]
        (edit,) = edits
        assert edit.kind is EditKind.DELETE
        assert edit.seq == Interval(25, 24, Strand.MINUS)
        assert edit.mdl == Interval(25, 25, Strand.MINUS)


class TestFindFrameshifts:
    """Tests for frameshift candidates."""

    def test_no_indels(self, make_unit, cds_only_map):
        view, mapping = _cds_mapping(make_unit(), cds_only_map)
        assert find_frameshifts(view, mapping, FrameConfig()) == []

    def test_internal_high_confidence(self, make_unit, cds_only_map):
        unit = make_unit(deleted={17}, inserts={29: "C"})
        view, mapping = _cds_mapping(unit, cds_only_map)
        candidates = find_frameshifts(view, mapping, FrameConfig())
        assert len(candidates) == 1
        fs = candidates[0]
        assert fs.confidence is FrameshiftConfidence.HIGH
        assert not fs.terminal
        assert fs.seq == Interval(17, 28, Strand.PLUS)
        assert fs.mdl == Interval(18, 29, Strand.PLUS)
        assert fs.length == 12
        assert "frame:1(3)1;" in fs.detail
        assert "length:6:(12):12;" in fs.detail

    def test_low_confidence(self, make_unit, cds_only_map):
        unit = make_unit(
            deleted={17}, inserts={29: "C"}, conf_at={m: 0.5 for m in range(18, 30)}
        )
        view, mapping = _cds_mapping(unit, cds_only_map)
        (fs,) = find_frameshifts(view, mapping, FrameConfig())
        assert fs.confidence is FrameshiftConfidence.LOW
        assert fs.shifted_avgpp == pytest.approx(0.5)

    def test_no_confidence_track(self, make_unit, cds_only_map):
        unit = make_unit(deleted={17}, inserts={29: "C"}, conf=None)
        view, mapping = _cds_mapping(unit, cds_only_map)
        (fs,) = find_frameshifts(view, mapping, FrameConfig())
        assert fs.confidence is FrameshiftConfidence.UNKNOWN
        assert "avgpp" not in fs.detail

    def test_terminal_shift(self, make_unit, cds_only_map):
        view, mapping = _cds_mapping(make_unit(deleted={35}), cds_only_map)
        (fs,) = find_frameshifts(view, mapping, FrameConfig())
        assert fs.terminal
        assert fs.restore is None
        assert fs.mdl == Interval(36, 40, Strand.PLUS)
        assert fs.length == 5

    def test_short_shift_ignored(self, make_unit, cds_only_map):
        unit = make_unit(deleted={20}, inserts={22: "A"})
        view, mapping = _cds_mapping(unit, cds_only_map)
        assert find_frameshifts(view, mapping, FrameConfig()) == []

    def test_minus_strand_terminal_shift(self, make_unit, minus_cds_map):
        unit = make_unit(template=MINUS_TOY_SEQUENCE, deleted={25})
        view, mapping = _cds_mapping(unit, minus_cds_map)
        (fs,) = find_frameshifts(view, mapping, FrameConfig())
        assert fs.terminal
        assert fs.confidence is FrameshiftConfidence.HIGH
        assert fs.seq == Interval(24, 11, Strand.MINUS)
        assert fs.mdl == Interval(24, 11, Strand.MINUS)
        assert fs.length == 14
        assert "cause:delete,S:25..24,M:25..25(1);" in fs.detail
        assert "length:15:(14);" in fs.detail

    def test_minus_strand_shift_and_restore(self, make_unit, minus_cds_map):
        unit = make_unit(template=MINUS_TOY_SEQUENCE, deleted={25}, inserts={15: "C"})
        view, mapping = _cds_mapping(unit, minus_cds_map)
        (fs,) = find_frameshifts(view, mapping, FrameConfig())
        assert not fs.terminal
        assert fs.seq == Interval(25, 17, Strand.MINUS)
        assert fs.mdl == Interval(24, 16, Strand.MINUS)
        assert fs.length == 9
        assert fs.restore.kind is EditKind.INSERT
        assert fs.restore.seq == Interval(16, 16, Strand.MINUS)
        assert fs.restore.mdl == Interval(15, 15, Strand.MINUS)
        assert "frame:1(3)1;" in fs.detail
        assert "length:15:(9):6;" in fs.detail


class TestAnalyzeCodons:
    """Tests for start, stop and length checks."""

    def test_clean_cds(self, make_unit, cds_only_map):
        view, mapping = _cds_mapping(make_unit(), cds_only_map)
        report = analyze_codons(view, mapping)
        assert report.start_codon == "ATG"
        assert report.start_valid
        assert report.stop_valid
        assert report.length_ok
        assert report.early_stop is None
        assert not report.downstream_searched

    def test_alternative_start(self, make_unit, cds_only_map):
        view, mapping = _cds_mapping(make_unit(substitutions={11: "T"}), cds_only_map)
        assert analyze_codons(view, mapping).start_valid
        assert not analyze_codons(view, mapping, atg_only=True).start_valid

    def test_early_stop(self, make_unit, cds_only_map):
        unit = make_unit(substitutions={23: "T", 24: "A", 25: "A", 40: "C"})
        view, mapping = _cds_mapping(unit, cds_only_map)
        report = analyze_codons(view, mapping)
        assert report.stop_valid is False
        assert report.early_stop.codon == "TAA"
        assert report.early_stop.seq == Interval(23, 25, Strand.PLUS)
        assert report.early_stop.seq_shift == 15
        assert not report.downstream_searched

    def test_downstream_stop(self, make_unit, cds_only_map):
        unit = make_unit(substitutions={40: "C", 46: "A"})
        view, mapping = _cds_mapping(unit, cds_only_map)
        report = analyze_codons(view, mapping)
        assert report.downstream_searched
        hit = report.downstream_stop
        assert hit.seq == Interval(44, 46, Strand.PLUS)
        assert hit.seq_shift == -6
        assert hit.mdl_shift == -6

    def test_no_downstream_stop(self, make_unit, cds_only_map):
        view, mapping = _cds_mapping(make_unit(substitutions={40: "C"}), cds_only_map)
        report = analyze_codons(view, mapping)
        assert report.downstream_searched
        assert report.downstream_stop is None

    def test_length_not_multiple_of_three(self, make_unit, cds_only_map):
        view, mapping = _cds_mapping(make_unit(inserts={30: "A"}), cds_only_map)
        assert analyze_codons(view, mapping).length_ok is False

    def test_truncated_cds_skips_start(self, make_unit, cds_only_map):
        view, mapping = _cds_mapping(make_unit(deleted=set(range(1, 13))), cds_only_map)
        report = analyze_codons(view, mapping)
        assert report.start_codon is None
        assert report.length_ok is None
        assert report.offset == 1
        assert report.stop_valid

    def test_minus_strand_clean_cds(self, make_unit, minus_cds_map):
        view, mapping = _cds_mapping(make_unit(template=MINUS_TOY_SEQUENCE), minus_cds_map)
        report = analyze_codons(view, mapping)
        assert report.nucleotides == TOY_CDS
        assert report.positions[0] == 40
        assert report.positions[-1] == 11
        assert report.start_valid
        assert report.stop_valid
        assert report.early_stop is None

    def test_minus_strand_early_stop(self, make_unit, minus_cds_map):
        # TAA at CDS positions 13..15 (model 28..26); final stop broken to TAC
        unit = make_unit(
            template=MINUS_TOY_SEQUENCE, substitutions={26: "T", 27: "T", 28: "A", 11: "G"}
        )
        view, mapping = _cds_mapping(unit, minus_cds_map)
        report = analyze_codons(view, mapping)
        assert report.stop_valid is False
        assert report.early_stop.codon == "TAA"
        assert report.early_stop.seq == Interval(28, 26, Strand.MINUS)
        assert report.early_stop.mdl == Interval(28, 26, Strand.MINUS)
        assert report.early_stop.seq_shift == 15
        assert report.early_stop.mdl_shift == 15
        assert not report.downstream_searched

    def test_minus_strand_downstream_stop(self, make_unit, minus_cds_map):
        unit = make_unit(
            template=MINUS_TOY_SEQUENCE, substitutions={11: "G", 5: "T", 6: "T", 7: "A"}
        )
        view, mapping = _cds_mapping(unit, minus_cds_map)
        report = analyze_codons(view, mapping)
        assert report.downstream_searched
        hit = report.downstream_stop
        assert hit.codon == "TAA"
        assert hit.seq == Interval(7, 5, Strand.MINUS)
        assert hit.seq_shift == -6
        assert hit.mdl_shift == -6
