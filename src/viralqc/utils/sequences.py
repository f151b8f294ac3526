"""Nucleotide utilities for codon and ambiguity checks.

This module provides utilities for working with nucleotide sequences
as they appear in aligned viral genomes:

- Reverse complement (IUPAC aware)
- Start and stop codons per NCBI translation table
- In-frame stop scanning
- Ambiguous nucleotide checks

RNA input is accepted; ``U`` is treated as ``T`` for codon lookups.

Example:
    >>> from viralqc.utils.sequences import reverse_complement, is_stop_codon
    >>> reverse_complement("ATGCN")
    'NGCAT'
    >>> is_stop_codon("UAA")
    True
"""

# =============================================================================
# Constants
# =============================================================================

# IUPAC complement mapping
COMPLEMENT = str.maketrans(
    "ACGTUNRYSWKMBDHVacgtunryswkmbdhv-.",
    "TGCAANYRSWMKVHDBtgcaanyrswmkvhdb-.",
)

CANONICAL_NUCLEOTIDES = frozenset("ACGTUacgtu")

# Start and stop codons by NCBI translation table
START_CODONS: dict[int, frozenset[str]] = {
    1: frozenset({"TTG", "CTG", "ATG"}),
    2: frozenset({"ATT", "ATC", "ATA", "ATG", "GTG"}),
    3: frozenset({"ATA", "ATG", "GTG"}),
    4: frozenset({"TTA", "TTG", "CTG", "ATT", "ATC", "ATA", "ATG", "GTG"}),
    5: frozenset({"TTG", "ATT", "ATC", "ATA", "ATG", "GTG"}),
    11: frozenset({"TTG", "CTG", "ATT", "ATC", "ATA", "ATG", "GTG"}),
    12: frozenset({"CTG", "ATG"}),
}

STOP_CODONS: dict[int, frozenset[str]] = {
    1: frozenset({"TAA", "TAG", "TGA"}),
    2: frozenset({"TAA", "TAG", "AGA", "AGG"}),
    3: frozenset({"TAA", "TAG"}),
    4: frozenset({"TAA", "TAG"}),
    5: frozenset({"TAA", "TAG"}),
    11: frozenset({"TAA", "TAG", "TGA"}),
    12: frozenset({"TAA", "TAG", "TGA"}),
}

SUPPORTED_TABLES = frozenset(START_CODONS)


# =============================================================================
# Basic Operations
# =============================================================================


def normalize(sequence: str) -> str:
    """Uppercase a sequence and convert U to T."""
    return sequence.upper().replace("U", "T")


def reverse_complement(sequence: str) -> str:
    """Get reverse complement of a nucleotide sequence.

    Args:
        sequence: DNA or RNA sequence, IUPAC codes allowed.

    Returns:
        Reverse complement (DNA alphabet for canonical bases).
    """
    return sequence.translate(COMPLEMENT)[::-1]


def is_ambiguous(nucleotide: str) -> bool:
    """True for anything other than A, C, G, T or U."""
    return nucleotide not in CANONICAL_NUCLEOTIDES


def _check_table(table: int) -> None:
    if table not in SUPPORTED_TABLES:
        raise ValueError(
            f"Unsupported translation table {table}; "
            f"supported: {sorted(SUPPORTED_TABLES)}"
        )


def is_start_codon(codon: str, table: int = 1, atg_only: bool = False) -> bool:
    """Check whether a codon is a valid start codon.

    Args:
        codon: Three nucleotides.
        table: NCBI translation table.
        atg_only: Only accept ATG regardless of table.
    """
    codon = normalize(codon)
    if atg_only:
        return codon == "ATG"
    _check_table(table)
    return codon in START_CODONS[table]


def is_stop_codon(codon: str, table: int = 1) -> bool:
    """Check whether a codon is a stop codon in the given table."""
    _check_table(table)
    return normalize(codon) in STOP_CODONS[table]


def find_inframe_stops(sequence: str, table: int = 1, offset: int = 0) -> list[int]:
    """Find the in-frame stop codons of a sequence.

    Args:
        sequence: Nucleotide sequence read 5' to 3'.
        table: NCBI translation table.
        offset: 0-based index of the first nucleotide of the first codon.

    Returns:
        1-based positions (within ``sequence``) of the final nucleotide of
        every in-frame stop codon, in order.
    """
    _check_table(table)
    stops = STOP_CODONS[table]
    seq = normalize(sequence)
    found = []
    for i in range(offset, len(seq) - 2, 3):
        if seq[i : i + 3] in stops:
            found.append(i + 3)
    return found
