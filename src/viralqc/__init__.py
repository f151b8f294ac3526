"""viralqc: alert detection and pass/fail verdicts for viral genome annotation.

viralqc takes each input sequence together with the reference model it
was classified to, the sequence-to-model alignment, coverage hits and
optional protein predictions, and decides which annotation problems
are present and whether the sequence passes.

Example:
    >>> import viralqc
    >>> viralqc.__version__
    '0.1.0'

Modules:
    core: Feature maps, alignment coordinate mapping, frame analysis
    detectors: Alert detector families
    qc: Alert registry, fatality policy, verdict aggregation
    io: JSON loaders for models and sequence units
    parallel: Bounded worker pools for independent sequences
    utils: Intervals, nucleotide helpers, logging
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
