"""Evidence Analyzer - forensic evidence processing and two-phase analysis."""

__version__ = "0.1.0"
