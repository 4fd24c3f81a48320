"""
SENTRA - Screening ENgine for Tiered Resume Assessment

Watches a directory of PDF resumes and classifies each one against a
natural-language hiring condition with a staged LLM pipeline.

Architecture:
- Intake Context: Directory watching and candidate identity
- Screening Context: Analysis queue and tiered classification
- Tracking Context: Manifest state, event fan-out, reconciliation, side effects
"""

__version__ = "0.1.0"
