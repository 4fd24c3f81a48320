"""
Screening Context

Responsibilities:
- Schedules analysis jobs with bounded concurrency
- Runs the tiered LLM classification pipeline
- Drives the per-file status state machine

Owns: Job scheduling order, classification prompts
Never: Writes the manifest file directly (goes through ManifestStore)
"""
