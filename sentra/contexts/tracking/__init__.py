"""
Tracking Context

Responsibilities:
- Persists filename -> label state in the manifest CSV
- Fans out status transitions to subscribers
- Reconciles disk, manifest and queue after restarts
- Records rejections and requests ATS side effects

Owns: Manifest label state, rejection records
Never: Makes classification decisions
"""
