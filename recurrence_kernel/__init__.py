"""
Recurrence Kernel - recurring financial and reminder event engine.

Expands user-declared recurring rules (expenses, revenue lines, reminders)
into bounded series of dated instances and keeps those series consistent:
- Idempotent backfill as the clock and horizon advance
- Series splits on scoped edits and deletes (``future`` / ``all``)
- Per-rule serialization between sweeps and mutations
- Lifecycle cascades when an owning lease or tenant group ends
"""

__version__ = "0.1.0"
