"""
Marketplace Kernel - service offer coordination engine

Turns a location's posted service offer into a negotiated agreement with
an associate and tracks that agreement through execution:
- Eligibility-filtered offer catalog
- Capacity-safe application intake
- Single authoritative agreement state machine
- Append-only execution tracking
"""

__version__ = "0.1.0"
