"""
                Public Channel Order Intake

Server-side order intake for the public web ordering channel of a
multi-branch restaurant chain: authoritative pricing, delivery surcharge
resolution, per-branch order numbering and compensated multi-table writes.
"""

__version__ = "1.0.0"
