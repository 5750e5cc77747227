"""
Audit trail for billing events.

Tracks who did what, when, and on which lease, invoice, payment or penalty.
"""
