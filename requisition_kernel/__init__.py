"""
Requisition Kernel - approval workflow core

A transactional, append-only approval workflow for material requisitions:
- Closed status / gate state machine
- Item-level approval ledger with generation invalidation
- Single-hop delegation graph
- Business-day SLA deadlines
"""

__version__ = "0.1.0"
