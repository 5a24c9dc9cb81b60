"""
Approval Kernel - review routing and disposition for dashboard records.

Routes any record (form submission, site diary, task, entry) to one or
more reviewers and tracks it through a status lifecycle:

- Pure transition table with check-then-act enforcement
- Permission gate over approver membership and project roles
- Atomic, row-locked store writes
- Read models enriched from directory and entity gateways
"""

__version__ = "0.1.0"
