"""
Chart-of-Accounts Kernel

Hierarchy and balance engine for a multi-tenant bookkeeping system:
- Account classification rules (type -> sub-types, normal balance side)
- Deterministic, collision-free account code generation
- Parent/child consistency with cascading level maintenance
- As-of-date balance aggregation with exact decimal arithmetic
"""

__version__ = "0.1.0"
