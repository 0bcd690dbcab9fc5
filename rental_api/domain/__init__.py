"""
Pure business rules (no I/O): status enums, the lifecycle transition table and
guards, pricing arithmetic and scan reconciliation.
"""
