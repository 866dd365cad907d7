"""
Cogs: the low-level structures, configs and the Kubernetes API client.

Nothing in here knows about the autoscalers' reconciliation: these are
the reusable gears that the operator's core (`cpa_operator._core`) uses.
"""
