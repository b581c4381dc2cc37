"""
Guardian Shield - Maintenance module.

Base-protocol consolidation for security equipment: protocol resolution,
the grouping workflow, the protocol editor and AI suggestions.
"""
