"""
Scripts Package.

Operational scripts for the fleet service.

Scripts:
- cleanup_test_machines: Delete machines flagged is_test
"""

# Scripts are meant to be run directly, not imported
