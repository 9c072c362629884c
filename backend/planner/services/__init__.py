"""
Schedule engine services

Pure, synchronous functions over explicit configuration values:
- No database or HTTP objects
- No module-level mutable state
- Same input, same output (ids, ordering, timing)
"""
