"""
inventory_batch -- Bulk stock adjustments.

Applies many signed stock corrections under one shared batch id, each line
in its own SAVEPOINT, and persists a record of every run.

Architecture:
    inventory_batch/ is a top-level package.  Nothing in inventory_kernel
    imports from inventory_batch (except create_tables/drop_tables, which
    import its models so the table is created).
"""
