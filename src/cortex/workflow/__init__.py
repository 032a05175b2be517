"""Workflow engine: load a Cortexfile, plan its task DAG, and run it.

Tasks name an agent (a CLI tool plus optional model) and may depend on other
tasks via ``needs``. The planner orders tasks topologically; the executor runs
them one at a time or level by level, feeding each task's stdout into the
``{{outputs.<task>}}`` placeholders of its dependents.
"""
