"""
Per-entity adapters for the sync loop.

Each adapter supplies fetch / parse / filter / persist for one entity kind;
`alphasync.sync.orchestrator.Orchestrator` drives them.
"""
