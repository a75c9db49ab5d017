"""
Kernel Layer

Foundational components the workflow builds on:
- Persistence models (submissions, history, policies, access, audit log)
- Immutable Event Log (every mutation logged in the same unit of work)
- Identity Core (bearer token -> Actor)
- Permission Core (closed capability set, per-scope school assignments)
"""
