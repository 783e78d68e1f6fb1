"""
regen-orchestrator — domain package

File: src/regen_orchestrator/domain/__init__.py
Last updated: 2026-10-19

Purpose
- Domain types shared across planes: requests, layer config, candidates, outcomes, results.

What should be included in this file
- Nothing beyond this docstring; import from ``domain.models`` / ``domain.errors`` directly.

Non-functional requirements
- Domain layer should have minimal dependencies and no IO side effects.
"""
