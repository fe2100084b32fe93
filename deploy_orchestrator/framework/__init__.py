"""Project-specific framework utilities.

This package holds the run contracts shared by every stage: the validated
`RunConfiguration` (parameter resolver) and the mutable `RunContext`. It does
not import `deploy_orchestrator.stages` or any collaborator implementation.

For the reusable, project-agnostic stage kernel, use `stagekit`.
"""
