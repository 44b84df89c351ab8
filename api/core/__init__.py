"""
Shared, cross-cutting code for the API.

`core/` should contain small building blocks that multiple features use
(settings, logging, errors, the composition root, the domain entities).
Keep feature-specific logic in the corresponding feature package
(e.g. `commands/`).
"""
