"""
Domain layer containing core business logic and domain services.

Submodules:
- auth: Sessions, identity resolution, device fingerprints.
- sync: Owner projection recomputation and session snapshot fan-out.
- utils: Domain-specific utilities (e.g., token generation).
"""
