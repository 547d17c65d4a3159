"""Core Business Logic Module

This module provides the user resource logic independent of Flask.

Architecture:
    - Pure Python (no Flask dependencies in core logic)
    - Testable without HTTP mocking
    - Reusable across interfaces (HTTP API, CLI)

Module Structure:
    - backend/          : IdentityBackend interface, in-memory and remote backends
    - user_resource.py  : UserResourceMapper (list/get/create/update/delete)
    - user_transformer.py : User ↔ response/mutation record transformations
    - hooks.py          : Filter and action registry
    - errors.py         : ApiError taxonomy and ApiResponse envelope
    - validators.py     : absint, URL/username/email sanitisation
    - audit.py          : Signed JSONL audit trail

Usage Pattern:
    Import explicitly when needed:
        from usersapi.core.backend import InMemoryBackend
        from usersapi.core.user_resource import UserResourceMapper

Public APIs:
    Resource (usersapi.core.user_resource):
        - UserResourceMapper.list_users()
        - UserResourceMapper.get()
        - UserResourceMapper.create()
        - UserResourceMapper.update()
        - UserResourceMapper.delete()
        - UserResourceMapper.get_current_user()

    Errors (usersapi.core.errors):
        - ApiError, ForbiddenError, NotFoundError, ValidationError,
          UnknownContextError, UnauthorizedError, BackendFailure
        - ApiResponse
"""
