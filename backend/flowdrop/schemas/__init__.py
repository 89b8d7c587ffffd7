"""Pydantic schemas.

- base: shared configuration for response schemas
- pipeline: status API responses
- processors: input, config and output models of the built-in processors
"""
