"""
Entity resolution services.

Key service modules:
- normalize: display-name normalization and email-derived names
- account_type: account type classification
- similarity: name and entity similarity scoring
- person_entity: Person model and SQLite store
- entity_resolver: resolve-or-create protocol
- errors: error types
"""
