"""This module serves as the entry point for the career coach application.

The application turns candidate profiles, prior stories and job postings into
AI-generated artifacts. The interesting work happens in the generation layer:

    - app.llm.cache: Two-tier result cache with per-entry expiration.
    - app.llm.references: Mapping between prompt-local indices and stable ids.
    - app.llm.salvage: Recovery of partial arrays from truncated JSON.
    - app.llm.classifier: Cheap-first intent classification.
    - app.llm.orchestration: The coordinator tying the above together.

Notes:
    1. This module does not contain any functions or classes of its own.
    2. No disk, network, or database access occurs in this module directly.

"""
