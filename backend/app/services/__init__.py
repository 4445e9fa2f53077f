# Services package init
"""
FloraLens Backend - Services Layer
====================================

What:  Business logic and external adapters between routes and persistence.

Service Inventory:
    - StorageService (abstract): put / sign / delete for image objects
    - LocalStorageService, S3StorageService: disk and S3 implementations
    - VisionService (abstract): image → AnalysisSuccess | AnalysisFailure
    - GeminiService: Google Gemini implementation with structured output
    - ScanService: orchestrates upload → analyze → persist, and retrieval

Adapters are injected into routes via FastAPI dependencies, so tests swap
them through app.dependency_overrides.
"""
