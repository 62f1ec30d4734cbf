"""
Notarium Backend — Services Layer
===================================

What:  Business logic between the routes (HTTP) and the database.

Service Inventory:
    - LLMService (abstract) / GeminiService: AI provider with retries and a
      circuit breaker
    - FileService: image decoding, validation, storage and cleanup
    - image_service / chunking: pure helpers for the upload pipeline
    - AuthService / UserService: credentials, suspension, warnings, profile,
      leaderboard
    - SubjectService, NoteService: catalogue and note lifecycle
    - AdminService / ActivityService: moderation and its audit trail
    - StudyService / ChatService: AI study tools and the tutor

Services are stateless singletons; each call receives the db session it
should use.
"""
