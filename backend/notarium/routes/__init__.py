"""
Notarium Backend — API Routes Package
=======================================

What:  HTTP route handlers that accept requests and return responses.
How:   One module per area of the API.

Route Inventory:
    - auth.py:      /api/auth/*       (signup, login, me, profile, passwords)
    - subjects.py:  /api/subjects, /api/leaderboard
    - notes.py:     /api/notes/*, /api/files/*
    - ai.py:        /api/gemini/*, note summary/quiz, study plan, concepts
    - chat.py:      /api/chat/*       (AI tutor)
    - admin.py:     /api/admin/*      (moderation and reports)
    - health.py:    /health

Design Principle:
    Routes are THIN. They parse the request, call a service and wrap the
    result. Business logic belongs in services.
"""
