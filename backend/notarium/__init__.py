"""
Notarium Backend
================

Student note-sharing API: scanned notes with OCR text, AI summaries and tags,
subject browsing, likes and admin upvotes, an AI tutor chat, a leaderboard,
and admin moderation.
"""

__version__ = "1.0.0"
