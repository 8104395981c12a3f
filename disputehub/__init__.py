"""
DisputeHub Case Progression Service
===================================

Backend for the AI-guided dispute builder:
1. Deciding when a chat has gathered enough facts to lock a case
2. Planning and generating the dispute documents
3. Keeping the case timeline and notifying the user

Runs on FastAPI + SQLAlchemy.
"""

__version__ = "1.0.0"
