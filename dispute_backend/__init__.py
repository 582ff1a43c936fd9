"""
Dispute Document Service
========================

Turns a user's account of a legal dispute into forum-correct documents:
1. Extracts candidate facts from the intake conversation
2. Locks confirmed facts so nothing downstream can contradict them
3. Routes the case to a forum behind a hard approval gate
4. Plans, generates and audits the document package

Nothing reaches the user without passing the legal audit.
"""

__version__ = "1.0.0"
