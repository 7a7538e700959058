"""
Database Models

SQLAlchemy ORM models for the Blogify service.

Key Models:
- base.py: Declarative base, shared column types and UTC helpers
- account.py: Accounts and their linked social credential
- post.py: Posts and comments
- health.py: In-process health gauge (not persisted)

Relationships are expressed as plain foreign-key columns and resolved with
explicit queries in ``blogify.store``; cascades are performed there too.
"""
