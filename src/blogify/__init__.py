"""
Blogify - a small blogging service

Accounts register and sign in with a password, write posts with optional
cover images and comment on each other's posts. An account may link an X
(Twitter) account to announce new posts automatically, and an assistant
backed by a text-generation provider helps draft posts, suggest SEO metadata
and plan a content calendar.

Key Components:
- app: Web application layer with request handlers and server configuration
- model: SQLAlchemy models for accounts, linked credentials, posts and comments
- store: Persistence operations on top of the models
- auth: Password hashing, session tokens and ownership checks
- social: Social account linking, token refresh and auto-publish
- assistant: Prompt templates and content generation workflows
"""
