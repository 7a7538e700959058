"""
Blogify Application Layer

This package implements the web application layer for Blogify, handling HTTP requests
and responses using the aiohttp framework and server-rendered Jinja2 pages.

Key Components:
- cli.py: Entry point for running the application
- server.py: Application factory, middleware and resource lifecycle
- config.py: Configuration management using Pydantic settings
- handlers/: Request handlers for accounts, posts, social linking and the assistant
- metrics.py: Vendor-neutral metrics client
- tasks.py: Background health monitoring
- util/: Command line helpers for generating secrets

The application uses several middleware layers:
- Statsd middleware for metrics collection
- Error middleware mapping the error taxonomy onto responses
- Sentry middleware for error reporting
- Authentication middleware resolving the session cookie into an account

It provides the following main endpoints:
- Account pages (/user/*)
- Blog pages (/, /blog/*)
- Social linking (/social/*)
- Content assistant JSON API (/assistant/*)
- Internal endpoints (/internal/*)
"""
