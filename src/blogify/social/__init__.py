"""
Social account linking (OAuth 2.0 with PKCE) and new-post announcements.
"""
