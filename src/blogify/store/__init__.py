"""
Persistence operations over an ``AsyncSession``.

Functions here never open or commit transactions; the caller owns the
``async with database_session.begin()`` block, so a handler can combine
several operations atomically.
"""
