"""
Local authentication primitives.

- passwords.py: bcrypt hashing and verification
- session.py: signed, time-bound session tokens carried in the ``token`` cookie
- ownership.py: identity + owner checks guarding post edit and delete
"""
