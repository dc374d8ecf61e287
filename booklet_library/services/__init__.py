"""
Caller-facing services

library.py — booklet, user, assignment and submission operations over the
             local store, enqueueing every mutation for sync
"""
