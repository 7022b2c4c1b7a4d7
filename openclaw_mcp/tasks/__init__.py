"""
Async task queue: task records, the in-memory store and the background worker.
"""
