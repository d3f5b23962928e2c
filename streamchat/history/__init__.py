"""
Persistence layer for assistants, conversations and messages.
"""
