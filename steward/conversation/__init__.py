"""Conversation engine and its supporting pieces."""
