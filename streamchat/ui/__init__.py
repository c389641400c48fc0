"""NiceGUI interface - thin visualization layer for chat interactions.

Responsibilities:
    - Chat message display with progressive answer rendering
    - Thinking indicator while an answer is connecting or in its preamble
    - Stop and new-chat controls that cancel the active answer

Contains minimal business logic. Delegates all streaming to StreamController.
"""
