"""Streamchat - chat front end with progressive answer streaming.

Combines httpx for streamed HTTP answers, NiceGUI for the chat view,
and Pydantic for data validation and configuration.

Components:
    - streaming: transport, framing decoders, pacing policies and sessions
    - ui: Web interface for chat interactions
    - models: Request, fragment and delivery schemas
"""

__version__ = "0.1.0"
