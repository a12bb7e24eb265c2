"""
A2A Chatbot: A2A Protocol Agent Server

An A2A v0.3.0 JSON-RPC 2.0 server that forwards user prompts to an
OpenAI-compatible language model, answering with completed tasks or with
Server-Sent Events streams of task and artifact updates.
"""

from .main import create_app

__all__ = ["create_app"]
