"""
threadsync services

- messaging: HTTP/push-stream transport and an in-memory simulator
- conversation: the synchronization core driven by the console
"""
