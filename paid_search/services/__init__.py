"""
Clients for the remote search endpoint and the notification sink.
"""
