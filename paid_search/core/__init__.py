"""
Core modules for Paid Search.

This package contains the payment-gated request flow: confirmation
polling, the payment executor and the search orchestrator.
"""
