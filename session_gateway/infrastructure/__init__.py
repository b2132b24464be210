"""
Infrastructure Layer - configuration, persistence, transports and webhook delivery
"""
