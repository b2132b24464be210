"""
Domain Layer - Session lifecycle models, ports and services
"""
